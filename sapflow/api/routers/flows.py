from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from ...compiler.errors import MalformedInputError
from ...compiler.models import SHARED_NAMESPACE, AliasTable
from ...compiler.pipeline import (
    ALIASES_FILE,
    MAIN_FLOW_FILE,
    compile_batch,
    compile_documents,
    parse_document,
    write_flows,
)
from ...compiler.validation import load_catalog, validate_flow, validate_targets
from ...core.settings import Settings, get_settings
from ...core.storage import DirectoryFlowSink, DirectoryRecordingSource, safe_join

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["flows"])


class CompileRequest(BaseModel):
    recordings: Dict[str, Any] = Field(..., description="Recording documents keyed by tcode or file name.")
    mainFlow: bool = Field(False, description="Also build the deprecated mainFlow document.")


class ProcessRequest(BaseModel):
    inputDir: Optional[str] = Field(None, description="Subdirectory of SAPFLOW_INPUT_DIR to read.")
    outputDir: Optional[str] = Field(None, description="Subdirectory of SAPFLOW_OUTPUT_DIR to write.")
    mainFlow: Optional[bool] = Field(None, description="Write mainFlow.json; defaults to SAPFLOW_MAIN_FLOW.")


class ProcessResponse(BaseModel):
    written: List[str]
    skipped: List[Dict[str, str]]
    violations: Dict[str, int]


class FlowDocument(BaseModel):
    model_config = ConfigDict(extra="allow")

    steps: Dict[str, Any] = Field(..., description="Step map, flat or grouped by context.")


class ViolationModel(BaseModel):
    stepId: str
    issue: str
    message: str
    severity: str


class ValidationResponse(BaseModel):
    tcode: str
    valid: bool
    catalogChecked: bool
    violations: List[ViolationModel]


def _flow_path(settings: Settings, tcode: str) -> Path:
    try:
        return safe_join(Path(settings.output_dir).resolve(), f"{tcode}.json")
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _read_flow(settings: Settings, tcode: str) -> Dict[str, Any]:
    path = _flow_path(settings, tcode)
    if not path.exists():
        raise HTTPException(status_code=404, detail=f"Flow not found: {tcode}")
    try:
        document = parse_document(path.read_bytes(), tcode)
    except MalformedInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not isinstance(document, dict):
        raise HTTPException(status_code=400, detail=f"Flow {tcode} is not a JSON object")
    return document


def _stored_aliases(settings: Settings) -> Optional[AliasTable]:
    """Alias table written with the flows (aliases.json, else a legacy mainFlow.json)."""
    for name in (ALIASES_FILE, MAIN_FLOW_FILE):
        path = Path(settings.output_dir) / name
        if not path.exists():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except json.JSONDecodeError as exc:
            logger.warning("Ignoring unreadable %s: %s", path, exc)
            continue
        if not isinstance(data, dict):
            continue
        aliases = data.get("aliases") or {SHARED_NAMESPACE: {}}
        return AliasTable(
            prefixes=data.get("prefixes") or {},
            aliases=aliases,
            conflicts=data.get("conflicts") or {},
        )
    return None


def _under(base: Path, requested: Optional[str]) -> Path:
    """Requested directory, relative to and never outside of a configured root."""
    root = Path(base).resolve()
    if not requested:
        return root
    try:
        return safe_join(root, requested)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/compile")
def compile_recordings(req: CompileRequest, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Compile recordings posted inline; nothing is written to disk."""
    result = compile_documents(
        req.recordings,
        workers=settings.workers,
        main_flow=req.mainFlow,
        main_flow_meta=settings.main_flow_meta(),
    )
    return result.to_dict()


@router.post("/process", response_model=ProcessResponse)
def process_directory(req: ProcessRequest, settings: Settings = Depends(get_settings)) -> ProcessResponse:
    input_dir = _under(settings.input_dir, req.inputDir)
    output_dir = _under(settings.output_dir, req.outputDir)
    main_flow = settings.write_main_flow if req.mainFlow is None else req.mainFlow

    try:
        result = compile_batch(
            DirectoryRecordingSource(input_dir),
            workers=settings.workers,
            main_flow=main_flow,
            main_flow_meta=settings.main_flow_meta(),
        )
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    written = write_flows(result, DirectoryFlowSink(output_dir))
    return ProcessResponse(
        written=written,
        skipped=[{"tcode": s.tcode, "source": s.source, "reason": s.reason} for s in result.skipped],
        violations={tcode: len(items) for tcode, items in result.violations.items()},
    )


@router.get("/flows/{tcode}")
def get_flow(tcode: str, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    return _read_flow(settings, tcode)


@router.put("/flows/{tcode}")
def save_flow(tcode: str, flow: FlowDocument, settings: Settings = Depends(get_settings)) -> Dict[str, Any]:
    """Store an edited flow; graph problems are reported, not rejected."""
    path = _flow_path(settings, tcode)
    document = flow.model_dump()
    DirectoryFlowSink(path.parent).write(path.name, document)
    violations = validate_flow(document)
    return {"tcode": tcode, "saved": True, "violations": [v.to_dict() for v in violations]}


@router.post("/flows/{tcode}/validate", response_model=ValidationResponse)
def validate_stored_flow(tcode: str, settings: Settings = Depends(get_settings)) -> ValidationResponse:
    flow = _read_flow(settings, tcode)
    violations = validate_flow(flow)

    try:
        catalog = load_catalog(Path(settings.targets_dir), tcode)
    except MalformedInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if catalog is not None:
        violations.extend(validate_targets(flow, catalog, _stored_aliases(settings), tcode))

    return ValidationResponse(
        tcode=tcode,
        valid=not any(v.severity == "error" for v in violations),
        catalogChecked=catalog is not None,
        violations=[ViolationModel(**v.to_dict()) for v in violations],
    )


@router.get("/control-types")
def list_control_types(settings: Settings = Depends(get_settings)) -> Dict[str, List[str]]:
    """Sorted union of `metadata.controlTypes` across generated flows."""
    output_dir = Path(settings.output_dir)
    found = set()
    if output_dir.is_dir():
        for path in sorted(output_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8-sig"))
            except json.JSONDecodeError as exc:
                logger.warning("Skipping unreadable flow %s: %s", path.name, exc)
                continue
            metadata = data.get("metadata") if isinstance(data, dict) else None
            if isinstance(metadata, dict):
                found.update(t for t in metadata.get("controlTypes") or [] if isinstance(t, str))
    return {"controlTypes": sorted(found)}
