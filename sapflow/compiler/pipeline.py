"""Batch compilation: recordings in, one flow per transaction out.

Normalization is per transaction and may run on a thread pool; alias
generation and flow assembly run afterwards, single-threaded, over the whole
batch held in a caller-owned `BatchContext`.
"""
from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from .alias_generator import generate_aliases
from .errors import MalformedInputError
from .flow_assembler import assemble_flow
from .format_detector import to_recording
from .models import BatchContext, CompileResult, SkippedRecording, TransactionData
from .normalizer import normalize
from .orchestrator import generate_main_flow
from .path_patterns import analyze_path_patterns
from .validation import validate_flow
from ..core.storage import FlowSink, RecordingSource

logger = logging.getLogger(__name__)

MAIN_FLOW_FILE = "mainFlow.json"
ALIASES_FILE = "aliases.json"

# (source name, fallback tcode, parsed document)
Entry = Tuple[str, str, Any]


def tcode_from_source(source: str) -> str:
    return Path(source).stem.lower()


def parse_document(raw: Union[bytes, str], tcode: str) -> Any:
    """Decode and parse one recording, tolerating a UTF-8 byte order mark."""
    try:
        text = raw.decode("utf-8-sig") if isinstance(raw, bytes) else raw.lstrip("\ufeff")
    except UnicodeDecodeError as exc:
        raise MalformedInputError(f"Recording {tcode} is not UTF-8: {exc}", tcode=tcode) from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        start, end = max(exc.pos - 30, 0), exc.pos + 30
        raise MalformedInputError(
            f"Recording {tcode} is not valid JSON: {exc.msg} at position {exc.pos} near '{text[start:end]}'",
            tcode=tcode,
        ) from exc


def normalize_document(document: Any, tcode: str) -> TransactionData:
    transaction = normalize(to_recording(document, tcode))
    return analyze_path_patterns(transaction)


def _normalize_entry(entry: Entry) -> Union[TransactionData, SkippedRecording]:
    source, tcode, document = entry
    try:
        return normalize_document(document, tcode)
    except MalformedInputError as exc:
        return SkippedRecording(tcode=exc.tcode or tcode, source=source, reason=str(exc))


def normalize_entries(context: BatchContext, entries: List[Entry], workers: int = 1) -> BatchContext:
    if workers > 1 and len(entries) > 1:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(_normalize_entry, entries))
    else:
        outcomes = [_normalize_entry(entry) for entry in entries]

    for (source, _, _), outcome in zip(entries, outcomes):
        if isinstance(outcome, SkippedRecording):
            logger.warning("Skipping %s: %s", source, outcome.reason)
            context.skipped.append(outcome)
            continue
        if outcome.tcode in context.transactions:
            logger.warning("Transaction %s from %s replaces an earlier recording", outcome.tcode, source)
        context.transactions[outcome.tcode] = outcome
        logger.info("Processed %s (%d steps)", outcome.tcode, len(outcome.steps))
    return context


def assemble_batch(
    context: BatchContext,
    main_flow: bool = False,
    main_flow_meta: Optional[Dict[str, Any]] = None,
    created: Optional[str] = None,
) -> CompileResult:
    """Barrier stage: aliases over the whole batch, then one flow per transaction."""
    context.aliases = generate_aliases(context.transactions)

    flows: Dict[str, Dict[str, Any]] = {}
    violations = {}
    for tcode, transaction in context.transactions.items():
        flow = assemble_flow(transaction, created=created)
        flows[tcode] = flow
        found = validate_flow(flow)
        if found:
            violations[tcode] = found
            for violation in found:
                logger.warning("%s: %s (%s)", tcode, violation.message, violation.step_id)

    result = CompileResult(flows=flows, aliases=context.aliases, violations=violations, skipped=list(context.skipped))
    if main_flow:
        result.main_flow = generate_main_flow(list(flows), context.aliases, main_flow_meta)
    return result


def compile_documents(
    documents: Dict[str, Any],
    workers: int = 1,
    main_flow: bool = False,
    main_flow_meta: Optional[Dict[str, Any]] = None,
    created: Optional[str] = None,
) -> CompileResult:
    """Compile already-parsed recordings keyed by source name (file name or tcode)."""
    entries = [(source, tcode_from_source(source), document) for source, document in documents.items()]
    context = normalize_entries(BatchContext(), entries, workers=workers)
    return assemble_batch(context, main_flow=main_flow, main_flow_meta=main_flow_meta, created=created)


def compile_batch(
    source: RecordingSource,
    workers: int = 1,
    main_flow: bool = False,
    main_flow_meta: Optional[Dict[str, Any]] = None,
    created: Optional[str] = None,
) -> CompileResult:
    """Read, parse and compile every recording a source lists."""
    context = BatchContext()
    entries: List[Entry] = []
    paths = source.list_paths()
    logger.info("Found %d recordings", len(paths))

    for path in paths:
        tcode = tcode_from_source(path)
        try:
            entries.append((path, tcode, parse_document(source.read_bytes(path), tcode)))
        except MalformedInputError as exc:
            logger.warning("Skipping %s: %s", path, exc)
            context.skipped.append(SkippedRecording(tcode=tcode, source=path, reason=str(exc)))

    normalize_entries(context, entries, workers=workers)
    return assemble_batch(context, main_flow=main_flow, main_flow_meta=main_flow_meta, created=created)


def write_flows(result: CompileResult, sink: FlowSink) -> List[str]:
    """Write one `<tcode>.json` per flow, the batch alias table and, when built, mainFlow."""
    written: List[str] = []
    for tcode, flow in result.flows.items():
        name = f"{tcode}.json"
        sink.write(name, flow)
        written.append(name)
    sink.write(ALIASES_FILE, {**result.aliases.to_dict(), "conflicts": result.aliases.conflicts})
    written.append(ALIASES_FILE)
    if result.main_flow is not None:
        sink.write(MAIN_FLOW_FILE, result.main_flow)
        written.append(MAIN_FLOW_FILE)
    return written
