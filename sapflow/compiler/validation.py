"""Flow validation: graph checks for every output shape plus an optional
cross-check of step targets against a captured element catalog
(`<TCODE>-targets.json`, `{"TargetControls": {group: [{"Id": ..., "ControlType": ...}]}}`).
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from .alias_generator import expand_alias, resolve_alias
from .errors import MalformedInputError
from .models import TERMINAL_STEP_ID, AliasTable, Violation

logger = logging.getLogger(__name__)

REFERENCE_KEYS = ("next", "true", "false")


def _is_step(body: Any) -> bool:
    return isinstance(body, dict) and "action" in body


def iter_flow_steps(flow: Dict[str, Any]) -> Iterator[Tuple[str, Optional[str], Dict[str, Any]]]:
    """Yield `(step_id, context, body)` for flat and context-grouped step maps."""
    for key, body in (flow.get("steps") or {}).items():
        if _is_step(body):
            yield key, None, body
        elif isinstance(body, dict):
            for name, step in body.items():
                if _is_step(step):
                    yield f"{key}.{name}", key, step


def _reference_resolves(ref: str, context: Optional[str], step_ids: Set[str]) -> bool:
    if ref == TERMINAL_STEP_ID or ref in step_ids:
        return True
    return context is not None and f"{context}.{ref}" in step_ids


def validate_flow(flow: Dict[str, Any]) -> List[Violation]:
    """Report broken references, missing successors and terminal problems."""
    steps = list(iter_flow_steps(flow))
    step_ids = {step_id for step_id, _, _ in steps}
    violations: List[Violation] = []
    exits: List[str] = []

    for step_id, context, body in steps:
        action = body.get("action")
        if action == "exit":
            exits.append(step_id)
            continue

        for key in REFERENCE_KEYS:
            ref = body.get(key)
            if ref is None:
                continue
            if not isinstance(ref, str) or not _reference_resolves(ref, context, step_ids):
                violations.append(
                    Violation(step_id, "dangling_reference", f"'{key}' points at unknown step '{ref}'")
                )

        if action == "condition":
            if not body.get("true") or not body.get("false"):
                violations.append(Violation(step_id, "missing_next", "condition step needs both 'true' and 'false'"))
        elif not body.get("next"):
            violations.append(Violation(step_id, "missing_next", f"'{action}' step has no successor"))

    if not exits:
        violations.append(
            Violation(TERMINAL_STEP_ID, "missing_terminal", "flow has no exit step", severity="warning")
        )
    elif len(exits) > 1:
        violations.append(
            Violation(exits[-1], "multiple_terminals", f"flow has {len(exits)} exit steps: {', '.join(exits)}")
        )
    return violations


def catalog_ids(catalog: Dict[str, Any]) -> Set[str]:
    ids: Set[str] = set()
    for group in (catalog.get("TargetControls") or {}).values():
        for control in group or []:
            if isinstance(control, dict) and control.get("Id"):
                ids.add(control["Id"])
    return ids


def _resolve_target(target: str, aliases: Optional[AliasTable], tcode: Optional[str]) -> Optional[str]:
    if "{{" in target:
        return expand_alias(target, aliases.prefixes) if aliases else None
    if aliases is not None:
        resolved = resolve_alias(aliases, target, tcode)
        if resolved:
            return resolved
    return target


def validate_targets(
    flow: Dict[str, Any],
    catalog: Dict[str, Any],
    aliases: Optional[AliasTable] = None,
    tcode: Optional[str] = None,
) -> List[Violation]:
    available = catalog_ids(catalog)
    violations: List[Violation] = []
    for step_id, _, body in iter_flow_steps(flow):
        target = body.get("target")
        if not isinstance(target, str) or "programmatic" in target:
            continue
        resolved = _resolve_target(target, aliases, tcode)
        if resolved is None:
            continue
        if resolved not in available:
            violations.append(
                Violation(step_id, "target_not_found", f"Target '{target}' not found in the available controls")
            )
    return violations


def load_catalog(targets_dir: Path, tcode: str) -> Optional[Dict[str, Any]]:
    """Load `<tcode>-targets.json`, trying upper, lower and verbatim spellings."""
    for name in (f"{tcode.upper()}-targets.json", f"{tcode.lower()}-targets.json", f"{tcode}-targets.json"):
        path = targets_dir / name
        if not path.exists():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8-sig"))
        except json.JSONDecodeError as exc:
            raise MalformedInputError(f"Catalog {path.name} is not valid JSON: {exc}", tcode=tcode) from exc
        if not isinstance(data, dict):
            raise MalformedInputError(f"Catalog {path.name} must be a JSON object", tcode=tcode)
        logger.debug("Loaded element catalog %s", path)
        return data
    return None
