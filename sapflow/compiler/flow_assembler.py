"""Flow assembler: serialize a normalized transaction into its output flow.

The output shape follows the input shape:

- legacy      -> `{"steps": {...}, "metadata": {...}}` with alias targets and
                 repaired, continuous `next` chains ending in a single `end`
- steps-only  -> `{"steps": {...}}`, every source field copied unchanged
- contextual  -> `{"steps": {"startTransaction": ..., "<context>": {...}}}`
                 plus non-empty `$meta` / `targetContext`
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from .models import (
    IntermediateStep,
    RecordingFormat,
    TERMINAL_STEP_ID,
    TransactionData,
)

logger = logging.getLogger(__name__)

FLOW_VERSION = "1.0"
REFERENCE_KEYS = ("next", "true", "false")


def _legacy_step_body(step: IntermediateStep) -> Dict[str, Any]:
    body: Dict[str, Any] = {"action": step.action}

    if step.target:
        body["target"] = step.alias or step.target

    if step.action == "callProgram":
        body["method"] = step.method
        body["paramKey"] = step.param_key
    elif step.action == "set" and step.param_key:
        body["paramKey"] = step.param_key

    if step.next:
        body["next"] = step.next

    if step.action == "condition":
        body["operator"] = step.operator or "exists"
        body["true"] = step.if_true or TERMINAL_STEP_ID
        body["false"] = step.if_false or TERMINAL_STEP_ID

    if step.action == "waitFor" and step.timeout:
        body["timeout"] = step.timeout

    if step.param_value is not None:
        body["paramValue"] = step.param_value

    if step.control_kind:
        body["controlType"] = step.control_kind
    return body


def _build_id_mapping(output_steps: Dict[str, Dict[str, Any]], parsed_steps: List[IntermediateStep]) -> Dict[str, str]:
    mapping: Dict[str, str] = {}
    claimed = set()
    for step in parsed_steps:
        if step.id in output_steps:
            mapping[step.id] = step.id
            claimed.add(step.id)

    for step in parsed_steps:
        if step.id in mapping:
            continue
        expected_target = step.alias or step.target
        for key, body in output_steps.items():
            if key in claimed or body.get("action") != step.action:
                continue
            if step.target and body.get("target") != expected_target:
                continue
            mapping[step.id] = key
            claimed.add(key)
            break
    return mapping


def ensure_continuity(steps: Dict[str, Dict[str, Any]]) -> None:
    """Every non-exit step gets a resolvable `next`; a terminal `end` step exists."""
    step_ids = list(steps)
    for index, step_id in enumerate(step_ids):
        body = steps[step_id]
        following = step_ids[index + 1] if index + 1 < len(step_ids) else TERMINAL_STEP_ID

        for key in REFERENCE_KEYS:
            ref = body.get(key)
            if ref and ref != TERMINAL_STEP_ID and ref not in steps:
                logger.warning("Step %s references unknown step %s via %s, redirecting to %s", step_id, ref, key, following)
                body[key] = following

        if body.get("action") != "exit" and not body.get("next"):
            body["next"] = following

    terminal = steps.get(TERMINAL_STEP_ID)
    if terminal is None:
        steps[TERMINAL_STEP_ID] = {"action": "exit"}
    elif terminal.get("action") != "exit":
        logger.warning("Step %s is not an exit step, forcing terminal action", TERMINAL_STEP_ID)
        terminal["action"] = "exit"
        terminal.pop("next", None)


def fix_references(output_steps: Dict[str, Dict[str, Any]], parsed_steps: List[IntermediateStep]) -> None:
    mapping = _build_id_mapping(output_steps, parsed_steps)
    for body in output_steps.values():
        for key in REFERENCE_KEYS:
            ref = body.get(key)
            if ref and ref in mapping:
                body[key] = mapping[ref]
    ensure_continuity(output_steps)


def assemble_legacy(transaction: TransactionData, created: Optional[str] = None) -> Dict[str, Any]:
    steps: Dict[str, Dict[str, Any]] = {}
    for step in transaction.steps:
        steps[step.id] = _legacy_step_body(step)

    fix_references(steps, transaction.steps)
    return {
        "steps": steps,
        "metadata": {
            "tcode": transaction.tcode,
            "version": FLOW_VERSION,
            "created": created or date.today().isoformat(),
            "controlTypes": list(transaction.control_kinds),
        },
    }


def _passthrough_body(step: IntermediateStep) -> Dict[str, Any]:
    body: Dict[str, Any] = {"action": step.action}
    body.update(step.fields)
    return body


def assemble_steps_only(transaction: TransactionData) -> Dict[str, Any]:
    return {"steps": {step.id: _passthrough_body(step) for step in transaction.steps}}


def assemble_contextual(transaction: TransactionData) -> Dict[str, Any]:
    flow: Dict[str, Any] = {"steps": {}}
    if transaction.meta:
        flow["$meta"] = transaction.meta
    if transaction.target_context:
        flow["targetContext"] = transaction.target_context

    context_groups: Dict[str, Dict[str, Any]] = {}
    for step in transaction.steps:
        if step.context is None:
            body = {"action": step.action}
            for key, value in (("method", step.method), ("paramKey", step.param_key), ("next", step.next)):
                if value:
                    body[key] = value
            flow["steps"][step.id] = body
            continue
        context_groups.setdefault(step.context, {})[step.name or step.id] = _passthrough_body(step)

    flow["steps"].update(context_groups)
    return flow


def assemble_flow(transaction: TransactionData, created: Optional[str] = None) -> Dict[str, Any]:
    """Build the output flow for one transaction.

    Args:
        transaction: Normalized transaction, with step aliases already resolved
        created: Creation date override (YYYY-MM-DD) for the legacy metadata block

    Returns:
        JSON-serialisable flow document
    """
    logger.info("Generating flow for %s (%s)", transaction.tcode, transaction.format.value)
    if transaction.format is RecordingFormat.CONTEXTUAL:
        return assemble_contextual(transaction)
    if transaction.format is RecordingFormat.STEPS_ONLY:
        return assemble_steps_only(transaction)
    return assemble_legacy(transaction, created=created)
