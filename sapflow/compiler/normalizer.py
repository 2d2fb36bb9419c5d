"""Raw event normalizer: turns a recording into ordered intermediate steps.

Three strategies, one per recording shape:

- legacy: a flat array of SAP GUI events is grouped (consecutive input on the
  same control collapses, clicks always start a new group) and wrapped between a
  synthesized `startTransaction` and `end` step.
- steps-only: an id -> step mapping carried through verbatim.
- contextual: a context -> (name -> step) mapping flattened to compound ids
  `<context>.<name>` behind a synthesized `startTransaction`.

Every click/set step whose target is a structural control path is registered in
the transaction's control registry.
"""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from .errors import MalformedInputError
from .models import (
    ContextualRecording,
    IntermediateStep,
    LegacyRecording,
    RawRecording,
    RecordingFormat,
    START_METHOD,
    START_STEP_ID,
    StepsOnlyRecording,
    TERMINAL_STEP_ID,
    TransactionData,
)

logger = logging.getLogger(__name__)

ACTION_MAPPING = {
    "input": "set",
    "set": "set",
    "select": "set",
    "check": "set",
    "uncheck": "set",
    "click": "click",
    "dblclick": "click",
}

FLOW_ACTIONS = {"set", "click", "waitFor", "condition", "callProgram", "callSubflow", "exit"}

CHECKBOX_KIND = "GuiCheckBox"

_TEXTBOX_PREFIX = re.compile(r"^(ctxt|txt)", re.IGNORECASE)
_RANGE_SUFFIX = re.compile(r"[-_](LOW|HIGH)$", re.IGNORECASE)
_NON_WORD = re.compile(r"[\W_]+")


def extract_control_name(control_path: str) -> str:
    """Best-effort display name from the trailing path segment (`ctxtF1` -> `F1`)."""
    last_part = control_path.rstrip("/").split("/")[-1]
    if "txt" in last_part:
        return last_part.split("txt", 1)[1]
    return last_part


def _pascal(part: str) -> str:
    if part.isupper() or part.islower():
        return part[:1].upper() + part[1:].lower()
    return part[:1].upper() + part[1:]


def generate_param_key(control_name: str) -> str:
    """Derive a PascalCase parameter key from a control name.

    `ctxtS_MATNR-LOW` -> `SMatnrLow`, `txtCustomer_Id` -> `CustomerId`,
    `CustomerId` -> `CustomerId`.
    """
    name = _TEXTBOX_PREFIX.sub("", control_name or "")
    name = name.replace("[", "").replace("]", "")

    suffix = ""
    range_match = _RANGE_SUFFIX.search(name)
    if range_match:
        suffix = range_match.group(1).capitalize()
        name = name[: range_match.start()]

    parts = [part for part in _NON_WORD.split(name) if part]
    return "".join(_pascal(part) for part in parts) + suffix


def _coerce_checkbox(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() == "true"


def _register_step_control(transaction: TransactionData, step: IntermediateStep, display_name: Optional[str] = None) -> None:
    if step.action not in ("click", "set") or not step.target or not step.target.startswith("/"):
        return
    transaction.register_control(step.target, display_name or extract_control_name(step.target), step.control_kind)


def _normalise_action(action: Any) -> str:
    text = str(action or "").strip()
    if text in FLOW_ACTIONS:
        return text
    return ACTION_MAPPING.get(text.lower(), text)


# ---------------------------------------------------------------------------
# legacy
# ---------------------------------------------------------------------------


def group_events(events: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Group raw SAP GUI events into logical actions with a single carried group."""
    grouped: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None

    for event in events:
        if not isinstance(event, dict):
            continue
        raw_action = event.get("Action")
        control_id = event.get("ControlId")
        if not raw_action or not control_id:
            continue

        action = str(raw_action).lower()
        if (
            action in ("input", "set")
            and current is not None
            and current["action"] in ("input", "set")
            and current["controlId"] == control_id
        ):
            current["value"] = event.get("Value")
            continue

        if current is not None:
            grouped.append(current)
        current = {
            "action": action,
            "controlId": control_id,
            "controlName": event.get("ControlName"),
            "controlType": event.get("ControlType"),
            "value": event.get("Value"),
        }

    if current is not None:
        grouped.append(current)
    return grouped


def _legacy_step(transaction: TransactionData, group: Dict[str, Any], index: int, next_id: str) -> IntermediateStep:
    action = ACTION_MAPPING.get(group["action"], "click")
    display_name = group.get("controlName") or extract_control_name(group["controlId"])
    step = IntermediateStep(
        id=f"step{index}",
        action=action,
        target=group["controlId"],
        next=next_id,
        control_kind=group.get("controlType"),
    )
    _register_step_control(transaction, step, display_name)

    if action != "set":
        return step

    value = group.get("value")
    if value is None and group["action"] in ("check", "uncheck"):
        value = group["action"] == "check"
    if value is None or value == "":
        return step

    step.param_key = generate_param_key(display_name)
    if group.get("controlType") == CHECKBOX_KIND:
        step.param_value = _coerce_checkbox(value)
        step.is_checkbox = True
    else:
        step.param_value = value
    return step


_EVENT_TEXT_FIELDS = ("ControlId", "ControlName", "ControlType")


def _check_event_fields(event: Dict[str, Any], position: int, tcode: str) -> None:
    for key in _EVENT_TEXT_FIELDS:
        value = event.get(key)
        if value is not None and not isinstance(value, str):
            raise MalformedInputError(
                f"Event {position} of {tcode}: {key} must be a string, got {type(value).__name__}",
                tcode=tcode,
            )


def normalize_legacy(recording: LegacyRecording) -> TransactionData:
    document = recording.document
    if not isinstance(document, dict):
        raise MalformedInputError(
            f"Recording {recording.tcode} must be a JSON object, got {type(document).__name__}",
            tcode=recording.tcode,
        )
    tcode = str(document.get("Tcode") or recording.tcode).lower()
    transaction = TransactionData(tcode=tcode, format=RecordingFormat.LEGACY)

    events = document.get("Steps") or []
    if not isinstance(events, list):
        raise MalformedInputError(f"Steps of {tcode} must be an array", tcode=tcode)

    for position, event in enumerate(events, start=1):
        if isinstance(event, dict):
            _check_event_fields(event, position, tcode)
            transaction.add_control_kind(event.get("ControlType"))

    groups = group_events(events)
    logger.debug("Grouped %d events of %s into %d steps", len(events), tcode, len(groups))

    transaction.steps.append(
        IntermediateStep(
            id=START_STEP_ID,
            action="callProgram",
            method=START_METHOD,
            param_key="Tcode",
            next="step1" if groups else TERMINAL_STEP_ID,
        )
    )
    for index, group in enumerate(groups, start=1):
        next_id = f"step{index + 1}" if index < len(groups) else TERMINAL_STEP_ID
        transaction.steps.append(_legacy_step(transaction, group, index, next_id))
    transaction.steps.append(IntermediateStep(id=TERMINAL_STEP_ID, action="exit"))
    return transaction


# ---------------------------------------------------------------------------
# steps-only
# ---------------------------------------------------------------------------


def normalize_steps_only(recording: StepsOnlyRecording) -> TransactionData:
    tcode = recording.tcode.lower()
    steps = recording.document.get("steps")
    if not isinstance(steps, dict):
        raise MalformedInputError(f"steps of {tcode} must be an object keyed by step id", tcode=tcode)

    transaction = TransactionData(tcode=tcode, format=RecordingFormat.STEPS_ONLY)
    for step_id, record in steps.items():
        if not isinstance(record, dict):
            raise MalformedInputError(f"Step {step_id} of {tcode} must be an object", tcode=tcode)
        step = IntermediateStep.from_record(str(step_id), _normalise_action(record.get("action")), record)
        _register_step_control(transaction, step)
        transaction.steps.append(step)
    return transaction


# ---------------------------------------------------------------------------
# contextual
# ---------------------------------------------------------------------------


def _first_step_id(contexts: Dict[str, Dict[str, Any]]) -> str:
    for context_name, context_steps in contexts.items():
        for step_name in context_steps:
            return f"{context_name}.{step_name}"
    return TERMINAL_STEP_ID


def normalize_contextual(recording: ContextualRecording) -> TransactionData:
    document = recording.document
    meta = document.get("$meta") or {}
    target_context = document.get("targetContext") or {}
    if not isinstance(meta, dict) or not isinstance(target_context, dict):
        raise MalformedInputError(f"$meta and targetContext of {recording.tcode} must be objects", tcode=recording.tcode)

    tcode = str(meta.get("tcode") or recording.tcode).lower()
    transaction = TransactionData(
        tcode=tcode,
        format=RecordingFormat.CONTEXTUAL,
        meta=meta,
        target_context=target_context,
    )

    contexts = document.get("steps") or {}
    if not isinstance(contexts, dict) or not all(isinstance(body, dict) for body in contexts.values()):
        raise MalformedInputError(f"steps of {tcode} must map context names to step objects", tcode=tcode)
    if START_STEP_ID in contexts:
        raise MalformedInputError(f"Context name {START_STEP_ID} of {tcode} is reserved", tcode=tcode)

    transaction.steps.append(
        IntermediateStep(
            id=START_STEP_ID,
            action="callProgram",
            method=START_METHOD,
            param_key="Tcode",
            next=_first_step_id(contexts),
        )
    )
    for context_name, context_steps in contexts.items():
        for step_name, record in context_steps.items():
            if not isinstance(record, dict):
                raise MalformedInputError(f"Step {context_name}.{step_name} of {tcode} must be an object", tcode=tcode)
            step = IntermediateStep.from_record(
                f"{context_name}.{step_name}",
                _normalise_action(record.get("action")),
                record,
                context=context_name,
                name=step_name,
            )
            _register_step_control(transaction, step)
            transaction.steps.append(step)
    return transaction


def normalize(recording: RawRecording) -> TransactionData:
    logger.info("Normalizing %s recording %s", recording.format.value, recording.tcode)
    if isinstance(recording, ContextualRecording):
        return normalize_contextual(recording)
    if isinstance(recording, StepsOnlyRecording):
        return normalize_steps_only(recording)
    return normalize_legacy(recording)
