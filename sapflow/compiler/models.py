"""Records shared by the recording-to-flow compiler stages."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional

TERMINAL_STEP_ID = "end"
START_STEP_ID = "startTransaction"
START_METHOD = "sapSession.StartTransaction"
SHARED_NAMESPACE = "main"


class RecordingFormat(str, Enum):
    LEGACY = "legacy"
    STEPS_ONLY = "steps-only"
    CONTEXTUAL = "contextual"


@dataclass
class RawRecording:
    """A parsed recording document tagged with its detected shape."""

    format: ClassVar[RecordingFormat]

    document: Dict[str, Any]
    tcode: str


@dataclass
class LegacyRecording(RawRecording):
    format: ClassVar[RecordingFormat] = RecordingFormat.LEGACY


@dataclass
class StepsOnlyRecording(RawRecording):
    format: ClassVar[RecordingFormat] = RecordingFormat.STEPS_ONLY


@dataclass
class ContextualRecording(RawRecording):
    format: ClassVar[RecordingFormat] = RecordingFormat.CONTEXTUAL


@dataclass
class ControlInfo:
    display_name: str
    control_kind: Optional[str] = None
    occurrences: int = 1


@dataclass
class IntermediateStep:
    id: str
    action: str
    target: Optional[str] = None
    method: Optional[str] = None
    param_key: Optional[str] = None
    param_value: Any = None
    timeout: Any = None
    operator: Optional[str] = None
    next: Optional[str] = None
    if_true: Optional[str] = None
    if_false: Optional[str] = None
    context: Optional[str] = None
    name: Optional[str] = None
    control_kind: Optional[str] = None
    is_checkbox: bool = False
    value: Any = None
    alias: Optional[str] = None
    # ordered copy of the source record (minus "id" and "action") for passthrough formats
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, step_id: str, action: str, record: Dict[str, Any], **extra: Any) -> "IntermediateStep":
        fields = {key: value for key, value in record.items() if key not in ("id", "action")}
        return cls(
            id=step_id,
            action=action,
            target=record.get("target") if isinstance(record.get("target"), str) else None,
            method=record.get("method"),
            param_key=record.get("paramKey"),
            param_value=record.get("paramValue"),
            timeout=record.get("timeout"),
            operator=record.get("operator"),
            next=record.get("next"),
            if_true=record.get("true"),
            if_false=record.get("false"),
            control_kind=record.get("controlType") if isinstance(record.get("controlType"), str) else None,
            value=record.get("value"),
            fields=fields,
            **extra,
        )


@dataclass
class TransactionData:
    tcode: str
    format: RecordingFormat
    steps: List[IntermediateStep] = field(default_factory=list)
    controls: Dict[str, ControlInfo] = field(default_factory=dict)
    path_patterns: List[str] = field(default_factory=list)
    control_kinds: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)
    target_context: Dict[str, Any] = field(default_factory=dict)

    def register_control(self, path: str, display_name: str, control_kind: Optional[str]) -> None:
        control = self.controls.get(path)
        if control is None:
            self.controls[path] = ControlInfo(display_name=display_name, control_kind=control_kind)
        else:
            control.occurrences += 1

    def add_pattern(self, pattern: str) -> None:
        if pattern not in self.path_patterns:
            self.path_patterns.append(pattern)

    def add_control_kind(self, kind: Optional[str]) -> None:
        if kind and kind not in self.control_kinds:
            self.control_kinds.append(kind)


@dataclass
class AliasTable:
    prefixes: Dict[str, str] = field(default_factory=dict)
    aliases: Dict[str, Dict[str, str]] = field(default_factory=lambda: {SHARED_NAMESPACE: {}})
    # alias name -> {tcode -> path} for same-name aliases whose paths disagree
    conflicts: Dict[str, Dict[str, str]] = field(default_factory=dict)

    def namespace(self, name: str) -> Dict[str, str]:
        return self.aliases.setdefault(name, {})

    def to_dict(self) -> Dict[str, Any]:
        return {"prefixes": dict(self.prefixes), "aliases": {ns: dict(entries) for ns, entries in self.aliases.items()}}


@dataclass
class Violation:
    step_id: str
    kind: str
    message: str
    severity: str = "error"

    def to_dict(self) -> Dict[str, str]:
        return {
            "stepId": self.step_id,
            "issue": self.kind,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass
class SkippedRecording:
    tcode: str
    source: str
    reason: str


@dataclass
class BatchContext:
    """Caller-owned state for one compilation batch."""

    transactions: Dict[str, TransactionData] = field(default_factory=dict)
    skipped: List[SkippedRecording] = field(default_factory=list)
    aliases: Optional[AliasTable] = None


@dataclass
class CompileResult:
    flows: Dict[str, Dict[str, Any]]
    aliases: AliasTable
    violations: Dict[str, List[Violation]] = field(default_factory=dict)
    skipped: List[SkippedRecording] = field(default_factory=list)
    main_flow: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "flows": self.flows,
            **self.aliases.to_dict(),
            "conflicts": {name: dict(paths) for name, paths in self.aliases.conflicts.items()},
            "violations": {tcode: [v.to_dict() for v in items] for tcode, items in self.violations.items()},
            "skipped": [
                {"tcode": item.tcode, "source": item.source, "reason": item.reason} for item in self.skipped
            ],
        }
        if self.main_flow is not None:
            payload["mainFlow"] = self.main_flow
        return payload
