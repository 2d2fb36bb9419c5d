"""Format detection: classify a parsed recording into one of the three input shapes.

Decision order:
1. `$meta` or `targetContext` at the top level -> contextual
2. `steps` without a legacy `Steps` -> steps-only
3. `Steps` -> legacy
4. anything else -> legacy (field access may fail later, in the normalizer)
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Type

from .models import (
    ContextualRecording,
    LegacyRecording,
    RawRecording,
    RecordingFormat,
    StepsOnlyRecording,
)

logger = logging.getLogger(__name__)

_RECORDING_TYPES: Dict[RecordingFormat, Type[RawRecording]] = {
    RecordingFormat.LEGACY: LegacyRecording,
    RecordingFormat.STEPS_ONLY: StepsOnlyRecording,
    RecordingFormat.CONTEXTUAL: ContextualRecording,
}


def _present(document: Dict[str, Any], key: str) -> bool:
    return document.get(key) is not None


def detect_format(document: Any) -> RecordingFormat:
    if not isinstance(document, dict):
        return RecordingFormat.LEGACY
    if _present(document, "$meta") or _present(document, "targetContext"):
        return RecordingFormat.CONTEXTUAL
    if _present(document, "steps") and not _present(document, "Steps"):
        return RecordingFormat.STEPS_ONLY
    if _present(document, "Steps"):
        return RecordingFormat.LEGACY
    return RecordingFormat.LEGACY


def to_recording(document: Any, tcode: str) -> RawRecording:
    """Resolve the document's shape once and wrap it in the matching recording type."""
    fmt = detect_format(document)
    if fmt is RecordingFormat.LEGACY and not (isinstance(document, dict) and _present(document, "Steps")):
        logger.info("Unrecognised recording format for %s, falling back to legacy", tcode)
    return _RECORDING_TYPES[fmt](document=document, tcode=tcode)
