"""Common control-path prefixes: main usable area, popup usable area, toolbar."""
from __future__ import annotations

import re
from typing import Iterable, List

from .models import TransactionData

USR_PATTERN = re.compile(r"^(/app/con\[\d+\]/ses\[\d+\]/wnd\[\d+\]/usr/)")
POPUP_PATTERN = re.compile(r"^(/app/con\[\d+\]/ses\[\d+\]/wnd\[1\]/usr/)")
TBAR_PATTERN = re.compile(r"^(/app/con\[\d+\]/ses\[\d+\]/wnd\[\d+\]/tbar\[\d+\]/)")

POPUP_WINDOW_MARKER = "/wnd[1]/"


def extract_prefixes(path: str) -> List[str]:
    prefixes: List[str] = []
    for pattern in (USR_PATTERN, POPUP_PATTERN, TBAR_PATTERN):
        match = pattern.match(path)
        if match and match.group(1) not in prefixes:
            prefixes.append(match.group(1))
    return prefixes


def is_popup_prefix(prefix: str) -> bool:
    return POPUP_PATTERN.match(prefix) is not None


def is_main_prefix(prefix: str) -> bool:
    return USR_PATTERN.match(prefix) is not None and POPUP_WINDOW_MARKER not in prefix


def analyze_path_patterns(transaction: TransactionData) -> TransactionData:
    for path, control in transaction.controls.items():
        for prefix in extract_prefixes(path):
            transaction.add_pattern(prefix)
        transaction.add_control_kind(control.control_kind)
    return transaction


def collect_patterns(transactions: Iterable[TransactionData]) -> List[str]:
    patterns: List[str] = []
    for transaction in transactions:
        for pattern in transaction.path_patterns:
            if pattern not in patterns:
                patterns.append(pattern)
    return patterns
