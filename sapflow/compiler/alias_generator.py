"""Alias generation over a whole batch of transactions.

Runs in three passes once every transaction has been normalized:

1. prefix consolidation - one `usr` and one `popup` prefix for the batch
2. per-transaction naming - every registered control gets a readable alias and
   its path is rewritten against the prefixes (`{{usr}}ctxtF1`)
3. deduplication - a name defined by two or more transactions with the same
   path moves to the shared `main` namespace; same name with different paths
   stays put and is reported in `AliasTable.conflicts`
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, Optional

from .models import SHARED_NAMESPACE, AliasTable, ControlInfo, TransactionData
from .path_patterns import collect_patterns, is_main_prefix, is_popup_prefix

logger = logging.getLogger(__name__)

DEFAULT_PREFIXES = {
    "usr": "/app/con[0]/ses[0]/wnd[0]/usr/",
    "popup": "/app/con[0]/ses[0]/wnd[1]/usr/",
}

EXECUTE_BUTTON = "btn[8]"
ACCEPT_BUTTON = "btn[0]"

BUTTON_KINDS = {"GuiButton"}
TEXT_KINDS = {"GuiTextField", "GuiCTextField", "GuiComboBox", "GuiPasswordField"}
CHECKBOX_KINDS = {"GuiCheckBox"}
GRID_KINDS = {"GuiShell", "GuiGridView", "GuiTableControl"}

GRID_ALIAS = "gridResult"

_PREFIX_TOKEN = re.compile(r"\{\{(\w+)\}\}")
_NON_WORD = re.compile(r"\W+")
_FIELD_PREFIX = re.compile(r"^(ctxt|txt|cmb)", re.IGNORECASE)
_CHECKBOX_PREFIX = re.compile(r"^chk", re.IGNORECASE)


def consolidate_prefixes(transactions: Iterable[TransactionData]) -> Dict[str, str]:
    patterns = collect_patterns(transactions)
    prefixes: Dict[str, str] = {}

    usr = next((p for p in patterns if is_main_prefix(p)), None)
    popup = next((p for p in patterns if is_popup_prefix(p)), None)
    prefixes["usr"] = usr or DEFAULT_PREFIXES["usr"]
    prefixes["popup"] = popup or DEFAULT_PREFIXES["popup"]
    if not usr or not popup:
        logger.debug("Using default prefixes for missing areas: %s", prefixes)
    return prefixes


def _field_name(segment: str, pattern: re.Pattern) -> str:
    field = pattern.sub("", segment).replace("[", "").replace("]", "")
    for marker, suffix in (("-LOW", "Low"), ("-HIGH", "High")):
        if marker in field:
            return field.replace(marker, "").lower() + suffix
    return field.lower()


def generate_alias_name(control_path: str, control: Optional[ControlInfo] = None) -> str:
    """Readable alias from the final path segment and control kind."""
    kind = control.control_kind if control else None
    segment = control_path.rstrip("/").split("/")[-1]
    lowered = segment.lower()

    if lowered.startswith("btn") or kind in BUTTON_KINDS:
        if EXECUTE_BUTTON in segment:
            return "variant.execBtn"
        if ACCEPT_BUTTON in segment:
            return "popup.accept"
        return f"button.{_NON_WORD.sub('', segment)}"
    if _FIELD_PREFIX.match(segment) or kind in TEXT_KINDS:
        return f"filter.{_field_name(segment, _FIELD_PREFIX)}"
    if lowered.startswith("chk") or kind in CHECKBOX_KINDS:
        return f"filter.{_field_name(segment, _CHECKBOX_PREFIX)}"
    if "shell" in lowered or kind in GRID_KINDS:
        return GRID_ALIAS
    return f"control.{_NON_WORD.sub('', segment)}"


def apply_prefixes(control_path: str, prefixes: Dict[str, str]) -> str:
    for key, prefix in sorted(prefixes.items(), key=lambda item: len(item[1]), reverse=True):
        if control_path.startswith(prefix):
            return f"{{{{{key}}}}}{control_path[len(prefix):]}"
    return control_path


def expand_alias(path: str, prefixes: Dict[str, str]) -> str:
    """Replace `{{key}}` prefix tokens with the full prefix path."""
    return _PREFIX_TOKEN.sub(lambda match: prefixes.get(match.group(1), match.group(0)), path)


def resolve_alias(table: AliasTable, name: str, tcode: Optional[str] = None) -> Optional[str]:
    """Full control path for an alias, looked up in the transaction namespace then `main`."""
    for namespace in (tcode, SHARED_NAMESPACE):
        if namespace and name in table.aliases.get(namespace, {}):
            return expand_alias(table.aliases[namespace][name], table.prefixes)
    return None


def _unique_name(name: str, path: str, namespace: Dict[str, str]) -> str:
    candidate, counter = name, 2
    while candidate in namespace and namespace[candidate] != path:
        candidate = f"{name}{counter}"
        counter += 1
    return candidate


def generate_transaction_aliases(transaction: TransactionData, prefixes: Dict[str, str]) -> Dict[str, str]:
    namespace: Dict[str, str] = {}
    path_to_alias: Dict[str, str] = {}

    for control_path, control in transaction.controls.items():
        processed = apply_prefixes(control_path, prefixes)
        alias = _unique_name(generate_alias_name(control_path, control), processed, namespace)
        namespace[alias] = processed
        path_to_alias[control_path] = alias

    for step in transaction.steps:
        if step.target and step.target in path_to_alias:
            step.alias = path_to_alias[step.target]
    return namespace


def consolidate_common_aliases(table: AliasTable) -> None:
    tcodes = [ns for ns in table.aliases if ns != SHARED_NAMESPACE]
    if len(tcodes) < 2:
        return

    usage: Dict[str, Dict[str, str]] = {}
    for tcode in tcodes:
        for alias, path in table.aliases[tcode].items():
            usage.setdefault(alias, {})[tcode] = path

    shared = table.namespace(SHARED_NAMESPACE)
    for alias, paths in usage.items():
        if len(paths) < 2:
            continue
        if len(set(paths.values())) > 1:
            table.conflicts[alias] = paths
            logger.warning(
                "Alias %s maps to different paths in %s, keeping it per transaction",
                alias, ", ".join(sorted(paths)),
            )
            continue
        shared[alias] = next(iter(paths.values()))
        for tcode in paths:
            del table.aliases[tcode][alias]


def generate_aliases(transactions: Dict[str, TransactionData]) -> AliasTable:
    logger.info("Generating prefixes and aliases for %d transactions", len(transactions))
    table = AliasTable(prefixes=consolidate_prefixes(transactions.values()))

    for tcode, transaction in transactions.items():
        table.aliases[tcode] = generate_transaction_aliases(transaction, table.prefixes)

    consolidate_common_aliases(table)
    logger.debug(
        "Shared aliases: %d, conflicts: %d",
        len(table.aliases[SHARED_NAMESPACE]), len(table.conflicts),
    )
    return table

