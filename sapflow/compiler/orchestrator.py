"""Umbrella `mainFlow` document that calls each transaction flow in sequence.

Deprecated: batches are written as one flow file per transaction. Kept for
consumers that still read `mainFlow.json`.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from .models import TERMINAL_STEP_ID, AliasTable

logger = logging.getLogger(__name__)

MAIN_FLOW_VERSION = "1.0"
MAIN_FLOW_TX = "mainFlow generated automatically"


def _run_step_id(tcode: str) -> str:
    return f"run{tcode[:1].upper()}{tcode[1:]}"


def generate_main_flow(
    tcodes: List[str],
    aliases: AliasTable,
    meta_info: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    meta_info = meta_info or {}
    logger.info("Generating mainFlow for %d transactions", len(tcodes))

    steps: Dict[str, Dict[str, Any]] = {}
    for index, tcode in enumerate(tcodes):
        next_id = _run_step_id(tcodes[index + 1]) if index + 1 < len(tcodes) else TERMINAL_STEP_ID
        steps[_run_step_id(tcode)] = {"action": "callSubflow", "subflow": tcode, "next": next_id}
    steps[TERMINAL_STEP_ID] = {"action": "exit"}

    return {
        "$meta": {
            "version": meta_info.get("version") or MAIN_FLOW_VERSION,
            "tx": meta_info.get("tx") or MAIN_FLOW_TX,
            "created": meta_info.get("created") or date.today().isoformat(),
        },
        **aliases.to_dict(),
        "$mainFlow": {"steps": steps},
    }
