"""Recording sources and flow sinks.

The compiler only needs bytes by logical path in and one JSON document per
logical path out; these local-directory implementations are what the CLI and
the API use.
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Protocol

logger = logging.getLogger(__name__)


class RecordingSource(Protocol):
    def list_paths(self) -> List[str]:
        ...

    def read_bytes(self, path: str) -> bytes:
        ...


class FlowSink(Protocol):
    def write(self, path: str, document: Dict[str, Any]) -> None:
        ...


def safe_join(base: Path, name: str) -> Path:
    dest = (base / name).resolve()
    if os.path.commonpath([str(base), str(dest)]) != str(base):
        raise ValueError(f"Invalid path outside {base}: {name}")
    return dest


class DirectoryRecordingSource:
    """Every `*.json` file directly inside a directory, in name order."""

    def __init__(self, root: Path, pattern: str = "*.json"):
        self.root = Path(root).resolve()
        self.pattern = pattern

    def list_paths(self) -> List[str]:
        if not self.root.is_dir():
            raise FileNotFoundError(f"Input directory not found: {self.root}")
        return sorted(p.name for p in self.root.glob(self.pattern) if p.is_file())

    def read_bytes(self, path: str) -> bytes:
        return safe_join(self.root, path).read_bytes()


class DirectoryFlowSink:
    def __init__(self, root: Path):
        self.root = Path(root).resolve()

    def write(self, path: str, document: Dict[str, Any]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        dest = safe_join(self.root, path)
        dest.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("Wrote %s", dest)


class MemoryFlowSink:
    def __init__(self):
        self.documents: Dict[str, Dict[str, Any]] = {}

    def write(self, path: str, document: Dict[str, Any]) -> None:
        self.documents[path] = document
