"""Runtime settings loaded from the environment (and `.env` files via python-dotenv).

Variables:
    SAPFLOW_INPUT_DIR         recordings directory (default ./sap-gui-env)
    SAPFLOW_OUTPUT_DIR        flow output directory (default ./output)
    SAPFLOW_TARGETS_DIR       element catalogs directory (default ./sap-targets)
    SAPFLOW_MAIN_FLOW         "true" to also write the deprecated mainFlow.json
    SAPFLOW_MAIN_FLOW_VERSION version stamped into mainFlow.json
    SAPFLOW_MAIN_FLOW_TX      description stamped into mainFlow.json
    SAPFLOW_WORKERS           threads used to normalize recordings
    ALLOW_ORIGINS             comma separated CORS origins for the API
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _load_env_files() -> None:
    """Load `.env` from the working directory, then from the repository root."""
    load_dotenv()
    root_env = Path(__file__).resolve().parents[2] / ".env"
    if root_env.exists():
        load_dotenv(dotenv_path=root_env, override=False)


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass
class Settings:
    input_dir: Path = Path("./sap-gui-env")
    output_dir: Path = Path("./output")
    targets_dir: Path = Path("./sap-targets")
    write_main_flow: bool = False
    main_flow_version: str = "2.3"
    main_flow_tx: str = "Individual SAP flow processing"
    workers: int = 1
    allow_origins: List[str] = field(default_factory=lambda: ["http://localhost:5173"])

    @classmethod
    def from_env(cls) -> "Settings":
        _load_env_files()
        origins = os.getenv("ALLOW_ORIGINS", "http://localhost:5173").split(",")
        return cls(
            input_dir=Path(os.getenv("SAPFLOW_INPUT_DIR", "./sap-gui-env")),
            output_dir=Path(os.getenv("SAPFLOW_OUTPUT_DIR", "./output")),
            targets_dir=Path(os.getenv("SAPFLOW_TARGETS_DIR", "./sap-targets")),
            write_main_flow=_env_flag("SAPFLOW_MAIN_FLOW"),
            main_flow_version=os.getenv("SAPFLOW_MAIN_FLOW_VERSION", "2.3"),
            main_flow_tx=os.getenv("SAPFLOW_MAIN_FLOW_TX", "Individual SAP flow processing"),
            workers=max(_env_int("SAPFLOW_WORKERS", 1), 1),
            allow_origins=[o.strip() for o in origins if o.strip()],
        )

    def main_flow_meta(self) -> dict:
        return {"version": self.main_flow_version, "tx": self.main_flow_tx}


def get_settings() -> Settings:
    """FastAPI dependency; tests override it with fixed directories."""
    return Settings.from_env()
