"""Compile a directory of SAP GUI recordings into one flow file per transaction.

Examples:
  python -m sapflow.cli --input-dir sap-gui-env --output-dir output
  python -m sapflow.cli --main-flow --workers 4 --verbose
"""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .compiler.pipeline import compile_batch, write_flows
from .core.settings import Settings
from .core.storage import DirectoryFlowSink, DirectoryRecordingSource

logger = logging.getLogger(__name__)


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="SAP GUI recording to flow compiler",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--input-dir",
        type=Path,
        default=settings.input_dir,
        help=f"Directory of recording JSON files (default: {settings.input_dir})",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=settings.output_dir,
        help=f"Directory for generated flows (default: {settings.output_dir})",
    )
    parser.add_argument(
        "--main-flow",
        action="store_true",
        default=settings.write_main_flow,
        help="Also write the deprecated mainFlow.json",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=settings.workers,
        help="Threads used to normalize recordings (default: %(default)s)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Verbose output",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    settings = Settings.from_env()
    args = build_parser(settings).parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        result = compile_batch(
            DirectoryRecordingSource(args.input_dir),
            workers=max(args.workers, 1),
            main_flow=args.main_flow,
            main_flow_meta=settings.main_flow_meta(),
        )
        written = write_flows(result, DirectoryFlowSink(args.output_dir))
    except (OSError, ValueError) as exc:
        logger.error("Compilation failed: %s", exc)
        return 2

    logger.info(
        "Wrote %d files to %s (%d skipped, %d flows with violations)",
        len(written),
        args.output_dir,
        len(result.skipped),
        len(result.violations),
    )
    if result.skipped:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
