"""
Command-line entry point.

Usage:
    buildpipe                          # full pipeline in the current directory
    buildpipe --flow test --workdir app
    buildpipe --strict                 # PARTIAL also exits non-zero

Everything not given on the command line comes from the environment /
.env (see buildpipe.core.config.Settings).
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Sequence

from buildpipe import __version__
from buildpipe.core.config import Settings
from buildpipe.core.logging import LOG_FORMATS, setup_logging
from buildpipe.pipeline.engine import PipelineOrchestrator
from buildpipe.pipeline.flow_resolver import FLOW_REGISTRY


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="buildpipe",
        description="Run the build/test pipeline and write its reports",
    )
    parser.add_argument("--flow", choices=sorted(FLOW_REGISTRY), help="Step sequence to run")
    parser.add_argument("--workdir", help="Project directory (default: WORK_DIR or .)")
    parser.add_argument("--reports-dir", help="Where the JSON and HTML reports are written")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-format", choices=LOG_FORMATS)
    parser.add_argument(
        "--strict", action="store_true", help="Exit non-zero on PARTIAL as well as FAILED",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    setup_logging(args.log_level or settings.LOG_LEVEL, args.log_format or settings.LOG_FORMAT)

    overrides: dict = {}
    if args.flow:
        overrides["flow"] = args.flow
    if args.workdir:
        overrides["work_dir"] = Path(args.workdir)
    if args.reports_dir:
        overrides["reports_dir"] = Path(args.reports_dir)
    if args.strict:
        overrides["fail_on_partial"] = True
    config = settings.to_pipeline_config(**overrides)

    outcome = asyncio.run(PipelineOrchestrator(config).run())

    report = outcome.report
    print(f"Pipeline {report.status} in {report.build_time_ms / 1000:.2f}s")
    for error in report.errors:
        print(f"  ✗ {error}")
    for violation in report.quality.violations:
        print(f"  ⚠ {violation}")
    for path in (outcome.documents.json_path, outcome.documents.html_path):
        if path is not None:
            print(f"  Report: {path}")
    return outcome.exit_code
