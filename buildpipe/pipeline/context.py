"""
PipelineContext — state carried through every step of one run.

Holds the run configuration, the process runner, and the report being
built.  Steps read configuration from here, run commands through the
runner, and publish measurements with record_metrics().  Only the
orchestrator appends StepResults to the report.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from buildpipe.core.config import PipelineConfig
from buildpipe.pipeline.report import PipelineReport
from buildpipe.runner.process import ProcessRunner


@dataclass
class PipelineContext:
    config: PipelineConfig
    runner: ProcessRunner
    report: PipelineReport

    # ─── Execution tracking ────────────────────────────
    current_step_index: int = 0
    total_steps: int = 0

    def path(self, configured: Path | str) -> Path:
        """Resolve a configured path against the working directory."""
        return self.config.resolve(configured)

    def record_metrics(self, values: Mapping[str, float]) -> None:
        """Publish measurements into the report."""
        self.report.record_metrics(values)
