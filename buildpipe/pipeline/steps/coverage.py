"""
CoverageStep — generates coverage reports and reads the summary.

Percentages come from the istanbul-style ``coverage-summary.json`` in the
coverage directory.  A missing or malformed summary yields zeros rather
than failing the step; the quality gate then flags the shortfall.
"""

from __future__ import annotations

from datetime import datetime

from buildpipe.core.constants import COVERAGE_CATEGORIES, STEP_COVERAGE, coverage_metric
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import CoverageDetail
from buildpipe.pipeline.parsers import read_coverage_summary
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)

SUMMARY_FILENAME = "coverage-summary.json"


class CoverageStep(PipelineStep):
    """Generate coverage reports and collect percentages."""

    key = STEP_COVERAGE
    name = "Coverage report generation"

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        proc = await self._run_command(ctx, ctx.config.commands.coverage)

        summary_path = ctx.path(ctx.config.coverage_dir) / SUMMARY_FILENAME
        percentages = read_coverage_summary(summary_path)
        found = percentages is not None
        if percentages is None:
            percentages = {category: 0.0 for category in COVERAGE_CATEGORIES}

        warning = None
        if not proc.ok and not proc.timed_out:
            warning = "Coverage report generation failed"

        detail = CoverageDetail(
            statements=percentages["statements"],
            branches=percentages["branches"],
            functions=percentages["functions"],
            lines=percentages["lines"],
            summary_found=found,
            summary_path=str(summary_path),
            warning=warning,
        )
        ctx.record_metrics({
            coverage_metric(category): pct for category, pct in percentages.items()
        })

        logger.info("Coverage collected", summary_found=found, **percentages)
        return self._classify_exit(ctx, started_at, proc, detail)
