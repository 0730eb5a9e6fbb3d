"""LintStep — runs the linter.  Advisory by default."""

from __future__ import annotations

from datetime import datetime

from buildpipe.core.constants import STEP_LINT
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import LintDetail
from buildpipe.pipeline.parsers import LintSummaryParser, TextResultParser
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)


class LintStep(PipelineStep):
    key = STEP_LINT
    name = "Code linting"

    def __init__(self, parser: TextResultParser | None = None) -> None:
        self.parser = parser or LintSummaryParser()

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        command = ctx.config.commands.lint
        proc = await self._run_command(ctx, command)
        counts = self.parser.parse(proc.output)

        warning = None
        if not proc.ok and not proc.timed_out:
            warning = f"Linter reported {counts.problems} problems"

        detail = LintDetail(
            command=command,
            exit_code=proc.exit_code,
            problems=counts.problems,
            errors=counts.errors,
            warnings=counts.warnings,
            warning=warning,
        )
        logger.info("Linting finished", exit_code=proc.exit_code, problems=counts.problems)
        return self._classify_exit(ctx, started_at, proc, detail)
