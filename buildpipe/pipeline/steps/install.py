"""InstallStep — installs project dependencies.  Fatal on failure."""

from __future__ import annotations

from datetime import datetime

from buildpipe.core.constants import STEP_INSTALL
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import InstallDetail
from buildpipe.pipeline.parsers import InstallSummaryParser, TextResultParser
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)


class InstallStep(PipelineStep):
    """Run the dependency installer."""

    key = STEP_INSTALL
    name = "Dependency installation"

    def __init__(self, parser: TextResultParser | None = None) -> None:
        self.parser = parser or InstallSummaryParser()

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        command = ctx.config.commands.install
        proc = await self._run_command(ctx, command)

        detail = InstallDetail(
            command=command,
            exit_code=proc.exit_code,
            packages_installed=self.parser.parse(proc.output),
        )
        logger.info(
            "Dependency installation finished",
            exit_code=proc.exit_code,
            packages=detail.packages_installed,
        )
        return self._classify_exit(ctx, started_at, proc, detail)
