"""
AuditStep — runs the vulnerability scanner.

Findings make the scanner exit non-zero.  With the default policy that
is advisory: the step ends as WARNING with the counts in its detail.
"""

from __future__ import annotations

from datetime import datetime

from buildpipe.core.constants import STEP_AUDIT
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import AuditDetail
from buildpipe.pipeline.parsers import AuditSummaryParser, TextResultParser
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)


class AuditStep(PipelineStep):
    """Run the security audit."""

    key = STEP_AUDIT
    name = "Security audit"

    def __init__(self, parser: TextResultParser | None = None) -> None:
        self.parser = parser or AuditSummaryParser()

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        command = ctx.config.commands.audit
        proc = await self._run_command(ctx, command)
        counts = self.parser.parse(proc.output)

        warning = None
        if not proc.ok and not proc.timed_out:
            warning = f"Security audit reported {counts.vulnerabilities} vulnerabilities"

        detail = AuditDetail(
            command=command,
            exit_code=proc.exit_code,
            vulnerabilities=counts.vulnerabilities,
            by_severity=dict(counts.by_severity),
            warning=warning,
        )
        logger.info(
            "Security audit finished",
            exit_code=proc.exit_code,
            vulnerabilities=counts.vulnerabilities,
        )
        return self._classify_exit(ctx, started_at, proc, detail)
