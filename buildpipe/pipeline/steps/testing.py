"""
TestStep — runs the test suite and classifies the outcome.

    exit 0, no failures                      → SUCCESS
    failures among recognised tests          → PARTIAL (counts in detail)
    non-zero exit, fewer than
    ``min_recognized_tests`` recognised      → FAILED (runner broke, not tests)
    timeout                                  → FAILED

Pass / fail / skip counts are published as ``tests.*`` metrics for the
quality gate.
"""

from __future__ import annotations

from datetime import datetime

from buildpipe.core.constants import (
    METRIC_TESTS_FAILED,
    METRIC_TESTS_PASSED,
    METRIC_TESTS_SKIPPED,
    METRIC_TESTS_TOTAL,
    STEP_TEST,
    StepKind,
)
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import TestDetail
from buildpipe.pipeline.errors import StepExecutionError, StepTimeoutError
from buildpipe.pipeline.parsers import CompositeTestParser, TextResultParser
from buildpipe.pipeline.report import StepResult
from buildpipe.pipeline.step import PipelineStep

logger = get_logger(__name__)


class TestStep(PipelineStep):
    """Execute the test suite."""

    __test__ = False

    key = STEP_TEST
    name = "Test execution"
    kind = StepKind.TEST

    def __init__(self, parser: TextResultParser | None = None) -> None:
        self.parser = parser or CompositeTestParser()

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        command = ctx.config.test_command
        proc = await self._run_command(ctx, command)
        counts = self.parser.parse(proc.output)

        detail = TestDetail(
            command=command,
            exit_code=proc.exit_code,
            total=counts.total,
            passed=counts.passed,
            failed=counts.failed,
            skipped=counts.skipped,
        )
        ctx.record_metrics({
            METRIC_TESTS_TOTAL: counts.total,
            METRIC_TESTS_PASSED: counts.passed,
            METRIC_TESTS_FAILED: counts.failed,
            METRIC_TESTS_SKIPPED: counts.skipped,
        })
        logger.info(
            "Test run finished",
            exit_code=proc.exit_code,
            passed=counts.passed,
            failed=counts.failed,
            skipped=counts.skipped,
        )

        if proc.timed_out:
            raise StepTimeoutError(
                "timeout", timeout_ms=self.timeout_ms(ctx), step_name=self.key, detail=detail,
            )

        minimum = ctx.config.min_recognized_tests
        recognized = counts.total >= minimum

        if proc.exit_code == 0:
            if counts.failed and recognized:
                return self._partial(started_at, detail)
            return self._success(started_at, detail)

        if not recognized:
            raise StepExecutionError(
                f"Test runner exited with code {proc.exit_code} and reported "
                f"{counts.total} recognisable tests (minimum {minimum})",
                step_name=self.key,
                detail=detail,
            )
        if not self.is_tolerant(ctx):
            raise StepExecutionError(
                f"{counts.failed} of {counts.total} tests failed",
                step_name=self.key,
                detail=detail,
            )
        return self._partial(started_at, detail)
