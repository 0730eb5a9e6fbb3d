"""
PipelineStep — abstract base class for all pipeline steps.

Every step in the pipeline inherits from this class.  The orchestrator
calls run(), which wraps execute() in a uniform envelope: it records the
start time and duration, and converts any raised fault into a FAILED
StepResult.  Nothing raised inside a step escapes run(); the
orchestrator decides what a FAILED step means for the pipeline.
"""

from __future__ import annotations

import time
import traceback
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime, timezone

from buildpipe.core.constants import (
    DEFAULT_BUILD_TIMEOUT_MS,
    DEFAULT_TEST_TIMEOUT_MS,
    StepKind,
    StepStatus,
)
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.details import GenericDetail, StepDetail
from buildpipe.pipeline.errors import PipelineError, StepExecutionError, StepTimeoutError
from buildpipe.pipeline.report import StepResult
from buildpipe.runner.process import ProcessResult

logger = get_logger(__name__)


class PipelineStep(ABC):
    """
    Base class for every pipeline step.

    Subclasses MUST define:
        - key (str)           — identifier used by the policy table, e.g. "install"
        - name (str)          — human-readable label, e.g. "Dependency installation"
        - execute(ctx)        — the actual work, returning a StepResult

    Subclasses MAY set:
        - kind (StepKind)     — picks the default timeout when the policy
                                table has no entry for ``key``
    """

    key: str = "unnamed_step"
    name: str = "Unnamed step"
    kind: StepKind = StepKind.BUILD

    @abstractmethod
    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        """
        Run the step's logic.  Must return a terminal StepResult.

        Raise StepExecutionError to fail the step with a clean message.
        """
        ...

    async def run(self, ctx: PipelineContext) -> StepResult:
        """Execute inside the envelope.  Never raises."""
        started_at = self._now()
        clock = time.monotonic()
        try:
            result = await self.execute(ctx, started_at)
        except StepExecutionError as exc:
            detail = exc.detail if isinstance(exc.detail, StepDetail) else GenericDetail(values=exc.details)
            return self._failure(started_at, str(exc), detail=detail, elapsed_from=clock)
        except PipelineError as exc:
            logger.error("Step aborted", step=self.key, error=str(exc))
            detail = GenericDetail(values={"exception": type(exc).__name__, **exc.details})
            return self._failure(started_at, str(exc), detail=detail, elapsed_from=clock)
        except Exception as exc:
            logger.exception("Unexpected error in step", step=self.key)
            return self._failure(
                started_at,
                f"Unexpected: {exc}",
                detail=GenericDetail(values={
                    "exception": type(exc).__name__,
                    "traceback": traceback.format_exc(),
                }),
                elapsed_from=clock,
            )
        # Timing belongs to the envelope, not to the step body.
        return replace(result, started_at=started_at, duration_ms=self._elapsed_ms(clock))

    # ─── Helpers available to all steps ────────────────

    def timeout_ms(self, ctx: PipelineContext) -> int:
        """Timeout from the policy table, else the default for this kind."""
        policy = ctx.config.step_policies.get(self.key)
        if policy is not None:
            return policy.timeout_ms
        return DEFAULT_TEST_TIMEOUT_MS if self.kind == StepKind.TEST else DEFAULT_BUILD_TIMEOUT_MS

    def is_tolerant(self, ctx: PipelineContext) -> bool:
        return ctx.config.policy_for(self.key).tolerant

    async def _run_command(self, ctx: PipelineContext, command: str) -> ProcessResult:
        """Run a collaborator command with this step's timeout."""
        logger.debug("Running command", step=self.key, command=command)
        return await ctx.runner.run(command, timeout_ms=self.timeout_ms(ctx))

    def _classify_exit(
        self,
        ctx: PipelineContext,
        started_at: datetime,
        proc: ProcessResult,
        detail: StepDetail,
    ) -> StepResult:
        """
        Map a finished process onto a step status.

        Timeout always fails.  Exit 0 succeeds.  A non-zero exit is a
        WARNING on a tolerant step and a failure on a fatal one.
        """
        if proc.timed_out:
            raise StepTimeoutError(
                "timeout", timeout_ms=self.timeout_ms(ctx), step_name=self.key, detail=detail,
            )
        if proc.exit_code == 0:
            return self._success(started_at, detail)
        if self.is_tolerant(ctx):
            return self._warning(started_at, detail)
        raise StepExecutionError(
            f"Command '{proc.command}' exited with code {proc.exit_code}",
            step_name=self.key,
            detail=detail,
        )

    def _result(
        self,
        status: StepStatus,
        started_at: datetime,
        detail: StepDetail | None = None,
        error: str | None = None,
    ) -> StepResult:
        return StepResult(
            name=self.name,
            key=self.key,
            status=status,
            started_at=started_at,
            duration_ms=int((self._now() - started_at).total_seconds() * 1000),
            detail=detail if detail is not None else GenericDetail(),
            error=error,
        )

    def _success(self, started_at: datetime, detail: StepDetail | None = None) -> StepResult:
        return self._result(StepStatus.SUCCESS, started_at, detail)

    def _warning(self, started_at: datetime, detail: StepDetail | None = None) -> StepResult:
        return self._result(StepStatus.WARNING, started_at, detail)

    def _partial(self, started_at: datetime, detail: StepDetail | None = None) -> StepResult:
        return self._result(StepStatus.PARTIAL, started_at, detail)

    def _failure(
        self,
        started_at: datetime,
        error: str,
        detail: StepDetail | None = None,
        elapsed_from: float | None = None,
    ) -> StepResult:
        result = self._result(StepStatus.FAILED, started_at, detail, error or "failed")
        if elapsed_from is None:
            return result
        return replace(result, duration_ms=self._elapsed_ms(elapsed_from))

    @staticmethod
    def _elapsed_ms(clock: float) -> int:
        return int((time.monotonic() - clock) * 1000)

    def _now(self) -> datetime:
        """UTC-aware now."""
        return datetime.now(timezone.utc)
