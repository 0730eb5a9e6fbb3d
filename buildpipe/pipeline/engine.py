"""
PipelineOrchestrator — runs the step sequence and owns the report.

Responsibilities:
    - Create the PipelineReport when the run starts
    - Execute each step in order, strictly one at a time
    - Stop at the first FAILED step (later steps never run)
    - Evaluate the quality gate when no step failed
    - Finalize the report and write both documents, on every path

Lifecycle:
    RUNNING ──(all steps terminal, none FAILED)──────────► FINALIZING → SUCCESS | PARTIAL
    RUNNING ──(FAILED step / unexpected fault)─► ABORTING ► FINALIZING → FAILED
"""

from __future__ import annotations

from dataclasses import dataclass

from buildpipe.core.config import PipelineConfig
from buildpipe.core.constants import PipelineStatus, StepStatus
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.flow_resolver import FlowResolver
from buildpipe.pipeline.report import PipelineReport, QualityResult, StepResult
from buildpipe.pipeline.step import PipelineStep
from buildpipe.quality.gate import QualityGate
from buildpipe.reporting.renderer import RenderedReports, ReportRenderer
from buildpipe.runner.process import ProcessRunner


@dataclass(frozen=True)
class PipelineOutcome:
    """What a run leaves behind: the finalized report and where it was written."""

    report: PipelineReport
    documents: RenderedReports
    exit_code: int

    @property
    def status(self) -> PipelineStatus:
        return self.report.status


def verdict(report: PipelineReport, quality: QualityResult) -> PipelineStatus:
    """
    Overall status from step outcomes and the quality gate.

    FAILED whenever any step failed; SUCCESS only with no degraded step
    and no quality violation; PARTIAL otherwise.
    """
    if report.has_failed_step:
        return PipelineStatus.FAILED
    degraded = any(
        step.status in (StepStatus.WARNING, StepStatus.PARTIAL) for step in report.steps
    )
    if degraded or (quality.evaluated and not quality.passed):
        return PipelineStatus.PARTIAL
    return PipelineStatus.SUCCESS


class PipelineOrchestrator:
    """
    Runs an ordered list of PipelineStep objects and reports on them.

    Everything that shapes a run (policy table, timeouts, thresholds,
    paths) comes in through ``config``; the runner, steps and renderer
    can be injected for testing.

    Usage::

        orchestrator = PipelineOrchestrator(config)
        outcome = await orchestrator.run()
        sys.exit(outcome.exit_code)
    """

    def __init__(
        self,
        config: PipelineConfig,
        runner: ProcessRunner | None = None,
        steps: list[PipelineStep] | None = None,
        renderer: ReportRenderer | None = None,
        flow_resolver: FlowResolver | None = None,
    ) -> None:
        self.config = config
        self.runner = runner or ProcessRunner(cwd=config.work_dir)
        self.flow_resolver = flow_resolver or FlowResolver()
        self._steps = steps
        self.renderer = renderer or ReportRenderer(
            config.resolve(config.reports_dir), quality_gate=config.quality_gate,
        )
        self.quality_gate = QualityGate(config.quality_gate)
        self.logger = get_logger("pipeline.engine")

    async def run(self) -> PipelineOutcome:
        """Full pipeline execution.  Always returns a finalized, written report."""
        report = PipelineReport(
            project=self.config.project_name,
            version=self.config.version,
            revision=self.config.revision,
            build_number=self.config.build_number,
            flow=self.config.flow,
        )
        log = self.logger.bind(run_id=report.run_id, project=report.project, flow=report.flow)
        log.info("Pipeline started", revision=report.revision, build=report.build_number)

        try:
            steps = self._steps if self._steps is not None else self.flow_resolver.resolve(self.config.flow)
            await self.run_steps(report, steps)
        except Exception as exc:
            log.exception("Pipeline aborted by unexpected error")
            report.mark(PipelineStatus.ABORTING)
            report.add_error(f"Pipeline aborted: {exc}")
        finally:
            documents = self._finalize(report)

        exit_code = self.exit_code_for(report.status)
        log.info(
            "Pipeline finished",
            status=str(report.status),
            steps=len(report.steps),
            build_time_ms=report.build_time_ms,
            exit_code=exit_code,
        )
        return PipelineOutcome(report=report, documents=documents, exit_code=exit_code)

    async def run_steps(self, report: PipelineReport, steps: list[PipelineStep]) -> None:
        """
        Execute ``steps`` in order, appending each result to ``report``.

        Stops at the first FAILED step, recording the fatal error and
        moving the report to ABORTING.
        """
        ctx = PipelineContext(
            config=self.config,
            runner=self.runner,
            report=report,
            total_steps=len(steps),
        )
        log = self.logger.bind(run_id=report.run_id, total_steps=len(steps))

        for index, step in enumerate(steps):
            ctx.current_step_index = index
            step_log = log.bind(step=step.key, step_index=index + 1)
            step_log.info(f"Step {index + 1}/{len(steps)}: {step.name}")

            result = await step.run(ctx)
            report.add_step(result)
            self._narrate(step_log, result)

            if result.failed:
                report.add_error(f"{result.name} failed: {result.error}")
                report.mark(PipelineStatus.ABORTING)
                skipped = [s.key for s in steps[index + 1:]]
                step_log.error("Fatal step failure, pipeline stopping", not_run=skipped)
                return

    # ─── Finalization ──────────────────────────────────

    def _finalize(self, report: PipelineReport) -> RenderedReports:
        """Compute the verdict, then write both documents.  Runs exactly once per run."""
        report.mark(PipelineStatus.FINALIZING)

        if report.errors or report.has_failed_step:
            # A quality gate cannot upgrade a system failure.
            quality = QualityResult(evaluated=False)
            status = PipelineStatus.FAILED
        else:
            quality = self.quality_gate.evaluate(report.metrics)
            status = verdict(report, quality)
            for violation in quality.violations:
                self.logger.warning("Quality gate violation", violation=violation)

        report.finalize(status, quality)
        documents = self.renderer.write(report)
        self.logger.info(
            "Reports written",
            status=str(status),
            json=str(documents.json_path) if documents.json_path else None,
            html=str(documents.html_path) if documents.html_path else None,
        )
        return documents

    def exit_code_for(self, status: PipelineStatus) -> int:
        """Non-zero only for FAILED (or PARTIAL when fail_on_partial is set)."""
        if status == PipelineStatus.FAILED:
            return 1
        if status == PipelineStatus.PARTIAL and self.config.fail_on_partial:
            return 1
        return 0

    @staticmethod
    def _narrate(log, result: StepResult) -> None:
        fields = dict(status=str(result.status), duration_ms=result.duration_ms)
        if result.status == StepStatus.SUCCESS:
            log.info("Step completed", **fields)
        elif result.status == StepStatus.FAILED:
            log.error("Step failed", error=result.error, **fields)
        else:
            log.warning("Step completed with issues", detail=result.detail.to_dict(), **fields)
