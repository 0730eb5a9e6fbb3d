"""
StepResult and PipelineReport — the audit trail of a pipeline run.

A PipelineReport is created empty when the run starts, grows by
appending StepResults, metrics and fatal errors, and is finalized
exactly once.  After finalization it is read-only; any further mutation
raises ReportFinalizedError.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Mapping

from buildpipe.core.constants import FINAL_STATUSES, PipelineStatus, StepStatus
from buildpipe.pipeline.details import GenericDetail, StepDetail
from buildpipe.pipeline.errors import ReportFinalizedError


# ═══════════════════════════════════════════════════════════
#  StepResult
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StepResult:
    """Outcome of a single pipeline step execution."""

    name: str
    status: StepStatus
    started_at: datetime
    duration_ms: int = 0
    key: str = ""
    detail: StepDetail = field(default_factory=GenericDetail)
    error: str | None = None

    def __post_init__(self) -> None:
        if not StepStatus(self.status).is_terminal:
            raise ValueError(f"StepResult status must be terminal, got {self.status}")
        if self.status == StepStatus.FAILED and not self.error:
            raise ValueError("A FAILED StepResult needs an error message")
        if self.status != StepStatus.FAILED and self.error is not None:
            raise ValueError("Only FAILED StepResults carry an error message")

    @property
    def failed(self) -> bool:
        return self.status == StepStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        """Serialise for the structured report."""
        return {
            "name": self.name,
            "key": self.key,
            "status": str(self.status),
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "detail": self.detail.to_dict(),
            "error": self.error,
        }


# ═══════════════════════════════════════════════════════════
#  QualityResult
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class QualityResult:
    """Outcome of the quality gate (or a record that it was skipped)."""

    evaluated: bool = False
    passed: bool = False
    pass_rate: float = 0.0
    violations: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "evaluated": self.evaluated,
            "passed": self.passed,
            "pass_rate": round(self.pass_rate, 2),
            "violations": list(self.violations),
        }


# ═══════════════════════════════════════════════════════════
#  PipelineReport
# ═══════════════════════════════════════════════════════════

@dataclass
class PipelineReport:
    """
    Aggregate, append-only record of one pipeline run.

    Populated progressively by the orchestrator:
        - add_step() after every step reaches a terminal state
        - record_metrics() by steps that measure something
        - add_error() for fatal errors on the abort path
        - finalize() once, at the very end
    """

    # ─── Identity (set at creation) ───────────────────
    project: str = ""
    version: str = ""
    revision: str = ""
    build_number: str = ""
    flow: str = ""
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    # ─── Execution tracking ────────────────────────────
    status: PipelineStatus = PipelineStatus.RUNNING
    finished_at: datetime | None = None
    build_time_ms: int = 0
    quality: QualityResult = field(default_factory=QualityResult)

    _steps: list[StepResult] = field(default_factory=list, repr=False)
    _metrics: dict[str, float] = field(default_factory=dict, repr=False)
    _errors: list[str] = field(default_factory=list, repr=False)
    _finalized: bool = field(default=False, repr=False)

    # ─── Read-only views ───────────────────────────────

    @property
    def steps(self) -> tuple[StepResult, ...]:
        return tuple(self._steps)

    @property
    def metrics(self) -> Mapping[str, float]:
        return MappingProxyType(self._metrics)

    @property
    def errors(self) -> tuple[str, ...]:
        return tuple(self._errors)

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def has_failed_step(self) -> bool:
        return any(step.failed for step in self._steps)

    def step(self, key: str) -> StepResult | None:
        """Find a recorded step by key."""
        for result in self._steps:
            if result.key == key:
                return result
        return None

    def status_counts(self) -> dict[str, int]:
        """Number of steps per terminal status."""
        counts = {
            str(s): 0
            for s in (StepStatus.SUCCESS, StepStatus.WARNING, StepStatus.PARTIAL, StepStatus.FAILED)
        }
        for result in self._steps:
            counts[str(result.status)] += 1
        return counts

    # ─── Mutation (before finalization only) ──────────

    def _ensure_open(self) -> None:
        if self._finalized:
            raise ReportFinalizedError("Pipeline report is already finalized")

    def add_step(self, result: StepResult) -> None:
        self._ensure_open()
        self._steps.append(result)

    def record_metrics(self, values: Mapping[str, float]) -> None:
        self._ensure_open()
        self._metrics.update({name: float(value) for name, value in values.items()})

    def add_error(self, message: str) -> None:
        self._ensure_open()
        self._errors.append(message)

    def mark(self, status: PipelineStatus) -> None:
        """Move through the non-final lifecycle states (ABORTING, FINALIZING)."""
        self._ensure_open()
        if status in FINAL_STATUSES:
            raise ValueError(f"{status} is a final status; use finalize()")
        self.status = status

    def finalize(self, status: PipelineStatus, quality: QualityResult | None = None) -> None:
        """Set the verdict and build time.  Allowed exactly once."""
        self._ensure_open()
        if status not in FINAL_STATUSES:
            raise ValueError(f"{status} is not a final pipeline status")
        self.finished_at = datetime.now(timezone.utc)
        self.build_time_ms = int((self.finished_at - self.timestamp).total_seconds() * 1000)
        self.status = status
        if quality is not None:
            self.quality = quality
        self._finalized = True

    # ─── Serialisation ─────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Full report object graph with stable keys and step order."""
        return {
            "status": str(self.status),
            "timestamp": self.timestamp.isoformat(),
            "project": self.project,
            "version": self.version,
            "revision": self.revision,
            "build_number": self.build_number,
            "build_time_ms": self.build_time_ms,
            "flow": self.flow,
            "run_id": self.run_id,
            "steps": [step.to_dict() for step in self._steps],
            "metrics": dict(self._metrics),
            "quality": self.quality.to_dict(),
            "summary": {
                "total_steps": len(self._steps),
                **{status.lower(): count for status, count in self.status_counts().items()},
            },
            "errors": list(self._errors),
        }
