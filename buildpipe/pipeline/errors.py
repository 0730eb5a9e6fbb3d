"""
Exceptions raised inside the build pipeline.

Errors raised while a step runs (StepExecutionError, ProcessSpawnError)
become FAILED step results inside the step envelope.  FlowResolutionError
surfaces at the orchestrator, which records it before finalizing.
All of them carry the step key and a details dict for structured
logging.
"""

from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base exception for all pipeline errors."""

    def __init__(
        self,
        message: str,
        *,
        step_name: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.step_name = step_name
        self.details = details or {}
        super().__init__(message)


class StepExecutionError(PipelineError):
    """A step failed during execution."""

    def __init__(self, message: str, *, detail: Any = None, **kwargs) -> None:
        # Typed payload (a StepDetail) describing how far the step got
        self.detail = detail
        super().__init__(message, **kwargs)


class StepTimeoutError(StepExecutionError):
    """A collaborator process exceeded the step timeout."""

    def __init__(self, message: str = "timeout", *, timeout_ms: int = 0, **kwargs) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(message, **kwargs)


class ProcessSpawnError(PipelineError):
    """The external command could not be started."""

    def __init__(self, message: str, *, command: str = "", **kwargs) -> None:
        self.command = command
        super().__init__(message, **kwargs)


class ReportFinalizedError(PipelineError):
    """The report was mutated or finalized after finalization."""
    pass


class FlowResolutionError(PipelineError):
    """Could not resolve the step sequence for a given flow name."""
    pass
