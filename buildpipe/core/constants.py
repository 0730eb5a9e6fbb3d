"""Shared constants and enums used across the pipeline."""

from enum import StrEnum


class StepStatus(StrEnum):
    """Status of an individual pipeline step."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (
            StepStatus.SUCCESS,
            StepStatus.WARNING,
            StepStatus.PARTIAL,
            StepStatus.FAILED,
        )


class PipelineStatus(StrEnum):
    """Lifecycle and final verdict of a pipeline run."""

    PENDING = "PENDING"
    RUNNING = "RUNNING"
    ABORTING = "ABORTING"
    FINALIZING = "FINALIZING"
    SUCCESS = "SUCCESS"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


# Verdicts a finalized report may carry.
FINAL_STATUSES = (PipelineStatus.SUCCESS, PipelineStatus.PARTIAL, PipelineStatus.FAILED)


class StepKind(StrEnum):
    """Timeout class of a step."""

    BUILD = "build"
    TEST = "test"


class Comparison(StrEnum):
    """Comparison applied by a quality-gate threshold."""

    GTE = "gte"


# Default timeouts (milliseconds) per step kind
DEFAULT_BUILD_TIMEOUT_MS = 300_000
DEFAULT_TEST_TIMEOUT_MS = 600_000

# Step keys of the default flow, in execution order
STEP_ENVIRONMENT = "environment"
STEP_INSTALL = "install"
STEP_AUDIT = "audit"
STEP_LINT = "lint"
STEP_TEST = "test"
STEP_COVERAGE = "coverage"
STEP_ARTIFACTS = "artifacts"

# Metric names published into PipelineReport.metrics
METRIC_TESTS_TOTAL = "tests.total"
METRIC_TESTS_PASSED = "tests.passed"
METRIC_TESTS_FAILED = "tests.failed"
METRIC_TESTS_SKIPPED = "tests.skipped"
COVERAGE_CATEGORIES = ("statements", "branches", "functions", "lines")


def coverage_metric(category: str) -> str:
    """Metric name for a coverage category, e.g. ``coverage.branches``."""
    return f"coverage.{category}"
