"""
QualityGate — evaluates final metrics against configured thresholds.

Pure: the verdict depends only on the metrics mapping and the
QualityGateConfig.  A violated criterion produces one human-readable
string; the gate never raises for low numbers.
"""

from __future__ import annotations

from typing import Mapping

from buildpipe.core.config import QualityGateConfig, Threshold
from buildpipe.core.constants import (
    METRIC_TESTS_PASSED,
    METRIC_TESTS_TOTAL,
    Comparison,
    coverage_metric,
)
from buildpipe.pipeline.report import QualityResult


def _fmt(value: float) -> str:
    """72.0 -> '72', 72.456 -> '72.46'."""
    return f"{round(value, 2):g}"


def _satisfies(actual: float, criterion: Threshold) -> bool:
    if criterion.comparison == Comparison.GTE:
        return actual >= criterion.threshold
    raise ValueError(f"Unsupported comparison: {criterion.comparison}")


def pass_rate(metrics: Mapping[str, float]) -> float:
    """passed / max(total, 1) * 100."""
    total = metrics.get(METRIC_TESTS_TOTAL, 0)
    passed = metrics.get(METRIC_TESTS_PASSED, 0)
    return passed / max(total, 1) * 100


class QualityGate:
    """
    Checks coverage percentages and the test pass rate.

    Only measured criteria are checked: a coverage category with no
    recorded metric is skipped, and the pass rate is skipped unless
    ``tests.total`` was recorded.  A flow without test or coverage steps
    therefore passes the gate.
    """

    def __init__(self, config: QualityGateConfig | None = None) -> None:
        self.config = config or QualityGateConfig()

    def evaluate(self, metrics: Mapping[str, float]) -> QualityResult:
        violations: list[str] = []

        for category, criterion in self.config.coverage.items():
            metric = coverage_metric(category)
            if metric not in metrics:
                continue
            actual = float(metrics[metric])
            if not _satisfies(actual, criterion):
                violations.append(
                    f"{category} coverage {_fmt(actual)}% "
                    f"below threshold {_fmt(criterion.threshold)}%"
                )

        rate = 0.0
        if METRIC_TESTS_TOTAL in metrics:
            rate = pass_rate(metrics)
            if not _satisfies(rate, self.config.pass_rate):
                violations.append(
                    f"Test pass rate {rate:.1f}% below threshold "
                    f"{_fmt(self.config.pass_rate.threshold)}%"
                )

        return QualityResult(
            evaluated=True,
            passed=not violations,
            pass_rate=rate,
            violations=tuple(violations),
        )
