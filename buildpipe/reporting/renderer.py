"""
ReportRenderer — writes a finalized PipelineReport to disk.

Two projections of the same report:
    - pipeline-report.json  — the full object graph (machine-readable)
    - pipeline-report.html  — a self-contained page for humans

Each file is written atomically (temp file + os.replace), so re-running
overwrites cleanly and a crash never leaves a half-written document.
Rendering faults are logged and swallowed: they never change the
pipeline's verdict.
"""

from __future__ import annotations

import html
import json
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from buildpipe.core.config import QualityGateConfig
from buildpipe.core.constants import (
    METRIC_TESTS_FAILED,
    METRIC_TESTS_PASSED,
    METRIC_TESTS_SKIPPED,
    METRIC_TESTS_TOTAL,
    StepStatus,
    coverage_metric,
)
from buildpipe.core.logging import get_logger
from buildpipe.pipeline.report import PipelineReport

logger = get_logger(__name__)

JSON_FILENAME = "pipeline-report.json"
HTML_FILENAME = "pipeline-report.html"

# Badge colour per status
STATUS_COLORS: dict[str, str] = {
    StepStatus.SUCCESS: "#10b981",
    StepStatus.WARNING: "#f59e0b",
    StepStatus.PARTIAL: "#f97316",
    StepStatus.FAILED: "#ef4444",
    "RUNNING": "#6b7280",
}


@dataclass(frozen=True)
class RenderedReports:
    """Paths of the documents that were written (None when a write failed)."""

    json_path: Path | None
    html_path: Path | None

    @property
    def complete(self) -> bool:
        return self.json_path is not None and self.html_path is not None


def write_atomic(path: Path, content: str) -> None:
    """Write ``content`` to ``path`` via a temp file in the same directory."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class ReportRenderer:
    """Serialises a PipelineReport into the reports directory."""

    def __init__(
        self,
        reports_dir: Path | str,
        quality_gate: QualityGateConfig | None = None,
    ) -> None:
        self.reports_dir = Path(reports_dir)
        self.quality_gate = quality_gate or QualityGateConfig()

    @property
    def json_path(self) -> Path:
        return self.reports_dir / JSON_FILENAME

    @property
    def html_path(self) -> Path:
        return self.reports_dir / HTML_FILENAME

    # ─── Public API ────────────────────────────────────

    def write(self, report: PipelineReport) -> RenderedReports:
        """Write both documents.  Never raises."""
        json_path = self._write_one(self.json_path, self.render_json, report)
        html_path = self._write_one(self.html_path, self.render_html, report)
        return RenderedReports(json_path=json_path, html_path=html_path)

    def render_json(self, report: PipelineReport) -> str:
        return json.dumps(report.to_dict(), indent=2, ensure_ascii=False) + "\n"

    def render_html(self, report: PipelineReport) -> str:
        data = report.to_dict()
        return _PAGE.format(
            title=_e(f"Pipeline Report - {data['project']}"),
            project=_e(data["project"]),
            status_badge=_badge(data["status"]),
            identity=self._identity(data),
            metrics=self._metric_cards(report),
            coverage=self._coverage_table(report),
            steps=self._steps_table(report),
            issues=self._list_section("Quality Issues", data["quality"]["violations"], "warning"),
            errors=self._list_section("Errors", data["errors"], "failed"),
            generated=_e(datetime.now(timezone.utc).isoformat()),
        )

    # ─── Internals ─────────────────────────────────────

    def _write_one(self, path: Path, render, report: PipelineReport) -> Path | None:
        try:
            write_atomic(path, render(report))
        except Exception as exc:
            logger.error("Report rendering failed", path=str(path), error=str(exc), exc_info=True)
            return None
        logger.debug("Report written", path=str(path))
        return path

    @staticmethod
    def _identity(data: dict[str, Any]) -> str:
        rows = [
            ("Timestamp", data["timestamp"]),
            ("Flow", data["flow"]),
            ("Version", data["version"]),
            ("Revision", data["revision"]),
            ("Build", data["build_number"]),
        ]
        return "".join(
            f"<div>{_e(label)}: {_e(value)}</div>" for label, value in rows if value
        )

    @staticmethod
    def _metric_cards(report: PipelineReport) -> str:
        metrics = report.metrics
        total = metrics.get(METRIC_TESTS_TOTAL, 0)
        cards = [
            ("Build Time", f"{report.build_time_ms / 1000:.2f}s"),
            ("Total Steps", len(report.steps)),
            ("Tests", _num(total)),
            ("Passed", _num(metrics.get(METRIC_TESTS_PASSED, 0))),
            ("Failed", _num(metrics.get(METRIC_TESTS_FAILED, 0))),
            ("Skipped", _num(metrics.get(METRIC_TESTS_SKIPPED, 0))),
        ]
        if report.quality.evaluated and METRIC_TESTS_TOTAL in metrics:
            cards.append(("Pass Rate", f"{report.quality.pass_rate:.1f}%"))
        return "".join(
            '<div class="metric">'
            f'<div class="metric-value">{_e(value)}</div>'
            f'<div class="metric-label">{_e(label)}</div>'
            "</div>"
            for label, value in cards
        )

    def _coverage_table(self, report: PipelineReport) -> str:
        rows = []
        for category, criterion in self.quality_gate.coverage.items():
            name = coverage_metric(category)
            if name not in report.metrics:
                continue
            actual = report.metrics[name]
            ok = actual >= criterion.threshold
            rows.append(
                "<tr>"
                f"<td>{_e(category.capitalize())}</td>"
                f"<td>{_e(_num(actual))}%</td>"
                f"<td>{_e(_num(criterion.threshold))}%</td>"
                f'<td class="{"success" if ok else "failed"}">{"PASS" if ok else "FAIL"}</td>'
                "</tr>"
            )
        if not rows:
            return "<p>No coverage data collected.</p>"
        return (
            "<table><thead><tr><th>Metric</th><th>Coverage</th><th>Threshold</th>"
            "<th>Status</th></tr></thead><tbody>" + "".join(rows) + "</tbody></table>"
        )

    @staticmethod
    def _steps_table(report: PipelineReport) -> str:
        if not report.steps:
            return "<p>No steps executed.</p>"
        rows = []
        for index, step in enumerate(report.steps, start=1):
            detail_rows = "".join(
                f"<div><span class=\"label\">{_e(label)}:</span> {_e(_display(value))}</div>"
                for label, value in step.detail.display_rows()
            )
            error = f'<div class="failed">{_e(step.error)}</div>' if step.error else ""
            rows.append(
                "<tr>"
                f"<td>{index}</td>"
                f"<td>{_e(step.name)}</td>"
                f"<td>{_badge(step.status)}</td>"
                f"<td>{step.duration_ms} ms</td>"
                f"<td>{detail_rows}{error}</td>"
                "</tr>"
            )
        return (
            "<table><thead><tr><th>#</th><th>Step</th><th>Status</th><th>Duration</th>"
            "<th>Details</th></tr></thead><tbody>" + "".join(rows) + "</tbody></table>"
        )

    @staticmethod
    def _list_section(title: str, items: list[str], css_class: str) -> str:
        if not items:
            return ""
        entries = "".join(f'<li class="{css_class}">{_e(item)}</li>' for item in items)
        return f'<div class="card"><h2>{_e(title)}</h2><ul>{entries}</ul></div>'


def _e(value: Any) -> str:
    return html.escape(str(value))


def _num(value: float) -> str:
    return f"{round(float(value), 2):g}"


def _display(value: Any) -> str:
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, default=str)
    return "" if value is None else str(value)


def _badge(status: str) -> str:
    color = STATUS_COLORS.get(str(status), "#6b7280")
    return f'<span class="badge" style="background: {color}">{_e(status)}</span>'


_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{title}</title>
    <style>
        body {{ font-family: 'Segoe UI', Arial, sans-serif; margin: 0; padding: 20px; background: #f5f5f5; }}
        .container {{ max-width: 1200px; margin: 0 auto; }}
        .header {{ background: #1f2937; color: white; padding: 30px; border-radius: 10px; margin-bottom: 20px; }}
        h1 {{ margin: 0 0 10px 0; }}
        .badge {{ display: inline-block; color: white; padding: 3px 12px; border-radius: 12px; font-weight: 600; }}
        .card {{ background: white; padding: 20px; border-radius: 10px; margin-bottom: 20px; box-shadow: 0 2px 10px rgba(0,0,0,0.1); }}
        .metric {{ display: inline-block; margin: 10px 20px 10px 0; }}
        .metric-value {{ font-size: 2em; font-weight: bold; color: #4f46e5; }}
        .metric-label {{ color: #6b7280; font-size: 0.9em; }}
        table {{ width: 100%; border-collapse: collapse; }}
        th {{ background: #f3f4f6; padding: 12px; text-align: left; }}
        td {{ padding: 12px; border-bottom: 1px solid #e5e7eb; vertical-align: top; }}
        .label {{ color: #6b7280; }}
        .success {{ color: #10b981; }}
        .warning {{ color: #f59e0b; }}
        .failed {{ color: #ef4444; }}
        .footer {{ text-align: center; color: #6b7280; margin-top: 40px; }}
    </style>
</head>
<body>
<div class="container">
    <div class="header">
        <h1>Pipeline Report</h1>
        <div>Project: {project}</div>
        {identity}
        <div style="margin-top: 10px">{status_badge}</div>
    </div>
    <div class="card"><h2>Metrics</h2>{metrics}</div>
    <div class="card"><h2>Code Coverage</h2>{coverage}</div>
    <div class="card"><h2>Steps</h2>{steps}</div>
    {issues}
    {errors}
    <div class="footer">Generated on {generated}</div>
</div>
</body>
</html>
"""
