"""Shared fixtures: a scripted process runner and a workspace-rooted config."""

import json
import logging
from datetime import datetime
from pathlib import Path

import pytest

from buildpipe.core.config import CommandSet, PipelineConfig
from buildpipe.core.constants import DEFAULT_BUILD_TIMEOUT_MS, StepStatus
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.errors import StepExecutionError
from buildpipe.pipeline.report import PipelineReport, StepResult
from buildpipe.pipeline.step import PipelineStep
from buildpipe.runner.process import ProcessResult

COMMANDS = CommandSet(
    install="install",
    audit="audit",
    lint="lint",
    test="test",
    coverage="coverage",
)


def ok(command: str, stdout: str = "") -> ProcessResult:
    return ProcessResult(command=command, exit_code=0, stdout=stdout)


def exited(command: str, code: int = 1, stdout: str = "") -> ProcessResult:
    return ProcessResult(command=command, exit_code=code, stdout=stdout)


def timed_out(command: str) -> ProcessResult:
    return ProcessResult(command=command, exit_code=-9, timed_out=True)


class FakeProcessRunner:
    """
    Returns scripted results keyed by command string.

    A script value may be a ProcessResult or an exception to raise.
    Unscripted commands succeed with empty output.
    """

    def __init__(self, script: dict | None = None) -> None:
        self.script = dict(script or {})
        self.calls: list[tuple[str, int]] = []

    async def run(self, command, *, timeout_ms=DEFAULT_BUILD_TIMEOUT_MS, capture_output=True):
        self.calls.append((command, timeout_ms))
        outcome = self.script.get(command)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome if outcome is not None else ok(command)

    @property
    def commands(self) -> list[str]:
        return [command for command, _ in self.calls]


class ScriptedStep(PipelineStep):
    """A step whose outcome is fixed up front."""

    def __init__(self, key: str, status: StepStatus = StepStatus.SUCCESS,
                 error: str = "broken", raises: Exception | None = None,
                 metrics: dict | None = None) -> None:
        self.key = key
        self.name = key.capitalize()
        self.status = status
        self.error = error
        self.raises = raises
        self.metrics = metrics or {}
        self.executed = False

    async def execute(self, ctx: PipelineContext, started_at: datetime) -> StepResult:
        self.executed = True
        if self.metrics:
            ctx.record_metrics(self.metrics)
        if self.raises is not None:
            raise self.raises
        if self.status == StepStatus.FAILED:
            raise StepExecutionError(self.error, step_name=self.key)
        return self._result(self.status, started_at)


def write_coverage(work_dir: Path, statements=90, branches=90, functions=90, lines=90,
                   coverage_dir: str = "coverage") -> Path:
    path = work_dir / coverage_dir / "coverage-summary.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({
        "total": {
            "statements": {"total": 100, "covered": statements, "pct": statements},
            "branches": {"total": 100, "covered": branches, "pct": branches},
            "functions": {"total": 100, "covered": functions, "pct": functions},
            "lines": {"total": 100, "covered": lines, "pct": lines},
        }
    }))
    return path


@pytest.fixture
def workspace(tmp_path):
    """A project directory with a test-runner config and two spec files."""
    (tmp_path / "wdio.conf.js").write_text("exports.config = {}\n")
    specs = tmp_path / "test" / "specs"
    specs.mkdir(parents=True)
    (specs / "login.spec.js").write_text("describe('login', () => {})\n")
    (specs / "cart.spec.ts").write_text("describe('cart', () => {})\n")
    (specs / "notes.md").write_text("not a spec\n")
    return tmp_path


@pytest.fixture
def config(workspace):
    return PipelineConfig(
        project_name="shop",
        version="1.4.0",
        revision="abc123",
        build_number="42",
        work_dir=workspace,
        commands=COMMANDS,
    )


@pytest.fixture
def runner():
    return FakeProcessRunner()


@pytest.fixture
def make_ctx(config, runner):
    def _make(cfg: PipelineConfig | None = None, fake: FakeProcessRunner | None = None):
        return PipelineContext(
            config=cfg or config,
            runner=fake or runner,
            report=PipelineReport(project="shop"),
        )
    return _make


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Restore root logger state after each test."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = root.handlers[:]
    yield
    root.setLevel(original_level)
    root.handlers = original_handlers
