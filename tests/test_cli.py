"""Tests for the command-line entry point."""

import json
import os
from unittest.mock import AsyncMock, patch

import pytest

from buildpipe.cli import build_parser, main
from buildpipe.core.config import Settings
from buildpipe.core.constants import PipelineStatus
from buildpipe.pipeline.engine import PipelineOutcome
from buildpipe.pipeline.report import PipelineReport
from buildpipe.reporting.renderer import RenderedReports


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in Settings.model_fields:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _outcome(status: PipelineStatus, exit_code: int) -> PipelineOutcome:
    report = PipelineReport(project="shop")
    if status == PipelineStatus.FAILED:
        report.add_error("Dependency installation failed: timeout")
    report.finalize(status)
    return PipelineOutcome(report=report, documents=RenderedReports(None, None), exit_code=exit_code)


class TestParser:
    def test_rejects_unknown_flow(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["--flow", "nightly"])

    def test_defaults_are_unset(self):
        args = build_parser().parse_args([])
        assert args.flow is None
        assert args.strict is False


class TestMain:
    @patch("buildpipe.cli.setup_logging")
    @patch("buildpipe.cli.PipelineOrchestrator")
    def test_returns_outcome_exit_code(self, orchestrator_cls, _setup, clean_env, capsys):
        orchestrator_cls.return_value.run = AsyncMock(
            return_value=_outcome(PipelineStatus.FAILED, 1),
        )
        assert main([]) == 1
        out = capsys.readouterr().out
        assert "Pipeline FAILED" in out
        assert "Dependency installation failed: timeout" in out

    @patch("buildpipe.cli.setup_logging")
    @patch("buildpipe.cli.PipelineOrchestrator")
    def test_options_reach_config(self, orchestrator_cls, setup, clean_env, tmp_path):
        orchestrator_cls.return_value.run = AsyncMock(
            return_value=_outcome(PipelineStatus.PARTIAL, 1),
        )
        code = main([
            "--flow", "test", "--workdir", str(tmp_path), "--reports-dir", "out",
            "--strict", "--log-level", "DEBUG", "--log-format", "json",
        ])
        assert code == 1
        config = orchestrator_cls.call_args.args[0]
        assert config.flow == "test"
        assert config.work_dir == tmp_path
        assert str(config.reports_dir) == "out"
        assert config.fail_on_partial is True
        setup.assert_called_once_with("DEBUG", "json")

    @patch("buildpipe.cli.setup_logging")
    @patch("buildpipe.cli.PipelineOrchestrator")
    def test_logging_defaults_come_from_settings(self, orchestrator_cls, setup, clean_env):
        clean_env.setenv("LOG_LEVEL", "WARNING")
        orchestrator_cls.return_value.run = AsyncMock(
            return_value=_outcome(PipelineStatus.SUCCESS, 0),
        )
        assert main([]) == 0
        setup.assert_called_once_with("WARNING", "console")


@pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")
class TestEndToEnd:
    def test_real_commands_produce_reports(self, clean_env, tmp_path):
        (tmp_path / "wdio.conf.js").write_text("exports.config = {}\n")
        clean_env.setenv("WORK_DIR", str(tmp_path))
        clean_env.setenv("PROJECT_NAME", "demo")
        clean_env.setenv("CI", "false")
        clean_env.setenv("LOG_LEVEL", "WARNING")
        clean_env.setenv("INSTALL_COMMAND", "echo 'added 3 packages'")
        clean_env.setenv("AUDIT_COMMAND", "echo 'found 1 vulnerability'; exit 1")
        clean_env.setenv("LINT_COMMAND", "true")
        clean_env.setenv("TEST_COMMAND", "echo '4 passing'")
        clean_env.setenv("COVERAGE_COMMAND", "true")

        assert main([]) == 0

        data = json.loads((tmp_path / "build-reports" / "pipeline-report.json").read_text())
        assert data["status"] == "PARTIAL"
        assert [s["status"] for s in data["steps"]] == [
            "SUCCESS", "SUCCESS", "WARNING", "SUCCESS", "SUCCESS", "SUCCESS", "SUCCESS",
        ]
        assert data["metrics"]["tests.passed"] == 4
        assert (tmp_path / "build-reports" / "pipeline-report.html").is_file()
        assert list((tmp_path / "dist").glob("demo-build-*.tar.gz"))

    def test_fatal_install_exits_non_zero(self, clean_env, tmp_path):
        (tmp_path / "wdio.conf.js").write_text("exports.config = {}\n")
        clean_env.setenv("WORK_DIR", str(tmp_path))
        clean_env.setenv("LOG_LEVEL", "WARNING")
        clean_env.setenv("INSTALL_COMMAND", "exit 7")

        assert main([]) == 1
        data = json.loads((tmp_path / "build-reports" / "pipeline-report.json").read_text())
        assert data["errors"] == ["Dependency installation failed: Command 'exit 7' exited with code 7"]
