"""Tests for the concrete pipeline steps and the step envelope."""

import asyncio
import json
import os
import tarfile
from pathlib import Path

import pytest
from conftest import FakeProcessRunner, ScriptedStep, exited, ok, timed_out, write_coverage

from buildpipe.core.config import CommandSet, StepPolicy
from buildpipe.core.constants import DEFAULT_TEST_TIMEOUT_MS, StepStatus
from buildpipe.pipeline.context import PipelineContext
from buildpipe.pipeline.errors import ProcessSpawnError
from buildpipe.pipeline.report import PipelineReport
from buildpipe.pipeline.steps import (
    ArtifactStep,
    AuditStep,
    CoverageStep,
    EnvironmentStep,
    InstallStep,
    LintStep,
    TestStep,
)
from buildpipe.runner.process import ProcessRunner

posix_only = pytest.mark.skipif(os.name != "posix", reason="uses POSIX shell commands")


def _run(step, ctx):
    return asyncio.run(step.run(ctx))


def _with_policy(config, key, **policy):
    policies = dict(config.step_policies)
    policies[key] = StepPolicy(**policy)
    return config.model_copy(update={"step_policies": policies})


class TestStepEnvelope:
    def test_unexpected_exception_becomes_failed_result(self, make_ctx):
        result = _run(ScriptedStep("odd", raises=RuntimeError("boom")), make_ctx())
        assert result.status == StepStatus.FAILED
        assert result.error == "Unexpected: boom"
        assert result.detail.to_dict()["exception"] == "RuntimeError"

    def test_envelope_records_timing(self, make_ctx):
        result = _run(ScriptedStep("fine"), make_ctx())
        assert result.status == StepStatus.SUCCESS
        assert result.duration_ms >= 0
        assert result.started_at.tzinfo is not None

    def test_spawn_error_becomes_failed_result(self, make_ctx):
        fake = FakeProcessRunner({"install": ProcessSpawnError(
            "Could not start 'install': not found", command="install",
            details={"command": "install"},
        )})
        result = _run(InstallStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "Could not start 'install': not found"
        assert result.detail.to_dict()["command"] == "install"


class TestEnvironmentStep:
    def test_validates_and_counts_specs(self, make_ctx, workspace):
        result = _run(EnvironmentStep(), make_ctx())
        assert result.status == StepStatus.SUCCESS
        assert result.detail.config_found
        assert result.detail.test_files == 2
        assert (workspace / "build-reports").is_dir()
        assert (workspace / "coverage").is_dir()

    def test_missing_config_fails(self, make_ctx, workspace):
        (workspace / "wdio.conf.js").unlink()
        result = _run(EnvironmentStep(), make_ctx())
        assert result.status == StepStatus.FAILED
        assert result.error == "Test runner configuration not found: wdio.conf.js"
        assert result.detail.config_found is False

    def test_runs_no_commands(self, make_ctx, runner):
        _run(EnvironmentStep(), make_ctx())
        assert runner.calls == []


class TestInstallStep:
    def test_success(self, make_ctx):
        fake = FakeProcessRunner({"install": ok("install", "added 12 packages in 2s")})
        result = _run(InstallStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.SUCCESS
        assert result.detail.packages_installed == 12

    def test_nonzero_exit_is_fatal(self, make_ctx):
        fake = FakeProcessRunner({"install": exited("install", 1)})
        result = _run(InstallStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "Command 'install' exited with code 1"

    def test_timeout_fails_with_timeout_message(self, make_ctx):
        fake = FakeProcessRunner({"install": timed_out("install")})
        result = _run(InstallStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "timeout"

    def test_uses_build_timeout(self, make_ctx, runner):
        _run(InstallStep(), make_ctx())
        assert runner.calls == [("install", 300_000)]


class TestAuditStep:
    def test_findings_are_a_warning(self, make_ctx):
        fake = FakeProcessRunner({"audit": exited("audit", 1, "found 3 vulnerabilities (3 high)")})
        result = _run(AuditStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.WARNING
        assert result.error is None
        assert result.detail.vulnerabilities == 3
        assert result.detail.warning == "Security audit reported 3 vulnerabilities"

    def test_fatal_when_policy_says_so(self, make_ctx, config):
        fake = FakeProcessRunner({"audit": exited("audit", 1, "found 3 vulnerabilities")})
        ctx = make_ctx(cfg=_with_policy(config, "audit", tolerant=False), fake=fake)
        assert _run(AuditStep(), ctx).status == StepStatus.FAILED

    def test_timeout_fails_even_when_tolerant(self, make_ctx):
        fake = FakeProcessRunner({"audit": timed_out("audit")})
        result = _run(AuditStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "timeout"


class TestLintStep:
    def test_problems_are_a_warning(self, make_ctx):
        fake = FakeProcessRunner({"lint": exited("lint", 1, "✖ 5 problems (3 errors, 2 warnings)")})
        result = _run(LintStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.WARNING
        assert result.detail.problems == 5
        assert result.detail.warning == "Linter reported 5 problems"

    def test_clean(self, make_ctx):
        result = _run(LintStep(), make_ctx())
        assert result.status == StepStatus.SUCCESS
        assert result.detail.warning is None

    @posix_only
    def test_missing_linter_fails_even_when_tolerant(self, config, workspace):
        commands = CommandSet(lint="buildpipe-no-such-linter --fix")
        ctx = PipelineContext(
            config=config.model_copy(update={"commands": commands}),
            runner=ProcessRunner(cwd=workspace),
            report=PipelineReport(project="shop"),
        )
        result = _run(LintStep(), ctx)
        assert result.status == StepStatus.FAILED
        assert result.error.startswith("Could not start 'buildpipe-no-such-linter --fix'")
        assert result.detail.to_dict()["exception"] == "ProcessSpawnError"
        assert result.detail.to_dict()["exit_code"] == 127


class TestTestStep:
    def test_all_passing(self, make_ctx):
        fake = FakeProcessRunner({"test": ok("test", "10 passing (3s)")})
        ctx = make_ctx(fake=fake)
        result = _run(TestStep(), ctx)
        assert result.status == StepStatus.SUCCESS
        assert ctx.report.metrics["tests.total"] == 10
        assert ctx.report.metrics["tests.passed"] == 10

    def test_some_failures_are_partial(self, make_ctx):
        fake = FakeProcessRunner({"test": exited("test", 1, "8 passing\n2 failing")})
        ctx = make_ctx(fake=fake)
        result = _run(TestStep(), ctx)
        assert result.status == StepStatus.PARTIAL
        assert (result.detail.passed, result.detail.failed) == (8, 2)
        assert result.detail.pass_rate == 80
        assert ctx.report.metrics["tests.failed"] == 2

    def test_failures_with_zero_exit_are_partial(self, make_ctx):
        fake = FakeProcessRunner({"test": ok("test", "3 passing\n1 failing")})
        assert _run(TestStep(), make_ctx(fake=fake)).status == StepStatus.PARTIAL

    def test_nothing_recognised_is_a_system_error(self, make_ctx):
        fake = FakeProcessRunner({"test": exited("test", 2, "Error: browser failed to start")})
        ctx = make_ctx(fake=fake)
        result = _run(TestStep(), ctx)
        assert result.status == StepStatus.FAILED
        assert "0 recognisable tests (minimum 1)" in result.error
        assert ctx.report.metrics["tests.total"] == 0

    def test_minimum_recognised_tests_is_configurable(self, make_ctx, config):
        fake = FakeProcessRunner({"test": exited("test", 1, "2 passing\n1 failing")})
        ctx = make_ctx(cfg=config.model_copy(update={"min_recognized_tests": 5}), fake=fake)
        assert _run(TestStep(), ctx).status == StepStatus.FAILED

    def test_not_tolerant_fails_on_test_failures(self, make_ctx, config):
        fake = FakeProcessRunner({"test": exited("test", 1, "8 passing\n2 failing")})
        cfg = _with_policy(config, "test", tolerant=False, timeout_ms=DEFAULT_TEST_TIMEOUT_MS)
        result = _run(TestStep(), make_ctx(cfg=cfg, fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "2 of 10 tests failed"

    def test_timeout(self, make_ctx):
        fake = FakeProcessRunner({"test": timed_out("test")})
        result = _run(TestStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.FAILED
        assert result.error == "timeout"

    def test_uses_test_timeout(self, make_ctx, runner):
        _run(TestStep(), make_ctx())
        assert runner.calls == [("test", DEFAULT_TEST_TIMEOUT_MS)]

    def test_ci_mode_runs_headless(self, make_ctx, config):
        fake = FakeProcessRunner()
        _run(TestStep(), make_ctx(cfg=config.model_copy(update={"ci": True}), fake=fake))
        assert fake.commands == ["test --headless"]


class TestCoverageStep:
    def test_reads_summary_into_metrics(self, make_ctx, workspace):
        write_coverage(workspace, statements=85, branches=72)
        ctx = make_ctx()
        result = _run(CoverageStep(), ctx)
        assert result.status == StepStatus.SUCCESS
        assert result.detail.summary_found
        assert ctx.report.metrics["coverage.statements"] == 85
        assert ctx.report.metrics["coverage.branches"] == 72

    def test_missing_summary_yields_zeros(self, make_ctx):
        ctx = make_ctx()
        result = _run(CoverageStep(), ctx)
        assert result.status == StepStatus.SUCCESS
        assert result.detail.summary_found is False
        assert ctx.report.metrics["coverage.lines"] == 0

    def test_generation_failure_is_a_warning(self, make_ctx):
        fake = FakeProcessRunner({"coverage": exited("coverage", 1)})
        result = _run(CoverageStep(), make_ctx(fake=fake))
        assert result.status == StepStatus.WARNING
        assert result.detail.warning == "Coverage report generation failed"


class TestArtifactStep:
    def test_writes_manifest_and_package(self, make_ctx, workspace):
        (workspace / "src").mkdir()
        (workspace / "src" / "index.js").write_text("module.exports = 1\n")
        (workspace / "package.json").write_text("{}\n")

        result = _run(ArtifactStep(), make_ctx())
        assert result.status == StepStatus.SUCCESS
        assert result.detail.modules == 2

        dist = workspace / "dist"
        manifest = json.loads((dist / "manifest.json").read_text())
        assert manifest["name"] == "shop"
        assert manifest["version"] == "1.4.0"
        assert manifest["revision"] == "abc123"
        assert manifest["build_number"] == "42"

        packages = list(dist.glob("shop-build-*.tar.gz"))
        assert len(packages) == 1
        with tarfile.open(packages[0]) as tar:
            names = tar.getnames()
        assert "manifest.json" in names
        assert "src/index.js" in names
        assert "package.json" in names

    def test_cleans_previous_output(self, make_ctx, workspace):
        stale = workspace / "dist" / "stale.txt"
        stale.parent.mkdir()
        stale.write_text("old")
        _run(ArtifactStep(), make_ctx())
        assert not stale.exists()

    def test_missing_sources_are_skipped(self, make_ctx):
        result = _run(ArtifactStep(), make_ctx())
        assert result.status == StepStatus.SUCCESS
        assert result.detail.modules == 0
        assert [a.name for a in result.detail.artifacts][0] == "manifest.json"

    def test_refuses_to_clean_the_working_directory(self, make_ctx, config, workspace):
        (workspace / "package.json").write_text("{}\n")
        ctx = make_ctx(cfg=config.model_copy(update={"output_dir": Path(".")}))
        result = _run(ArtifactStep(), ctx)
        assert result.status == StepStatus.FAILED
        assert result.error.startswith("Refusing to clean output directory")
        assert (workspace / "package.json").exists()
        assert (workspace / "wdio.conf.js").exists()

    def test_refuses_output_outside_the_working_directory(self, make_ctx, config, workspace):
        ctx = make_ctx(cfg=config.model_copy(update={"output_dir": workspace.parent}))
        result = _run(ArtifactStep(), ctx)
        assert result.status == StepStatus.FAILED
        assert "must lie inside" in result.error
        assert workspace.exists()

    def test_refuses_output_holding_a_source_path(self, make_ctx, config, workspace):
        (workspace / "src").mkdir()
        (workspace / "src" / "index.js").write_text("module.exports = 1\n")
        ctx = make_ctx(cfg=config.model_copy(update={"output_dir": Path("src")}))
        result = _run(ArtifactStep(), ctx)
        assert result.status == StepStatus.FAILED
        assert "contains source path 'src'" in result.error
        assert (workspace / "src" / "index.js").exists()
