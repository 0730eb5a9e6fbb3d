"""
Pydantic Settings — configuration loaded from environment variables / .env,
and the immutable PipelineConfig handed to the orchestrator.

Settings is only read at the entry point.  Everything downstream (steps,
quality gate, renderer) receives a PipelineConfig instance, so tests can
build one directly without touching the environment.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

from buildpipe.core.constants import (
    COVERAGE_CATEGORIES,
    DEFAULT_BUILD_TIMEOUT_MS,
    DEFAULT_TEST_TIMEOUT_MS,
    STEP_ARTIFACTS,
    STEP_AUDIT,
    STEP_COVERAGE,
    STEP_ENVIRONMENT,
    STEP_INSTALL,
    STEP_LINT,
    STEP_TEST,
    Comparison,
)


# ═══════════════════════════════════════════════════════════
#  Run configuration (passed explicitly to the orchestrator)
# ═══════════════════════════════════════════════════════════

class StepPolicy(BaseModel):
    """Failure tolerance and timeout for one step."""

    model_config = {"frozen": True}

    tolerant: bool = False
    timeout_ms: int = DEFAULT_BUILD_TIMEOUT_MS


class Threshold(BaseModel):
    """A single quality-gate criterion."""

    model_config = {"frozen": True}

    threshold: float
    comparison: Comparison = Comparison.GTE


def _default_coverage_thresholds() -> dict[str, Threshold]:
    return {category: Threshold(threshold=80) for category in COVERAGE_CATEGORIES}


class QualityGateConfig(BaseModel):
    """Coverage and pass-rate thresholds, fixed for the whole run."""

    model_config = {"frozen": True}

    coverage: dict[str, Threshold] = Field(default_factory=_default_coverage_thresholds)
    pass_rate: Threshold = Threshold(threshold=90)


def default_step_policies() -> dict[str, StepPolicy]:
    """The fixed fatality table of the default flow."""
    return {
        STEP_ENVIRONMENT: StepPolicy(tolerant=False),
        STEP_INSTALL: StepPolicy(tolerant=False),
        STEP_AUDIT: StepPolicy(tolerant=True),
        STEP_LINT: StepPolicy(tolerant=True),
        # Test tolerance additionally depends on recognised test count.
        STEP_TEST: StepPolicy(tolerant=True, timeout_ms=DEFAULT_TEST_TIMEOUT_MS),
        STEP_COVERAGE: StepPolicy(tolerant=True),
        STEP_ARTIFACTS: StepPolicy(tolerant=False),
    }


class CommandSet(BaseModel):
    """Command lines of the external collaborators."""

    model_config = {"frozen": True}

    install: str = "npm ci"
    audit: str = "npm audit --audit-level=high"
    lint: str = "npx eslint ."
    test: str = "npx nyc wdio run wdio.conf.js"
    coverage: str = "npx nyc report --reporter=html --reporter=lcov --reporter=json-summary --reporter=text"


class PipelineConfig(BaseModel):
    """Everything a single pipeline run needs to know."""

    model_config = {"frozen": True}

    # ─── Identity ─────────────────────────────────────
    project_name: str = "project"
    version: str = "0.0.0"
    revision: str = ""
    build_number: str = ""
    flow: str = "full"
    ci: bool = False

    # ─── Paths (relative paths resolve against work_dir) ──
    work_dir: Path = Path(".")
    reports_dir: Path = Path("build-reports")
    output_dir: Path = Path("dist")
    coverage_dir: Path = Path("coverage")
    test_config_file: str = "wdio.conf.js"
    test_spec_dir: str = "test/specs"
    test_spec_suffixes: tuple[str, ...] = (".js", ".ts")
    source_paths: tuple[str, ...] = ("src", "package.json", "README.md", "LICENSE")

    # ─── Collaborators ────────────────────────────────
    commands: CommandSet = CommandSet()
    headless_flag: str = "--headless"

    # ─── Policy ───────────────────────────────────────
    step_policies: dict[str, StepPolicy] = Field(default_factory=default_step_policies)
    quality_gate: QualityGateConfig = QualityGateConfig()
    min_recognized_tests: int = 1
    fail_on_partial: bool = False

    def policy_for(self, step_key: str) -> StepPolicy:
        """Policy for a step; unknown steps are fatal with the build timeout."""
        return self.step_policies.get(step_key, StepPolicy())

    def resolve(self, path: Path | str) -> Path:
        """Resolve a configured path against the working directory."""
        path = Path(path)
        return path if path.is_absolute() else self.work_dir / path

    @property
    def test_command(self) -> str:
        """Test command, with the headless flag appended in CI mode."""
        if self.ci and self.headless_flag:
            return f"{self.commands.test} {self.headless_flag}"
        return self.commands.test


# ═══════════════════════════════════════════════════════════
#  Environment-backed settings
# ═══════════════════════════════════════════════════════════

class Settings(BaseSettings):
    # ── Project identity ──────────────────────
    PROJECT_NAME: str = "project"
    PROJECT_VERSION: str = "0.0.0"
    GIT_COMMIT: str = ""
    BUILD_NUMBER: str = ""
    CI: bool = False

    # ── Paths ─────────────────────────────────
    WORK_DIR: str = "."
    REPORTS_DIR: str = "build-reports"
    OUTPUT_DIR: str = "dist"
    COVERAGE_DIR: str = "coverage"
    TEST_CONFIG_FILE: str = "wdio.conf.js"
    TEST_SPEC_DIR: str = "test/specs"
    SOURCE_PATHS: str = "src,package.json,README.md,LICENSE"

    # ── Collaborator commands ─────────────────
    INSTALL_COMMAND: str = CommandSet().install
    AUDIT_COMMAND: str = CommandSet().audit
    LINT_COMMAND: str = CommandSet().lint
    TEST_COMMAND: str = CommandSet().test
    COVERAGE_COMMAND: str = CommandSet().coverage
    HEADLESS_FLAG: str = "--headless"

    # ── Timeouts (ms) ─────────────────────────
    BUILD_TIMEOUT_MS: int = DEFAULT_BUILD_TIMEOUT_MS
    TEST_TIMEOUT_MS: int = DEFAULT_TEST_TIMEOUT_MS

    # ── Failure policy ────────────────────────
    AUDIT_TOLERANT: bool = True
    LINT_TOLERANT: bool = True
    MIN_RECOGNIZED_TESTS: int = 1
    FAIL_ON_PARTIAL: bool = False
    PIPELINE_FLOW: str = "full"

    # ── Quality gate ──────────────────────────
    COVERAGE_STATEMENTS_THRESHOLD: float = 80
    COVERAGE_BRANCHES_THRESHOLD: float = 80
    COVERAGE_FUNCTIONS_THRESHOLD: float = 80
    COVERAGE_LINES_THRESHOLD: float = 80
    PASS_RATE_THRESHOLD: float = 90

    # ── Logging ───────────────────────────────
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "console"

    model_config = {"env_file": ".env", "extra": "ignore"}

    def to_pipeline_config(self, **overrides) -> PipelineConfig:
        """Freeze the current settings into a PipelineConfig."""
        build = StepPolicy(timeout_ms=self.BUILD_TIMEOUT_MS)
        policies = {
            STEP_ENVIRONMENT: build,
            STEP_INSTALL: build,
            STEP_AUDIT: StepPolicy(tolerant=self.AUDIT_TOLERANT, timeout_ms=self.BUILD_TIMEOUT_MS),
            STEP_LINT: StepPolicy(tolerant=self.LINT_TOLERANT, timeout_ms=self.BUILD_TIMEOUT_MS),
            STEP_TEST: StepPolicy(tolerant=True, timeout_ms=self.TEST_TIMEOUT_MS),
            STEP_COVERAGE: StepPolicy(tolerant=True, timeout_ms=self.BUILD_TIMEOUT_MS),
            STEP_ARTIFACTS: build,
        }
        gate = QualityGateConfig(
            coverage={
                "statements": Threshold(threshold=self.COVERAGE_STATEMENTS_THRESHOLD),
                "branches": Threshold(threshold=self.COVERAGE_BRANCHES_THRESHOLD),
                "functions": Threshold(threshold=self.COVERAGE_FUNCTIONS_THRESHOLD),
                "lines": Threshold(threshold=self.COVERAGE_LINES_THRESHOLD),
            },
            pass_rate=Threshold(threshold=self.PASS_RATE_THRESHOLD),
        )
        values = dict(
            project_name=self.PROJECT_NAME,
            version=self.PROJECT_VERSION,
            revision=self.GIT_COMMIT,
            build_number=self.BUILD_NUMBER,
            flow=self.PIPELINE_FLOW,
            ci=self.CI,
            work_dir=Path(self.WORK_DIR),
            reports_dir=Path(self.REPORTS_DIR),
            output_dir=Path(self.OUTPUT_DIR),
            coverage_dir=Path(self.COVERAGE_DIR),
            test_config_file=self.TEST_CONFIG_FILE,
            test_spec_dir=self.TEST_SPEC_DIR,
            source_paths=tuple(p.strip() for p in self.SOURCE_PATHS.split(",") if p.strip()),
            commands=CommandSet(
                install=self.INSTALL_COMMAND,
                audit=self.AUDIT_COMMAND,
                lint=self.LINT_COMMAND,
                test=self.TEST_COMMAND,
                coverage=self.COVERAGE_COMMAND,
            ),
            headless_flag=self.HEADLESS_FLAG,
            step_policies=policies,
            quality_gate=gate,
            min_recognized_tests=self.MIN_RECOGNIZED_TESTS,
            fail_on_partial=self.FAIL_ON_PARTIAL,
        )
        values.update(overrides)
        return PipelineConfig(**values)
