"""
Step detail payloads — one dataclass per step kind.

Each payload is tagged with ``kind`` so the structured report stays
self-describing, and exposes ``display_rows()`` so the HTML renderer can
stay generic over any detail.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Mapping


@dataclass(frozen=True)
class StepDetail:
    """Base payload.  Subclasses add their own fields."""

    kind: ClassVar[str] = "generic"

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **asdict(self)}

    def display_rows(self) -> list[tuple[str, Any]]:
        """(label, value) pairs for human-readable output."""
        return [
            (key.replace("_", " ").capitalize(), value)
            for key, value in asdict(self).items()
        ]


@dataclass(frozen=True)
class GenericDetail(StepDetail):
    """Untyped payload for ad-hoc steps and failure envelopes."""

    values: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", MappingProxyType(dict(self.values)))

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **self.values}

    def display_rows(self) -> list[tuple[str, Any]]:
        return [
            (key.replace("_", " ").capitalize(), value)
            for key, value in self.values.items()
            if key != "traceback"
        ]


@dataclass(frozen=True)
class EnvironmentDetail(StepDetail):
    kind: ClassVar[str] = "environment"

    config_found: bool = False
    config_file: str = ""
    test_files: int = 0
    python_version: str = ""
    platform: str = ""
    arch: str = ""
    cpus: int = 0
    ci: bool = False


@dataclass(frozen=True)
class InstallDetail(StepDetail):
    kind: ClassVar[str] = "install"

    command: str = ""
    exit_code: int | None = None
    packages_installed: int = 0


@dataclass(frozen=True)
class AuditDetail(StepDetail):
    kind: ClassVar[str] = "audit"

    command: str = ""
    exit_code: int | None = None
    vulnerabilities: int = 0
    by_severity: Mapping[str, int] = field(default_factory=dict)
    warning: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "by_severity", MappingProxyType(dict(self.by_severity)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "command": self.command,
            "exit_code": self.exit_code,
            "vulnerabilities": self.vulnerabilities,
            "by_severity": dict(self.by_severity),
            "warning": self.warning,
        }

    def display_rows(self) -> list[tuple[str, Any]]:
        rows: list[tuple[str, Any]] = [("Vulnerabilities", self.vulnerabilities)]
        rows.extend((severity.capitalize(), count) for severity, count in self.by_severity.items())
        if self.warning:
            rows.append(("Warning", self.warning))
        return rows


@dataclass(frozen=True)
class LintDetail(StepDetail):
    kind: ClassVar[str] = "lint"

    command: str = ""
    exit_code: int | None = None
    problems: int = 0
    errors: int = 0
    warnings: int = 0
    warning: str | None = None


@dataclass(frozen=True)
class TestDetail(StepDetail):
    kind: ClassVar[str] = "test"
    __test__ = False

    command: str = ""
    exit_code: int | None = None
    total: int = 0
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def pass_rate(self) -> float:
        return self.passed / max(self.total, 1) * 100


@dataclass(frozen=True)
class CoverageDetail(StepDetail):
    kind: ClassVar[str] = "coverage"

    statements: float = 0.0
    branches: float = 0.0
    functions: float = 0.0
    lines: float = 0.0
    summary_found: bool = False
    summary_path: str = ""
    warning: str | None = None

    def percentages(self) -> dict[str, float]:
        return {
            "statements": self.statements,
            "branches": self.branches,
            "functions": self.functions,
            "lines": self.lines,
        }

    def display_rows(self) -> list[tuple[str, Any]]:
        rows: list[tuple[str, Any]] = [
            (category.capitalize(), f"{pct:g}%") for category, pct in self.percentages().items()
        ]
        if not self.summary_found:
            rows.append(("Summary", "not found"))
        if self.warning:
            rows.append(("Warning", self.warning))
        return rows


@dataclass(frozen=True)
class Artifact:
    name: str
    path: str
    size: int


@dataclass(frozen=True)
class ArtifactDetail(StepDetail):
    kind: ClassVar[str] = "artifacts"

    output_dir: str = ""
    modules: int = 0
    artifacts: tuple[Artifact, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "output_dir": self.output_dir,
            "modules": self.modules,
            "artifacts": [asdict(a) for a in self.artifacts],
        }

    def display_rows(self) -> list[tuple[str, Any]]:
        rows: list[tuple[str, Any]] = [("Modules", self.modules)]
        rows.extend((a.name, f"{a.size} bytes") for a in self.artifacts)
        return rows
