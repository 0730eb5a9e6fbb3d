"""
Text result parsers — pull counts out of collaborator output.

Every parser is tolerant: text it does not recognise yields zero counts,
never an exception.  Report generation must not be blocked by a tool
printing something unexpected.

Parsers are swappable per tool version: steps take a parser instance,
and the defaults below cover the tools the default flow invokes.
"""

from __future__ import annotations

import json
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from buildpipe.core.constants import COVERAGE_CATEGORIES
from buildpipe.core.logging import get_logger

logger = get_logger(__name__)


# ═══════════════════════════════════════════════════════════
#  Parsed values
# ═══════════════════════════════════════════════════════════

@dataclass(frozen=True)
class TestCounts:
    __test__ = False

    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        """Executed tests; skipped ones don't count toward the pass rate."""
        return self.passed + self.failed


@dataclass(frozen=True)
class AuditCounts:
    vulnerabilities: int = 0
    by_severity: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class LintCounts:
    problems: int = 0
    errors: int = 0
    warnings: int = 0


# ═══════════════════════════════════════════════════════════
#  Parser interface
# ═══════════════════════════════════════════════════════════

class TextResultParser(ABC):
    """Turns captured tool output into a counts value."""

    @abstractmethod
    def parse(self, text: str) -> Any:
        """Parse ``text``.  Must not raise; unknown text gives zero counts."""
        ...


def _last_int(pattern: re.Pattern[str], text: str) -> int | None:
    """Last match of a one-group integer pattern, or None."""
    matches = pattern.findall(text)
    return int(matches[-1]) if matches else None


# ─── Test runners ─────────────────────────────────────

class MochaSummaryParser(TextResultParser):
    """Mocha / WebdriverIO spec reporter: ``8 passing``, ``2 failing``, ``1 pending``."""

    _PASSING = re.compile(r"(\d+)\s+passing")
    _FAILING = re.compile(r"(\d+)\s+failing")
    _PENDING = re.compile(r"(\d+)\s+pending")

    def parse(self, text: str) -> TestCounts:
        text = text or ""
        return TestCounts(
            passed=_last_int(self._PASSING, text) or 0,
            failed=_last_int(self._FAILING, text) or 0,
            skipped=_last_int(self._PENDING, text) or 0,
        )


class PytestSummaryParser(TextResultParser):
    """pytest final line: ``=== 3 failed, 10 passed, 1 skipped in 0.12s ===``."""

    _PASSED = re.compile(r"(\d+)\s+passed")
    _FAILED = re.compile(r"(\d+)\s+failed")
    _ERRORS = re.compile(r"(\d+)\s+errors?\b")
    _SKIPPED = re.compile(r"(\d+)\s+skipped")

    def parse(self, text: str) -> TestCounts:
        text = text or ""
        failed = (_last_int(self._FAILED, text) or 0) + (_last_int(self._ERRORS, text) or 0)
        return TestCounts(
            passed=_last_int(self._PASSED, text) or 0,
            failed=failed,
            skipped=_last_int(self._SKIPPED, text) or 0,
        )


class CompositeTestParser(TextResultParser):
    """Tries each parser in order and keeps the first that recognises tests."""

    def __init__(self, *parsers: TextResultParser) -> None:
        self.parsers = parsers or (MochaSummaryParser(), PytestSummaryParser())

    def parse(self, text: str) -> TestCounts:
        for parser in self.parsers:
            counts = parser.parse(text)
            if counts.total or counts.skipped:
                return counts
        return TestCounts()


# ─── Installer ────────────────────────────────────────

class InstallSummaryParser(TextResultParser):
    """npm ``added 312 packages`` or pip ``Successfully installed a-1 b-2``."""

    _NPM = re.compile(r"added\s+(\d+)\s+packages?")
    _PIP = re.compile(r"Successfully installed\s+(.+)")

    def parse(self, text: str) -> int:
        text = text or ""
        npm = _last_int(self._NPM, text)
        if npm is not None:
            return npm
        pip = self._PIP.findall(text)
        if pip:
            return len(pip[-1].split())
        return 0


# ─── Security audit ───────────────────────────────────

class AuditSummaryParser(TextResultParser):
    """
    npm audit: ``found 3 vulnerabilities`` or
    ``3 vulnerabilities (1 low, 2 high)``.
    """

    _TOTAL = re.compile(r"(\d+)\s+vulnerabilit(?:y|ies)")
    _SEVERITY = re.compile(r"(\d+)\s+(info|low|moderate|high|critical)\b")

    def parse(self, text: str) -> AuditCounts:
        text = text or ""
        by_severity: dict[str, int] = {}
        for count, severity in self._SEVERITY.findall(text):
            by_severity[severity] = int(count)
        total = _last_int(self._TOTAL, text)
        if total is None:
            total = sum(by_severity.values())
        return AuditCounts(vulnerabilities=total, by_severity=by_severity)


# ─── Linter ───────────────────────────────────────────

class LintSummaryParser(TextResultParser):
    """ESLint ``✖ 5 problems (3 errors, 2 warnings)`` or ruff ``Found 4 errors.``"""

    _ESLINT = re.compile(r"(\d+)\s+problems?\s+\((\d+)\s+errors?,\s*(\d+)\s+warnings?\)")
    _FOUND = re.compile(r"Found\s+(\d+)\s+errors?")

    def parse(self, text: str) -> LintCounts:
        text = text or ""
        eslint = self._ESLINT.findall(text)
        if eslint:
            problems, errors, warnings = (int(v) for v in eslint[-1])
            return LintCounts(problems=problems, errors=errors, warnings=warnings)
        found = _last_int(self._FOUND, text)
        if found is not None:
            return LintCounts(problems=found, errors=found)
        return LintCounts()


# ═══════════════════════════════════════════════════════════
#  Coverage summary document
# ═══════════════════════════════════════════════════════════

def read_coverage_summary(path: Path) -> dict[str, float] | None:
    """
    Read an istanbul ``coverage-summary.json`` into category percentages.

    Returns None when the file is missing or not valid JSON.  Categories
    absent from the document (or holding non-numeric ``pct`` values such
    as ``"Unknown"``) read as 0.
    """
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning("Unreadable coverage summary", path=str(path), error=str(exc))
        return None

    total = data.get("total", {}) if isinstance(data, dict) else {}
    percentages: dict[str, float] = {}
    for category in COVERAGE_CATEGORIES:
        entry = total.get(category, {}) if isinstance(total, dict) else {}
        pct = entry.get("pct", 0) if isinstance(entry, dict) else 0
        percentages[category] = float(pct) if isinstance(pct, (int, float)) else 0.0
    return percentages
