"""Models for run summaries and validation reports."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Literal

from doctest_runner.models.result import TestResult


@dataclass(frozen=True, kw_only=True)
class DocumentError:
    """A structural problem that stopped a document from being processed."""

    path: str
    line: int
    message: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line}: {self.message}"


@dataclass(frozen=True, kw_only=True)
class RunSummary:
    """Completed result of one run.

    Counts always partition ``results`` by status.
    """

    total: int
    passed: int
    failed: int
    skipped: int
    duration: float
    results: Sequence[TestResult]
    errors: Sequence[DocumentError] = ()
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.errors

    @classmethod
    def from_results(
        cls,
        results: Sequence[TestResult],
        duration: float,
        errors: Sequence[DocumentError] = (),
        cancelled: bool = False,
    ) -> "RunSummary":
        """Build a summary whose counts are derived from ``results``."""
        return cls(
            total=len(results),
            passed=sum(1 for r in results if r.status == "passed"),
            failed=sum(1 for r in results if r.status == "failed"),
            skipped=sum(1 for r in results if r.status == "skipped"),
            duration=duration,
            results=tuple(results),
            errors=tuple(errors),
            cancelled=cancelled,
        )


@dataclass(frozen=True, kw_only=True)
class ProgressView:
    """In-progress view of a run. Not a summary."""

    expected: int
    completed: int
    passed: int
    failed: int
    skipped: int

    @property
    def pending(self) -> int:
        return self.expected - self.completed


@dataclass(frozen=True, kw_only=True)
class ValidationIssue:
    """A structural error or warning found in a document."""

    path: str
    line: int
    message: str
    severity: Literal["error", "warning"] = "error"

    def __str__(self) -> str:
        return f"{self.path}:{self.line}: {self.message}"


@dataclass(frozen=True, kw_only=True)
class DocumentAnalysis:
    """Per-document outcome of validation."""

    path: str
    valid: bool
    block_count: int
    languages: Sequence[str] = ()


@dataclass(frozen=True, kw_only=True)
class ValidationReport:
    """Result of validating a set of documents without executing them."""

    errors: Sequence[ValidationIssue] = ()
    warnings: Sequence[ValidationIssue] = ()
    documents: Sequence[DocumentAnalysis] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.errors
