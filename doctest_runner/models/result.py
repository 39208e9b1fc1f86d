"""Models for block execution results."""

from dataclasses import dataclass
from typing import Literal

from doctest_runner.models.document import BlockRef


@dataclass(frozen=True, kw_only=True)
class TestError:
    """Failure captured from executing a block.

    ``line`` is a line of the source document, not of the executed script.
    """

    __test__ = False

    kind: Literal["unsupported-language", "execution", "timeout", "internal"]
    message: str
    line: int


@dataclass(frozen=True, kw_only=True)
class TestResult:
    """Outcome of executing one code block."""

    __test__ = False

    block: BlockRef
    status: Literal["passed", "failed", "skipped"]
    duration: float
    error: TestError | None = None
    output: str | None = None
    skip_reason: str | None = None

    @classmethod
    def skipped(cls, block: BlockRef, reason: str) -> "TestResult":
        """Build a zero-duration skipped result."""
        return cls(block=block, status="skipped", duration=0.0, skip_reason=reason)

    @classmethod
    def failed(
        cls,
        block: BlockRef,
        error: TestError,
        duration: float = 0.0,
        output: str | None = None,
    ) -> "TestResult":
        """Build a failed result carrying ``error``."""
        return cls(
            block=block, status="failed", duration=duration, error=error, output=output
        )
