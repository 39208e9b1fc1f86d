"""Aggregation of test results into a run summary."""

import threading
from collections.abc import Sequence
from dataclasses import dataclass, field

from doctest_runner.models.document import BlockRef
from doctest_runner.models.result import TestResult
from doctest_runner.models.summary import DocumentError, ProgressView, RunSummary


@dataclass(kw_only=True)
class TestAggregator:
    """Collects results for a fixed set of submitted blocks.

    Results may arrive in any order and from concurrent workers. Each
    submitted block must be recorded exactly once before the run can be
    finalized; the final summary lists results in submission order.
    """

    __test__ = False

    expected: Sequence[BlockRef]
    _submitted: frozenset[BlockRef] = field(default=frozenset(), init=False)
    _results: dict[BlockRef, TestResult] = field(default_factory=dict, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def __post_init__(self) -> None:
        self.expected = tuple(self.expected)
        self._submitted = frozenset(self.expected)
        if len(self._submitted) != len(self.expected):
            raise ValueError("Duplicate block submitted to aggregator")

    def record(self, result: TestResult) -> None:
        """Attribute ``result`` to its block.

        Raises:
            ValueError: If the block was not submitted or already has a result

        """
        with self._lock:
            if result.block not in self._submitted:
                raise ValueError(f"Result for unknown block {result.block}")
            if result.block in self._results:
                raise ValueError(f"Duplicate result for block {result.block}")
            self._results[result.block] = result

    def recorded(self, block: BlockRef) -> bool:
        with self._lock:
            return block in self._results

    @property
    def complete(self) -> bool:
        with self._lock:
            return len(self._results) == len(self.expected)

    def progress(self) -> ProgressView:
        with self._lock:
            results = list(self._results.values())
        return ProgressView(
            expected=len(self.expected),
            completed=len(results),
            passed=sum(1 for r in results if r.status == "passed"),
            failed=sum(1 for r in results if r.status == "failed"),
            skipped=sum(1 for r in results if r.status == "skipped"),
        )

    def finalize(
        self,
        duration: float,
        errors: Sequence[DocumentError] = (),
        cancelled: bool = False,
    ) -> RunSummary:
        """Build the final summary.

        Raises:
            RuntimeError: If any submitted block has no result yet

        """
        with self._lock:
            missing = [ref for ref in self.expected if ref not in self._results]
            if missing:
                raise RuntimeError(
                    f"Run is incomplete: {len(missing)} block(s) without a result"
                    f" (first: {missing[0]})"
                )
            results = [self._results[ref] for ref in self.expected]

        return RunSummary.from_results(
            results, duration=duration, errors=errors, cancelled=cancelled
        )
