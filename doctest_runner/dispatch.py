"""Dispatch of code blocks to language runners."""

import logging
from dataclasses import dataclass, replace

from doctest_runner.errors import UnsupportedLanguageError
from doctest_runner.models.document import CodeBlock
from doctest_runner.models.result import TestError, TestResult
from doctest_runner.runners.base import ExecutionContext
from doctest_runner.runners.registry import RunnerRegistry

log = logging.getLogger(__name__)

SKIP_ANNOTATION = "skip annotation"


@dataclass(frozen=True, kw_only=True)
class RunnerDispatch:
    """Turns a code block into a test result.

    Every failure, including an unknown language or a crashing runner, is
    returned as a failed result. Only cancellation propagates.
    """

    registry: RunnerRegistry

    async def execute(self, block: CodeBlock, context: ExecutionContext) -> TestResult:
        if block.skip:
            return TestResult.skipped(block.ref, SKIP_ANNOTATION)

        try:
            runner = self.registry.resolve(block.language)
        except UnsupportedLanguageError as e:
            log.debug("No runner for %s: %s", block.ref, e)
            return TestResult.failed(
                block.ref,
                TestError(kind="unsupported-language", message=str(e), line=block.line),
            )

        if (timeout_ms := block.timeout_ms) is not None:
            context = replace(context, timeout=timeout_ms / 1000)

        try:
            return await runner.run(block, context)
        except Exception as e:
            log.error("Runner failed for %s: %s", block.ref, e, exc_info=e)
            return TestResult.failed(
                block.ref,
                TestError(kind="internal", message=str(e), line=block.line),
            )
