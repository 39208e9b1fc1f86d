"""Run orchestration: parse documents, execute blocks, aggregate results."""

import asyncio
import logging
import re
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from doctest_runner.aggregator import TestAggregator
from doctest_runner.config import DocTestConfig
from doctest_runner.dispatch import RunnerDispatch
from doctest_runner.errors import ParseError
from doctest_runner.events import EventChannel, RunCompleted, TestStarted, result_event
from doctest_runner.models.document import TERMINAL_STATUSES, CodeBlock, Document
from doctest_runner.models.result import TestResult
from doctest_runner.models.summary import DocumentError, RunSummary
from doctest_runner.parser import MarkdownParser, Parser
from doctest_runner.runners.base import ExecutionContext
from doctest_runner.runners.registry import RunnerRegistry

log = logging.getLogger(__name__)

CANCELLED = "cancelled"


@dataclass(frozen=True, kw_only=True)
class RunOrchestrator:
    """Runs the code blocks of a set of documents.

    Blocks are grouped into execution units: a block without a ``session``
    annotation is its own unit, and blocks of one document sharing a session
    form a unit executed in document order. Units run concurrently up to
    ``config.max_workers``.
    """

    dispatch: RunnerDispatch
    config: DocTestConfig
    parser: Parser = field(default_factory=MarkdownParser)
    channel: EventChannel = field(default_factory=EventChannel)

    @classmethod
    def from_config(
        cls, config: DocTestConfig, channel: EventChannel | None = None
    ) -> "RunOrchestrator":
        """Create an orchestrator with the default parser and runners."""
        return cls(
            dispatch=RunnerDispatch(registry=RunnerRegistry.from_config(config)),
            config=config,
            parser=MarkdownParser(
                default_language=config.default_language,
                extract_metadata=config.extract_metadata,
            ),
            channel=channel or EventChannel(),
        )

    async def run(
        self,
        documents: Sequence[Document],
        *,
        errors: Sequence[DocumentError] = (),
        cancel: asyncio.Event | None = None,
        path: str | None = None,
    ) -> RunSummary:
        """Run all selected blocks and return the completed summary.

        Args:
            documents: Documents to run, in reporting order
            errors: Errors already found while loading documents
            cancel: Setting this event cancels outstanding blocks; they are
                reported as skipped and the summary is marked cancelled
            path: File the run was triggered for, passed on in RunCompleted

        Returns:
            Summary in which every submitted block has a terminal result

        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        cancel = cancel or asyncio.Event()

        blocks, parse_errors = self._collect_blocks(documents)
        all_errors = [*errors, *parse_errors]
        aggregator = TestAggregator(expected=[block.ref for block in blocks])
        units = group_units(blocks)

        log.info(
            "Running %d block(s) from %d document(s) in %d unit(s)",
            len(blocks),
            len(documents),
            len(units),
        )

        semaphore = asyncio.Semaphore(self.config.max_workers)
        tasks = [
            asyncio.create_task(self._run_unit(unit, aggregator, semaphore, cancel))
            for unit in units
        ]
        canceller = asyncio.create_task(_cancel_on(cancel, tasks))
        try:
            outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        finally:
            canceller.cancel()

        for unit, outcome in zip(units, outcomes, strict=True):
            if isinstance(outcome, Exception):
                raise outcome
            for block in unit:
                if not aggregator.recorded(block.ref):
                    self._record(
                        block, TestResult.skipped(block.ref, CANCELLED), aggregator
                    )

        summary = aggregator.finalize(
            loop.time() - started, errors=all_errors, cancelled=cancel.is_set()
        )
        log.info(
            "Run complete: total=%d passed=%d failed=%d skipped=%d (%.2fs)",
            summary.total,
            summary.passed,
            summary.failed,
            summary.skipped,
            summary.duration,
        )
        self.channel.publish(RunCompleted(summary=summary, path=path))
        return summary

    def _collect_blocks(
        self, documents: Sequence[Document]
    ) -> tuple[list[CodeBlock], list[DocumentError]]:
        selector = re.compile(self.config.filter) if self.config.filter else None
        blocks: list[CodeBlock] = []
        errors: list[DocumentError] = []

        for document in documents:
            try:
                parsed = self.parser.parse(document)
            except ParseError as e:
                log.error("Cannot parse %s: %s", document.path, e)
                errors.append(
                    DocumentError(path=document.path, line=e.line, message=e.message)
                )
                continue
            blocks.extend(
                block
                for block in parsed
                if selector is None or _selected(block, selector)
            )

        return blocks, errors

    async def _run_unit(
        self,
        unit: Sequence[CodeBlock],
        aggregator: TestAggregator,
        semaphore: asyncio.Semaphore,
        cancel: asyncio.Event,
    ) -> None:
        async with semaphore:
            with self._execution_context() as context:
                for block in unit:
                    if cancel.is_set():
                        break
                    await self._run_block(block, context, aggregator)

    async def _run_block(
        self,
        block: CodeBlock,
        context: ExecutionContext,
        aggregator: TestAggregator,
    ) -> None:
        if not block.skip:
            block.transition("running")
            self.channel.publish(TestStarted(block=block))
            log.debug("Running %s (%s)", block.ref, block.language)

        result = await self.dispatch.execute(block, context)
        self._record(block, result, aggregator)

    def _record(
        self, block: CodeBlock, result: TestResult, aggregator: TestAggregator
    ) -> None:
        if block.status not in TERMINAL_STATUSES:
            block.transition(result.status)
        aggregator.record(result)
        self.channel.publish(result_event(result))

    @contextmanager
    def _execution_context(self) -> Iterator[ExecutionContext]:
        if self.config.working_directory is not None:
            yield ExecutionContext(
                timeout=self.config.timeout_seconds,
                cwd=self.config.working_directory,
                env=self.config.env,
            )
            return

        with tempfile.TemporaryDirectory(prefix="doctest-") as tmp:
            yield ExecutionContext(
                timeout=self.config.timeout_seconds, cwd=Path(tmp), env=self.config.env
            )


def group_units(blocks: Sequence[CodeBlock]) -> Sequence[Sequence[CodeBlock]]:
    """Group blocks into execution units, preserving document order.

    A unit is placed where its first block appears.
    """
    units: list[list[CodeBlock]] = []
    sessions: dict[tuple[str, str], list[CodeBlock]] = {}

    for block in blocks:
        if (session := block.session) is None:
            units.append([block])
            continue
        key = (block.path, session)
        if key not in sessions:
            sessions[key] = []
            units.append(sessions[key])
        sessions[key].append(block)

    return units


def _selected(block: CodeBlock, selector: re.Pattern[str]) -> bool:
    candidates = [f"{block.path}:{block.line}", block.language]
    if block.name:
        candidates.append(block.name)
    return any(selector.search(candidate) for candidate in candidates)


async def _cancel_on(
    cancel: asyncio.Event, tasks: Sequence[asyncio.Task[None]]
) -> None:
    await cancel.wait()
    log.info("Run cancelled, stopping %d unit(s)", sum(not t.done() for t in tasks))
    for task in tasks:
        task.cancel()
