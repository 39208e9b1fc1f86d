"""Tests for run orchestration."""

import asyncio
from pathlib import Path

import pytest

from doctest_runner.config import DocTestConfig
from doctest_runner.dispatch import RunnerDispatch
from doctest_runner.events import (
    EventChannel,
    Notification,
    RunCompleted,
    TestFailed,
    TestPassed,
    TestSkipped,
    TestStarted,
)
from doctest_runner.models.document import Document
from doctest_runner.models.summary import DocumentError
from doctest_runner.orchestrator import RunOrchestrator, group_units
from doctest_runner.parser import MarkdownParser
from doctest_runner.testing.factories import make_block
from doctest_runner.testing.runners import RunnerTracker, scripted_registry


@pytest.fixture
def tracker() -> RunnerTracker:
    return RunnerTracker()


@pytest.fixture
def channel() -> EventChannel:
    return EventChannel()


@pytest.fixture
def events(channel: EventChannel) -> list[Notification]:
    received: list[Notification] = []
    channel.subscribe(received.append)
    return received


def make_orchestrator(
    tracker: RunnerTracker, channel: EventChannel, **options: object
) -> RunOrchestrator:
    return RunOrchestrator(
        dispatch=RunnerDispatch(registry=scripted_registry(tracker)),
        config=DocTestConfig.model_validate(options),
        parser=MarkdownParser(),
        channel=channel,
    )


def document(*codes: str, path: str = "guide.md", info: str = "") -> Document:
    text = "".join(f"```fake {info}\n{code}\n```\n\n" for code in codes)
    return Document(path=path, text=text)


async def test_runs_all_blocks(tracker: RunnerTracker, channel: EventChannel) -> None:
    """Every block gets a result and counts add up."""
    orchestrator = make_orchestrator(tracker, channel)

    summary = await orchestrator.run([document("pass", "fail", "pass")])

    assert summary.total == 3
    assert summary.passed == 2
    assert summary.failed == 1
    assert summary.total == summary.passed + summary.failed + summary.skipped
    assert not summary.cancelled


async def test_results_keep_document_order(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """Results are ordered by block even when completion order differs."""
    orchestrator = make_orchestrator(tracker, channel, max_workers=3)

    summary = await orchestrator.run([document("sleep 0.05", "sleep 0.02", "pass")])

    assert [r.block.index for r in summary.results] == [0, 1, 2]
    assert tracker.events.index("end 2") < tracker.events.index("end 0")


async def test_documents_keep_submission_order(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    orchestrator = make_orchestrator(tracker, channel)

    summary = await orchestrator.run(
        [document("sleep 0.02", path="b.md"), document("pass", path="a.md")]
    )

    assert [r.block.path for r in summary.results] == ["b.md", "a.md"]


async def test_respects_max_workers(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """No more than max_workers blocks run at once."""
    orchestrator = make_orchestrator(tracker, channel, max_workers=2)

    await orchestrator.run([document(*["sleep 0.01"] * 6)])

    assert tracker.max_active == 2


async def test_session_blocks_run_sequentially(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """Blocks sharing a session run in document order in one directory."""
    orchestrator = make_orchestrator(tracker, channel, max_workers=4)

    await orchestrator.run(
        [document("sleep 0.03", "sleep 0.01", "pass", info="session=setup")]
    )

    assert tracker.events == [
        "start 0",
        "end 0",
        "start 1",
        "end 1",
        "start 2",
        "end 2",
    ]
    assert tracker.max_active == 1
    assert len(set(tracker.contexts.values())) == 1


async def test_independent_blocks_get_separate_directories(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    orchestrator = make_orchestrator(tracker, channel)

    await orchestrator.run([document("pass", "pass")])

    assert tracker.contexts[0] != tracker.contexts[1]
    assert not tracker.contexts[0].exists()


async def test_uses_configured_working_directory(
    tracker: RunnerTracker, channel: EventChannel, tmp_path: Path
) -> None:
    orchestrator = make_orchestrator(tracker, channel, working_directory=tmp_path)

    await orchestrator.run([document("pass", "pass")])

    assert set(tracker.contexts.values()) == {tmp_path}


async def test_parse_error_does_not_stop_other_documents(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """A malformed document is reported and the rest still run."""
    orchestrator = make_orchestrator(tracker, channel)
    broken = Document(path="broken.md", text="ok\n```fake\npass\n")

    summary = await orchestrator.run([broken, document("pass")])

    assert summary.total == 1
    assert summary.passed == 1
    assert summary.errors == (
        DocumentError(path="broken.md", line=2, message="unterminated code fence"),
    )
    assert not summary.ok


async def test_load_errors_are_carried_into_summary(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    orchestrator = make_orchestrator(tracker, channel)
    error = DocumentError(path="missing.md", line=0, message="Cannot read file")

    summary = await orchestrator.run([], errors=[error])

    assert summary.total == 0
    assert summary.errors == (error,)


async def test_filter_selects_blocks(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """Only blocks matching the filter are submitted."""
    orchestrator = make_orchestrator(tracker, channel, filter="install")
    text = (
        "```fake name=install-step\npass\n```\n\n"
        "```fake name=other\nfail\n```\n"
    )

    summary = await orchestrator.run([Document(path="guide.md", text=text)])

    assert summary.total == 1
    assert summary.results[0].block.line == 1


async def test_skipped_blocks_never_start(
    tracker: RunnerTracker, channel: EventChannel, events: list[Notification]
) -> None:
    """Skip-annotated blocks are skipped without a start notification."""
    orchestrator = make_orchestrator(tracker, channel)

    summary = await orchestrator.run([document("fail", info="skip")])

    assert summary.skipped == 1
    assert summary.failed == 0
    assert tracker.events == []
    assert not any(isinstance(e, TestStarted) for e in events)
    assert any(isinstance(e, TestSkipped) for e in events)


async def test_publishes_notifications(
    tracker: RunnerTracker, channel: EventChannel, events: list[Notification]
) -> None:
    """Emits start, pass, fail and run-complete notifications."""
    orchestrator = make_orchestrator(tracker, channel, max_workers=1)

    summary = await orchestrator.run([document("pass", "fail")])

    kinds = [type(e) for e in events]
    assert kinds == [TestStarted, TestPassed, TestStarted, TestFailed, RunCompleted]
    completed = events[-1]
    assert isinstance(completed, RunCompleted)
    assert completed.summary is summary


async def test_cancel_marks_outstanding_blocks_skipped(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    """Cancelling stops in-flight blocks and skips queued ones."""
    orchestrator = make_orchestrator(tracker, channel, max_workers=1)
    cancel = asyncio.Event()

    run = asyncio.create_task(
        orchestrator.run([document("pass", "hang", "pass")], cancel=cancel)
    )
    while "start 1" not in tracker.events:
        await asyncio.sleep(0.005)
    cancel.set()
    summary = await asyncio.wait_for(run, timeout=2)

    assert summary.cancelled
    assert summary.total == 3
    assert summary.passed == 1
    assert summary.skipped == 2
    assert [r.skip_reason for r in summary.results[1:]] == ["cancelled", "cancelled"]
    assert tracker.active == 0


async def test_cancel_before_start_skips_everything(
    tracker: RunnerTracker, channel: EventChannel
) -> None:
    orchestrator = make_orchestrator(tracker, channel)
    cancel = asyncio.Event()
    cancel.set()

    summary = await orchestrator.run([document("pass", "pass")], cancel=cancel)

    assert summary.skipped == 2
    assert summary.cancelled
    assert tracker.events == []


def test_group_units_keeps_sessions_together() -> None:
    """Session blocks form one unit placed at their first block."""
    blocks = [
        make_block(index=0, metadata={"session": "a"}),
        make_block(index=1),
        make_block(index=2, metadata={"session": "a"}),
        make_block(index=3, metadata={"session": "b"}),
        make_block(index=4, path="other.md", metadata={"session": "a"}),
    ]

    units = group_units(blocks)

    assert [[b.index for b in unit] for unit in units] == [[0, 2], [1], [3], [4]]
