"""Polling file watcher that re-runs changed documents."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import TypeAlias

from doctest_runner.documents import read_document
from doctest_runner.errors import WatcherError
from doctest_runner.events import FileChanged, WatcherFailed
from doctest_runner.models.summary import RunSummary
from doctest_runner.orchestrator import RunOrchestrator

log = logging.getLogger(__name__)

Signature: TypeAlias = tuple[int, int]


@dataclass(kw_only=True)
class _FileRun:
    cancel: asyncio.Event
    task: "asyncio.Task[RunSummary | None]"


@dataclass(kw_only=True)
class Watcher:
    """Watches documents and re-runs each one when it changes.

    Changes are acted on once a file has been quiet for ``debounce``
    seconds. A newer change cancels the file's in-flight run and waits for
    it to finish before starting again, so runs of one file never overlap.
    Notifications go to the orchestrator's channel; after :meth:`stop`
    returns none are published.
    """

    paths: Sequence[Path]
    orchestrator: RunOrchestrator
    poll_interval: float = 0.25
    debounce: float = 0.3
    ignore_initial: bool = True

    _signatures: dict[Path, Signature | None] = field(default_factory=dict, init=False)
    _pending: dict[Path, float] = field(default_factory=dict, init=False)
    _failed: set[Path] = field(default_factory=set, init=False)
    _runs: dict[Path, _FileRun] = field(default_factory=dict, init=False)
    _poller: "asyncio.Task[None] | None" = field(default=None, init=False)

    @property
    def running(self) -> bool:
        return self._poller is not None

    async def start(self) -> None:
        """Snapshot the watched files and start polling."""
        if self._poller is not None:
            raise RuntimeError("Watcher is already running")

        self._pending.clear()
        self._failed.clear()
        self._signatures = {path: self._signature(path) for path in self.paths}
        log.info("Watching %d file(s)", len(self.paths))

        if not self.ignore_initial:
            for path in self.paths:
                if self._signatures[path] is not None:
                    self._trigger(path)

        self._poller = asyncio.create_task(self._poll())

    async def stop(self) -> None:
        """Stop polling, cancel in-flight runs and wait for them to end."""
        poller, self._poller = self._poller, None
        if poller is None:
            return

        poller.cancel()
        runs = list(self._runs.values())
        self._runs.clear()
        for run in runs:
            run.cancel.set()

        await asyncio.gather(
            poller, *(run.task for run in runs), return_exceptions=True
        )
        log.info("Watcher stopped")

    async def __aenter__(self) -> "Watcher":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.stop()

    async def _poll(self) -> None:
        loop = asyncio.get_running_loop()
        while True:
            await asyncio.sleep(self.poll_interval)
            now = loop.time()

            for path in self.paths:
                signature = self._signature(path)
                if signature != self._signatures.get(path):
                    self._signatures[path] = signature
                    if signature is not None:
                        self._pending[path] = now

            for path, changed_at in list(self._pending.items()):
                if now - changed_at >= self.debounce:
                    del self._pending[path]
                    self._trigger(path)

    def _signature(self, path: Path) -> Signature | None:
        """Return the file's (mtime, size), or None when it is unavailable."""
        try:
            stat = path.stat()
        except OSError as e:
            self._report(path, f"cannot observe file: {e.strerror or e}")
            return None
        self._failed.discard(path)
        return stat.st_mtime_ns, stat.st_size

    def _report(self, path: Path, message: str) -> None:
        if path in self._failed:
            return
        self._failed.add(path)
        error = WatcherError(str(path), message)
        log.warning("%s", error)
        self.orchestrator.channel.publish(WatcherFailed(error=error))

    def _trigger(self, path: Path) -> None:
        log.info("File changed: %s", path)
        self.orchestrator.channel.publish(FileChanged(path=str(path)))

        previous = self._runs.get(path)
        if previous is not None:
            previous.cancel.set()

        cancel = asyncio.Event()
        task = asyncio.create_task(self._run_file(path, cancel, previous))
        self._runs[path] = _FileRun(cancel=cancel, task=task)
        task.add_done_callback(lambda _: self._forget(path, task))

    def _forget(self, path: Path, task: "asyncio.Task[RunSummary | None]") -> None:
        run = self._runs.get(path)
        if run is not None and run.task is task:
            del self._runs[path]

    async def _run_file(
        self, path: Path, cancel: asyncio.Event, previous: _FileRun | None
    ) -> RunSummary | None:
        if previous is not None:
            await asyncio.gather(previous.task, return_exceptions=True)
        if cancel.is_set():
            return None

        try:
            document = await asyncio.to_thread(read_document, path)
        except (OSError, UnicodeDecodeError) as e:
            self._report(path, f"cannot read file: {e}")
            return None

        try:
            return await self.orchestrator.run(
                [document], cancel=cancel, path=str(path)
            )
        except Exception as e:
            error = WatcherError(str(path), f"run failed: {e}")
            log.error("%s", error, exc_info=e)
            self.orchestrator.channel.publish(WatcherFailed(error=error))
            return None
