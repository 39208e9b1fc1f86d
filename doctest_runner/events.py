"""Notifications emitted while running and watching documents."""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeAlias

from doctest_runner.errors import WatcherError
from doctest_runner.models.document import CodeBlock
from doctest_runner.models.result import TestResult
from doctest_runner.models.summary import RunSummary

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class TestStarted:
    """A block is about to be dispatched."""

    __test__ = False

    block: CodeBlock


@dataclass(frozen=True, kw_only=True)
class TestPassed:
    """A block passed."""

    __test__ = False

    result: TestResult


@dataclass(frozen=True, kw_only=True)
class TestFailed:
    """A block failed."""

    __test__ = False

    result: TestResult


@dataclass(frozen=True, kw_only=True)
class TestSkipped:
    """A block was skipped or cancelled."""

    __test__ = False

    result: TestResult


@dataclass(frozen=True, kw_only=True)
class RunCompleted:
    summary: RunSummary
    path: str | None = None


@dataclass(frozen=True, kw_only=True)
class FileChanged:
    path: str


@dataclass(frozen=True, kw_only=True)
class WatcherFailed:
    error: WatcherError


Notification: TypeAlias = (
    TestStarted
    | TestPassed
    | TestFailed
    | TestSkipped
    | RunCompleted
    | FileChanged
    | WatcherFailed
)

Subscriber: TypeAlias = Callable[[Notification], None]


@dataclass(kw_only=True)
class EventChannel:
    """Explicit publish/subscribe channel for notifications.

    Subscribers are called synchronously in subscription order. A failing
    subscriber is logged and does not affect the others.
    """

    _subscribers: list[Subscriber] = field(default_factory=list, init=False)

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register ``subscriber`` and return a function that removes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def publish(self, event: Notification) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber(event)
            except Exception as e:
                log.error(
                    "Subscriber %r failed on %s: %s",
                    subscriber,
                    type(event).__name__,
                    e,
                    exc_info=e,
                )


def result_event(result: TestResult) -> Notification:
    """Wrap a result in the notification matching its status."""
    if result.status == "passed":
        return TestPassed(result=result)
    if result.status == "failed":
        return TestFailed(result=result)
    return TestSkipped(result=result)
