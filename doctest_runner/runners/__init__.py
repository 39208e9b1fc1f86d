"""Language runners."""

from doctest_runner.runners.base import ExecutionContext, Runner
from doctest_runner.runners.manifest import RunnerManifest
from doctest_runner.runners.process import SubprocessRunner
from doctest_runner.runners.registry import RunnerRegistry

__all__ = [
    "ExecutionContext",
    "Runner",
    "RunnerManifest",
    "RunnerRegistry",
    "SubprocessRunner",
]
