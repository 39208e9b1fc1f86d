"""Abstract base for language runners."""

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from doctest_runner.models.document import CodeBlock
from doctest_runner.models.result import TestResult


@dataclass(frozen=True, kw_only=True)
class ExecutionContext:
    """Settings for executing one unit of blocks.

    Created by the orchestrator per execution unit and discarded after it.
    """

    timeout: float
    cwd: Path
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, kw_only=True)
class Runner(ABC):
    """Executes a code block under one language runtime.

    Implementations must never leave a process running once ``run`` returns
    or is cancelled, and report failures of the executed code as a failed
    result rather than raising.
    """

    @abstractmethod
    async def run(self, block: CodeBlock, context: ExecutionContext) -> TestResult:
        """Execute the block's code and return its result.

        Args:
            block: Block to execute; never skip-annotated
            context: Timeout, working directory and environment overrides

        Returns:
            A passed or failed result

        """
