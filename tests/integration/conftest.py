"""Fixtures for integration tests that execute real subprocesses."""

from pathlib import Path
from typing import Protocol

import pytest

from doctest_runner.config import DocTestConfig
from doctest_runner.models.document import Document
from doctest_runner.orchestrator import RunOrchestrator


class WriteDocFn(Protocol):
    """Protocol for document creation function."""

    def __call__(self, name: str, text: str) -> Document:
        """Write a markdown file and return it as a Document."""


class OrchestratorFn(Protocol):
    """Protocol for orchestrator factory."""

    def __call__(self, **options: object) -> RunOrchestrator:
        """Create an orchestrator with the given config options."""


@pytest.fixture
def write_doc(tmp_path: Path) -> WriteDocFn:
    """Return a function to create documents on disk."""

    def _write(name: str, text: str) -> Document:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return Document(path=str(path), text=text)

    return _write


@pytest.fixture
def make_orchestrator() -> OrchestratorFn:
    """Return a factory for orchestrators with built-in runners only."""

    def _make(**options: object) -> RunOrchestrator:
        return RunOrchestrator.from_config(DocTestConfig.model_validate(options))

    return _make

