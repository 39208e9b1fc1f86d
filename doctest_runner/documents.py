"""Discovery and loading of documents from the filesystem."""

import glob
import logging
from collections.abc import Sequence
from pathlib import Path

from doctest_runner.models.document import Document
from doctest_runner.models.summary import DocumentError

log = logging.getLogger(__name__)

GLOB_CHARS = frozenset("*?[")


def collect_paths(
    targets: Sequence[str | Path], patterns: Sequence[str] = ("*.md",)
) -> Sequence[Path]:
    """Expand files, directories and glob patterns into document paths.

    Directories are searched recursively for files matching ``patterns``.
    Paths that do not exist are kept so that loading reports them.

    Returns:
        Unique paths sorted alphabetically

    """
    found: set[Path] = set()

    for target in targets:
        path = Path(target)
        if path.is_dir():
            for pattern in patterns:
                found.update(p for p in path.rglob(pattern) if p.is_file())
        elif not path.exists() and GLOB_CHARS & set(str(target)):
            found.update(
                Path(p)
                for p in glob.glob(str(target), recursive=True)
                if Path(p).is_file()
            )
        else:
            found.add(path)

    return sorted(found)


def read_document(path: Path) -> Document:
    """Read a UTF-8 document from disk."""
    return Document(path=str(path), text=path.read_text(encoding="utf-8"))


def read_documents(
    paths: Sequence[Path],
) -> tuple[Sequence[Document], Sequence[DocumentError]]:
    """Read documents, collecting an error for each unreadable path."""
    documents: list[Document] = []
    errors: list[DocumentError] = []

    for path in paths:
        try:
            documents.append(read_document(path))
        except (OSError, UnicodeDecodeError) as e:
            log.error("Cannot read %s: %s", path, e)
            errors.append(
                DocumentError(path=str(path), line=0, message=f"Cannot read file: {e}")
            )

    return documents, errors
