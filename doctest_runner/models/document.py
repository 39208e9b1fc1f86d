"""Models for documents and the code blocks extracted from them."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Literal, TypeAlias

BlockStatus: TypeAlias = Literal["pending", "running", "passed", "failed", "skipped"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"passed", "failed", "skipped"})

ALLOWED_TRANSITIONS: Mapping[str, frozenset[str]] = {
    "pending": frozenset({"running", "skipped"}),
    "running": frozenset({"passed", "failed", "skipped"}),
    "passed": frozenset(),
    "failed": frozenset(),
    "skipped": frozenset(),
}


@dataclass(frozen=True, kw_only=True)
class Document:
    """Source text of a document plus its identifier."""

    path: str
    text: str


@dataclass(frozen=True, kw_only=True)
class BlockRef:
    """Identity of a code block within a run."""

    path: str
    index: int
    line: int
    language: str

    def __str__(self) -> str:
        return f"{self.path}:{self.line}"


@dataclass(kw_only=True)
class CodeBlock:
    """A fenced code region extracted from a document.

    ``line`` is the 1-based line of the opening fence. Everything but
    ``status`` is fixed at parse time; ``status`` only moves forward through
    :data:`ALLOWED_TRANSITIONS`.
    """

    path: str
    index: int
    line: int
    language: str
    code: str
    info: str = ""
    metadata: Mapping[str, str | bool] = field(default_factory=dict)
    status: BlockStatus = "pending"

    @property
    def ref(self) -> BlockRef:
        return BlockRef(
            path=self.path, index=self.index, line=self.line, language=self.language
        )

    @property
    def skip(self) -> bool:
        value = self.metadata.get("skip", False)
        if isinstance(value, str):
            return value.lower() not in {"false", "no", "0"}
        return bool(value)

    @property
    def session(self) -> str | None:
        value = self.metadata.get("session")
        return value if isinstance(value, str) and value else None

    @property
    def timeout_ms(self) -> int | None:
        value = self.metadata.get("timeout")
        if isinstance(value, str) and value.isdigit() and int(value) > 0:
            return int(value)
        return None

    @property
    def name(self) -> str | None:
        value = self.metadata.get("name")
        return value if isinstance(value, str) else None

    def transition(self, status: BlockStatus) -> None:
        """Move the block to ``status``.

        Raises:
            ValueError: If the transition is not allowed, including any move
                of a skip-annotated block to a status other than skipped.

        """
        if self.skip and status != "skipped":
            raise ValueError(f"{self.ref} is marked skip and cannot become {status}")
        if status not in ALLOWED_TRANSITIONS[self.status]:
            raise ValueError(f"{self.ref} cannot move from {self.status} to {status}")
        self.status = status
