"""Extraction of fenced code blocks from markdown documents.

Fence grammar:

* An opening fence has at most three spaces of indentation followed by at
  least three backticks or tildes and an optional info string. Backtick
  info strings may not contain backticks.
* A closing fence uses the same character, is at least as long as the
  opening run and carries nothing but whitespace after it.
* Inside a block, shorter runs and runs of the other character are content,
  so a longer outer fence can show fences in its body.
* Inside a block, a run of the same character that is long enough to close
  the block but carries an info string is an ambiguous nested opening.
  It raises :class:`ParseError` at the line of the unclosed block, as does
  end of input with an open block.
"""

import re
import shlex
from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from typing import Protocol

from doctest_runner.errors import ParseError
from doctest_runner.models.document import CodeBlock, Document

FENCE_RE = re.compile(r"^(?P<indent> {0,3})(?P<fence>`{3,}|~{3,})(?P<info>.*)$")
HEADING_RE = re.compile(
    r"^ {0,3}(?P<hashes>#{1,6})(?:[ \t]+(?P<text>.*?))?[ \t]*#*[ \t]*$"
)


class Parser(Protocol):
    """Turns a document into its ordered code blocks."""

    def parse(self, document: Document) -> Sequence[CodeBlock]:
        """Return the document's code blocks in document order."""
        ...


@dataclass(frozen=True, kw_only=True)
class _Fence:
    line: int
    indent: int
    char: str
    length: int
    info: str


@dataclass(frozen=True, kw_only=True)
class MarkdownParser:
    """Default parser for markdown fenced code blocks."""

    default_language: str = ""
    extract_metadata: bool = True

    def parse(self, document: Document) -> Sequence[CodeBlock]:
        blocks: list[CodeBlock] = []
        for opening, body in _iter_fenced_regions(document.text):
            language, metadata = parse_info(opening.info)
            blocks.append(
                CodeBlock(
                    path=document.path,
                    index=len(blocks),
                    line=opening.line,
                    language=language or self.default_language,
                    code=_dedent(body, opening.indent),
                    info=opening.info,
                    metadata=metadata if self.extract_metadata else {},
                )
            )
        return blocks


def parse_info(info: str) -> tuple[str, dict[str, str | bool]]:
    """Split a fence info string into a language tag and annotations.

    ``python skip session=setup`` yields
    ``("python", {"skip": True, "session": "setup"})``.
    """
    try:
        tokens = shlex.split(info)
    except ValueError:
        tokens = info.split()

    language = ""
    if tokens and "=" not in tokens[0]:
        language = tokens.pop(0)

    metadata: dict[str, str | bool] = {}
    for token in tokens:
        if "=" in token:
            key, value = token.split("=", 1)
            metadata[key] = value
        else:
            metadata[token] = True
    return language, metadata


def _match_fence(line: str, number: int) -> _Fence | None:
    if (match := FENCE_RE.match(line)) is None:
        return None
    fence = match["fence"]
    info = match["info"].strip()
    if fence[0] == "`" and "`" in info:
        return None
    return _Fence(
        line=number,
        indent=len(match["indent"]),
        char=fence[0],
        length=len(fence),
        info=info,
    )


def _iter_fenced_regions(text: str) -> Iterator[tuple[_Fence, list[str]]]:
    opening: _Fence | None = None
    body: list[str] = []

    for number, line in enumerate(text.splitlines(), 1):
        fence = _match_fence(line, number)

        if opening is None:
            if fence is not None:
                opening, body = fence, []
            continue

        if fence is None or fence.char != opening.char or fence.length < opening.length:
            body.append(line)
        elif fence.info:
            raise ParseError(
                f"code block is not closed before the fence on line {number};"
                " close it first or use a longer outer fence",
                opening.line,
            )
        else:
            yield opening, body
            opening = None

    if opening is not None:
        raise ParseError("unterminated code fence", opening.line)


def _dedent(lines: list[str], indent: int) -> str:
    if indent == 0:
        return "\n".join(lines)
    out = []
    for line in lines:
        strip = len(line) - len(line.lstrip(" "))
        out.append(line[min(strip, indent) :])
    return "\n".join(out)


@dataclass(frozen=True, kw_only=True)
class Heading:
    """An ATX heading and the anchor it generates."""

    line: int
    level: int
    text: str
    anchor: str


def scan_headings(document: Document) -> Sequence[Heading]:
    """Return ATX headings outside code blocks, in document order.

    Unterminated fences are tolerated here; everything after them is
    treated as code.
    """
    headings: list[Heading] = []
    opening: _Fence | None = None

    for number, line in enumerate(document.text.splitlines(), 1):
        fence = _match_fence(line, number)
        if opening is not None:
            if (
                fence is not None
                and fence.char == opening.char
                and fence.length >= opening.length
                and not fence.info
            ):
                opening = None
            continue
        if fence is not None:
            opening = fence
            continue
        if (match := HEADING_RE.match(line)) is not None:
            text = (match["text"] or "").strip()
            headings.append(
                Heading(
                    line=number,
                    level=len(match["hashes"]),
                    text=text,
                    anchor=slugify(text),
                )
            )
    return headings


def slugify(text: str) -> str:
    """Build a GitHub-style heading anchor."""
    slug = re.sub(r"[^\w\- ]", "", text.lower(), flags=re.UNICODE)
    return slug.replace(" ", "-")
