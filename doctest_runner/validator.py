"""Structural validation of documents without executing code."""

import logging
from collections.abc import Collection, Sequence
from dataclasses import dataclass, field

from doctest_runner.errors import ParseError
from doctest_runner.models.document import Document
from doctest_runner.models.summary import (
    DocumentAnalysis,
    DocumentError,
    ValidationIssue,
    ValidationReport,
)
from doctest_runner.parser import MarkdownParser, Parser, scan_headings

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class Validator:
    """Checks documents for well-formedness.

    Problems in one document never stop the others from being checked.
    The report lists documents in input order and issues by line, so
    validating unchanged documents always yields the same report.
    """

    parser: Parser = field(default_factory=MarkdownParser)
    languages: Collection[str] | None = None
    unique_headings: bool = False

    def validate(
        self,
        documents: Sequence[Document],
        load_errors: Sequence[DocumentError] = (),
    ) -> ValidationReport:
        errors: list[ValidationIssue] = [
            ValidationIssue(path=e.path, line=e.line, message=e.message)
            for e in load_errors
        ]
        warnings: list[ValidationIssue] = []
        analyses: list[DocumentAnalysis] = []

        for document in documents:
            doc_errors, doc_warnings, analysis = self._check(document)
            errors.extend(doc_errors)
            warnings.extend(doc_warnings)
            analyses.append(analysis)

        log.info(
            "Validated %d document(s): %d error(s), %d warning(s)",
            len(documents),
            len(errors),
            len(warnings),
        )
        return ValidationReport(
            errors=tuple(errors), warnings=tuple(warnings), documents=tuple(analyses)
        )

    def _check(
        self, document: Document
    ) -> tuple[list[ValidationIssue], list[ValidationIssue], DocumentAnalysis]:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []

        try:
            blocks = self.parser.parse(document)
        except ParseError as e:
            errors.append(
                ValidationIssue(path=document.path, line=e.line, message=e.message)
            )
            blocks = []
            parsed = False
        else:
            parsed = True

        known = (
            {language.lower() for language in self.languages}
            if self.languages is not None
            else None
        )
        for block in blocks:
            if not block.language:
                warnings.append(
                    ValidationIssue(
                        path=document.path,
                        line=block.line,
                        message="code block has no language tag",
                        severity="warning",
                    )
                )
            elif known is not None and block.language.lower() not in known:
                warnings.append(
                    ValidationIssue(
                        path=document.path,
                        line=block.line,
                        message=f"unrecognised language '{block.language}'",
                        severity="warning",
                    )
                )

        if self.unique_headings:
            errors.extend(_duplicate_anchors(document))

        errors.sort(key=lambda issue: issue.line)
        analysis = DocumentAnalysis(
            path=document.path,
            valid=parsed and not errors,
            block_count=len(blocks),
            languages=tuple(sorted({b.language for b in blocks if b.language})),
        )
        return errors, warnings, analysis


def _duplicate_anchors(document: Document) -> list[ValidationIssue]:
    seen: dict[str, int] = {}
    issues: list[ValidationIssue] = []

    for heading in scan_headings(document):
        if not heading.anchor:
            continue
        if heading.anchor in seen:
            issues.append(
                ValidationIssue(
                    path=document.path,
                    line=heading.line,
                    message=(
                        f"duplicate heading anchor '#{heading.anchor}'"
                        f" (first defined on line {seen[heading.anchor]})"
                    ),
                )
            )
        else:
            seen[heading.anchor] = heading.line

    return issues
