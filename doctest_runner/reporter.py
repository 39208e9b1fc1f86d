"""Rendering of run summaries.

Renderers are pure: the same summary always produces the same text.
"""

import json
from collections.abc import Mapping
from dataclasses import asdict
from typing import Any, Protocol

from doctest_runner.errors import ConfigError
from doctest_runner.models.result import TestResult
from doctest_runner.models.summary import RunSummary

STATUS_LABELS = {
    "passed": "PASS",
    "failed": "FAIL",
    "skipped": "SKIP",
}


class Reporter(Protocol):
    """Serializes a completed run summary."""

    def render(self, summary: RunSummary) -> str:
        ...


class JsonReporter:
    """Machine-readable report."""

    def render(self, summary: RunSummary) -> str:
        return json.dumps(summary_to_dict(summary), indent=2, sort_keys=True) + "\n"


class MarkdownReporter:
    """Markdown report with a summary table and per-test detail."""

    def render(self, summary: RunSummary) -> str:
        lines = [
            "# Documentation test report",
            "",
            "| Total | Passed | Failed | Skipped | Duration |",
            "| ---: | ---: | ---: | ---: | ---: |",
            f"| {summary.total} | {summary.passed} | {summary.failed}"
            f" | {summary.skipped} | {summary.duration:.2f}s |",
            "",
        ]
        if summary.cancelled:
            lines += ["> Run was cancelled before all blocks finished.", ""]

        if summary.errors:
            lines += ["## Document errors", ""]
            lines += [f"- `{error}`" for error in summary.errors]
            lines.append("")

        lines += ["## Results", ""]
        if not summary.results:
            lines += ["No code blocks were run.", ""]

        for result in summary.results:
            lines.append(
                f"### {STATUS_LABELS[result.status]} `{result.block}`"
                f" ({result.block.language or 'no language'})"
            )
            lines.append("")
            lines.append(f"- Duration: {result.duration:.2f}s")
            if result.skip_reason:
                lines.append(f"- Skipped: {result.skip_reason}")
            if result.error is not None:
                lines.append(
                    f"- Error ({result.error.kind}, line {result.error.line}):"
                    f" {result.error.message}"
                )
            if result.status == "failed" and result.output:
                fence = _fence_for(result.output)
                lines += ["", fence + "text", result.output.rstrip("\n"), fence]
            lines.append("")

        return "\n".join(lines)


class TextReporter:
    """Plain-text report."""

    def render(self, summary: RunSummary) -> str:
        lines = [_result_line(result) for result in summary.results]
        lines += [f"ERROR {error}" for error in summary.errors]
        if lines:
            lines.append("")
        lines.append(
            f"{summary.total} total, {summary.passed} passed, {summary.failed} failed,"
            f" {summary.skipped} skipped in {summary.duration:.2f}s"
            + (" (cancelled)" if summary.cancelled else "")
        )
        return "\n".join(lines) + "\n"


REPORTERS: Mapping[str, Reporter] = {
    "json": JsonReporter(),
    "markdown": MarkdownReporter(),
    "text": TextReporter(),
}

FORMAT_ALIASES: Mapping[str, str] = {
    "structured": "json",
    "markup": "markdown",
    "md": "markdown",
    "plain": "text",
    "txt": "text",
}


def get_reporter(fmt: str) -> Reporter:
    """Return the reporter for a format name or alias.

    Raises:
        ConfigError: If the format is unknown

    """
    name = FORMAT_ALIASES.get(fmt.lower(), fmt.lower())
    try:
        return REPORTERS[name]
    except KeyError:
        raise ConfigError(
            f"Unknown report format '{fmt}'. Available formats: {sorted(REPORTERS)}"
        ) from None


def render_report(summary: RunSummary, fmt: str) -> str:
    return get_reporter(fmt).render(summary)


def summary_to_dict(summary: RunSummary) -> dict[str, Any]:
    """Convert a summary to JSON-compatible data."""
    return {
        "total": summary.total,
        "passed": summary.passed,
        "failed": summary.failed,
        "skipped": summary.skipped,
        "duration": round(summary.duration, 6),
        "cancelled": summary.cancelled,
        "errors": [asdict(error) for error in summary.errors],
        "results": [_result_to_dict(result) for result in summary.results],
    }


def _result_to_dict(result: TestResult) -> dict[str, Any]:
    data = asdict(result)
    data["duration"] = round(result.duration, 6)
    return data


def _result_line(result: TestResult) -> str:
    line = f"{STATUS_LABELS[result.status]} {result.block} [{result.block.language}]"
    if result.error is not None:
        line += f" - {result.error.kind}: {result.error.message}"
    elif result.skip_reason:
        line += f" - {result.skip_reason}"
    return line


def _fence_for(text: str) -> str:
    longest = 0
    run = 0
    for char in text:
        run = run + 1 if char == "`" else 0
        longest = max(longest, run)
    return "`" * max(3, longest + 1)
