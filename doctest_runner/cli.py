"""CLI entry point for documentation testing."""

import argparse
import asyncio
import logging
import sys
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

from doctest_runner.config import DocTestConfig, load_config
from doctest_runner.documents import collect_paths, read_documents
from doctest_runner.errors import ConfigError
from doctest_runner.events import (
    EventChannel,
    FileChanged,
    Notification,
    RunCompleted,
    TestFailed,
    TestStarted,
    WatcherFailed,
)
from doctest_runner.models.summary import RunSummary, ValidationReport
from doctest_runner.orchestrator import RunOrchestrator
from doctest_runner.parser import MarkdownParser
from doctest_runner.reporter import get_reporter
from doctest_runner.runners.registry import RunnerRegistry
from doctest_runner.validator import Validator
from doctest_runner.watcher import Watcher

log = logging.getLogger("doctest_runner")

STATUS_SYMBOLS = {
    "passed": "✅",
    "failed": "❌",
    "skipped": "⏭️",
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG_ERROR = 2


def log_results_summary(
    log: logging.Logger, summary: RunSummary, *, verbose: bool = False
) -> None:
    """Log a formatted summary of block results."""
    log.info("=" * 80)
    log.info("Test Results Summary:")
    log.info("=" * 80)

    for result in summary.results:
        symbol = STATUS_SYMBOLS.get(result.status, "?")
        log.info(
            "%s %s [%s]: %s (%.2fs)",
            symbol,
            result.block,
            result.block.language or "-",
            result.status,
            result.duration,
        )
        if result.error:
            log.info("  Error: %s (line %d)", result.error.message, result.error.line)
        if result.skip_reason:
            log.info("  Reason: %s", result.skip_reason)
        if result.output and (verbose or result.status == "failed"):
            log.info("  Output:\n%s", result.output.rstrip("\n"))

    for error in summary.errors:
        log.info("❗ %s", error)

    log.info(
        "%d total, %d passed, %d failed, %d skipped",
        summary.total,
        summary.passed,
        summary.failed,
        summary.skipped,
    )


def format_failures(summary: RunSummary) -> Sequence[str]:
    """Format one line per failed block or document error."""
    lines = [str(error) for error in summary.errors]
    for result in summary.results:
        if result.status == "failed" and result.error is not None:
            lines.append(
                f"{result.block.path}:{result.error.line}:"
                f" {result.error.kind}: {result.error.message}"
            )
    return lines


def log_validation_report(log: logging.Logger, report: ValidationReport) -> None:
    """Log every validation error and warning."""
    for analysis in report.documents:
        log.info(
            "%s %s: %d block(s)%s",
            "✅" if analysis.valid else "❌",
            analysis.path,
            analysis.block_count,
            f" [{', '.join(analysis.languages)}]" if analysis.languages else "",
        )
    for issue in report.errors:
        log.error("%s", issue)
    for issue in report.warnings:
        log.warning("%s", issue)


def log_event(event: Notification) -> None:
    """Log run and watch notifications."""
    match event:
        case TestStarted(block=block):
            log.debug("Started %s", block.ref)
        case TestFailed(result=result) if result.error is not None:
            log.debug("Failed %s: %s", result.block, result.error.message)
        case FileChanged(path=path):
            log.info("Change detected in %s", path)
        case WatcherFailed(error=error):
            log.error("Watcher error: %s", error)
        case _:
            pass


async def run(paths: Sequence[Path], config: DocTestConfig) -> int:
    """Run documents and return exit code."""
    summary = await execute(paths, config)
    log_results_summary(log, summary, verbose=config.verbose)

    for line in format_failures(summary):
        print(line)
    print(
        f"{summary.total} total, {summary.passed} passed, {summary.failed} failed,"
        f" {summary.skipped} skipped"
    )
    return EXIT_OK if summary.ok else EXIT_FAILED


async def report(
    paths: Sequence[Path], config: DocTestConfig, fmt: str, output: Path | None
) -> int:
    """Run documents, write the rendered report and return exit code."""
    reporter = get_reporter(fmt)
    summary = await execute(paths, config)
    rendered = reporter.render(summary)

    if output is None:
        sys.stdout.write(rendered)
    else:
        output.write_text(rendered, encoding="utf-8")
        log.info("Report written to %s", output)

    return EXIT_OK if summary.ok else EXIT_FAILED


async def execute(paths: Sequence[Path], config: DocTestConfig) -> RunSummary:
    documents, errors = read_documents(paths)
    channel = EventChannel()
    channel.subscribe(log_event)
    orchestrator = RunOrchestrator.from_config(config, channel)
    return await orchestrator.run(documents, errors=errors)


def validate(paths: Sequence[Path], config: DocTestConfig) -> int:
    """Validate documents and return exit code."""
    documents, errors = read_documents(paths)
    validator = Validator(
        parser=MarkdownParser(
            default_language=config.default_language,
            extract_metadata=config.extract_metadata,
        ),
        languages=RunnerRegistry.from_config(config).languages,
        unique_headings=config.unique_headings,
    )
    result = validator.validate(documents, load_errors=errors)
    log_validation_report(log, result)

    for issue in result.errors:
        print(issue)
    print(
        f"{len(result.documents)} document(s), {len(result.errors)} error(s),"
        f" {len(result.warnings)} warning(s)"
    )
    return EXIT_OK if result.is_valid else EXIT_FAILED


async def watch(paths: Sequence[Path], config: DocTestConfig) -> int:
    """Watch documents until interrupted."""
    channel = EventChannel()
    channel.subscribe(log_event)

    def on_completed(event: Notification) -> None:
        if isinstance(event, RunCompleted):
            log_results_summary(log, event.summary, verbose=config.verbose)

    channel.subscribe(on_completed)

    watcher = Watcher(
        paths=paths,
        orchestrator=RunOrchestrator.from_config(config, channel),
        poll_interval=config.poll_interval,
        debounce=config.debounce,
    )
    async with watcher:
        await asyncio.Event().wait()
    return EXIT_OK  # pragma: no cover


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "files",
        nargs="*",
        default=["."],
        help="Documents, directories or glob patterns (default: current directory)",
    )
    common.add_argument("--config", type=Path, help="Path to a YAML config file")
    common.add_argument("--timeout", type=int, help="Per-block timeout in milliseconds")
    common.add_argument("--max-workers", type=int, help="Maximum parallel blocks")
    common.add_argument("--filter", help="Regex selecting blocks to run")
    common.add_argument(
        "--debug", action="store_true", default=None, help="Enable debug logging"
    )
    common.add_argument(
        "--verbose",
        action="store_true",
        default=None,
        help="Show output of passing blocks",
    )

    parser = argparse.ArgumentParser(
        prog="doctest-runner",
        description="Extract and execute code blocks from documentation",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("run", parents=[common], help="Run code blocks")
    commands.add_parser(
        "validate", parents=[common], help="Check document structure without running"
    )
    commands.add_parser("watch", parents=[common], help="Re-run documents on change")
    report_parser = commands.add_parser(
        "report", parents=[common], help="Run code blocks and render a report"
    )
    report_parser.add_argument(
        "--format", dest="report_format", help="json, markdown or text"
    )
    report_parser.add_argument("--output", type=Path, help="Write report to a file")
    return parser


def config_overrides(args: argparse.Namespace) -> Mapping[str, Any]:
    return {
        "timeout": args.timeout,
        "max_workers": args.max_workers,
        "filter": args.filter,
        "debug": args.debug,
        "verbose": args.verbose,
        "report_format": getattr(args, "report_format", None),
    }


def dispatch_command(args: argparse.Namespace, config: DocTestConfig) -> int:
    paths = collect_paths(args.files, config.patterns)
    log.info("Found %d document(s)", len(paths))

    match args.command:
        case "run":
            return asyncio.run(run(paths, config))
        case "validate":
            return validate(paths, config)
        case "report":
            return asyncio.run(report(paths, config, config.report_format, args.output))
        case "watch":
            try:
                return asyncio.run(watch(paths, config))
            except KeyboardInterrupt:
                return EXIT_OK
        case _:  # pragma: no cover
            raise ValueError(f"Unknown command {args.command}")


def main(argv: Sequence[str] | None = None) -> None:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        config = load_config(args.config, config_overrides(args))
        if config.debug:
            logging.getLogger().setLevel(logging.DEBUG)
        get_reporter(config.report_format)
        exit_code = dispatch_command(args, config)
    except ConfigError as e:
        log.error("Configuration error: %s", e)
        exit_code = EXIT_CONFIG_ERROR

    sys.exit(exit_code)


if __name__ == "__main__":  # pragma: no cover
    main()
