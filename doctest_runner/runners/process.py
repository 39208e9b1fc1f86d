"""Runner executing blocks as scripts in a subprocess."""

import asyncio
import logging
import os
import re
import signal
import tempfile
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from doctest_runner.models.document import CodeBlock
from doctest_runner.models.result import TestError, TestResult
from doctest_runner.runners.base import ExecutionContext, Runner

log = logging.getLogger(__name__)

FILE_PLACEHOLDER = "{file}"

# Seconds allowed for output pipes to close after the script exits, and
# after its leftover children are killed.
EXIT_GRACE = 0.1
DRAIN_TIMEOUT = 1.0


@dataclass(frozen=True, kw_only=True)
class SubprocessRunner(Runner):
    """Writes the block to a script file and runs ``command`` on it.

    ``line_pattern`` locates error lines in the process's stderr. It must
    contain a ``line`` group and may contain a ``file`` group, in which case
    only matches naming the script are used.
    """

    command: Sequence[str]
    suffix: str = ""
    line_pattern: str | None = None
    line_match: Literal["first", "last"] = "last"

    async def run(self, block: CodeBlock, context: ExecutionContext) -> TestResult:
        loop = asyncio.get_running_loop()
        script = self._write_script(block, context.cwd)
        argv = self._argv(script)
        started = loop.time()

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=context.cwd,
                    env={**os.environ, **context.env},
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    start_new_session=os.name == "posix",
                )
            except OSError as e:
                return TestResult.failed(
                    block.ref,
                    TestError(
                        kind="execution",
                        message=f"Cannot start {argv[0]}: {e}",
                        line=block.line,
                    ),
                )

            log.debug("Started pid=%d for %s: %s", process.pid, block.ref, argv)
            stdout, stderr, timed_out = await _communicate(process, context.timeout)
        finally:
            script.unlink(missing_ok=True)

        duration = loop.time() - started
        out = stdout.decode(errors="replace")
        err = stderr.decode(errors="replace")
        output = (out + err) or None

        if timed_out:
            log.debug("Block %s timed out after %.3fs", block.ref, context.timeout)
            return TestResult.failed(
                block.ref,
                TestError(
                    kind="timeout",
                    message=(
                        f"Execution exceeded timeout of "
                        f"{round(context.timeout * 1000)} ms"
                    ),
                    line=block.line,
                ),
                duration=duration,
                output=output,
            )

        if process.returncode == 0:
            return TestResult(
                block=block.ref, status="passed", duration=duration, output=output
            )

        return TestResult.failed(
            block.ref,
            TestError(
                kind="execution",
                message=_last_line(err)
                or f"Process exited with status {process.returncode}",
                line=self._document_line(block, script, err),
            ),
            duration=duration,
            output=output,
        )

    def _write_script(self, block: CodeBlock, cwd: Path) -> Path:
        fd, name = tempfile.mkstemp(
            prefix=f"block-{block.index}-", suffix=self.suffix, dir=cwd
        )
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(block.code)
            if block.code and not block.code.endswith("\n"):
                f.write("\n")
        return Path(name)

    def _argv(self, script: Path) -> Sequence[str]:
        if not any(FILE_PLACEHOLDER in arg for arg in self.command):
            return [*self.command, str(script)]
        return [arg.replace(FILE_PLACEHOLDER, str(script)) for arg in self.command]

    def _document_line(self, block: CodeBlock, script: Path, stderr: str) -> int:
        """Map the script line reported in ``stderr`` to a document line."""
        if self.line_pattern is None:
            return block.line

        lines = [
            int(match["line"])
            for match in re.finditer(self.line_pattern, stderr)
            if match.groupdict().get("file") is None
            or Path(match["file"]).name == script.name
        ]
        if not lines:
            return block.line

        script_line = lines[0] if self.line_match == "first" else lines[-1]
        return block.line + script_line


async def _communicate(
    process: asyncio.subprocess.Process, timeout: float
) -> tuple[bytes, bytes, bool]:
    """Wait for the script to exit and collect its output.

    The timeout applies to the script process, not to its output pipes. The
    process group is killed while the script is still unreaped (timeout or
    cancellation), or when background children it started still hold the
    pipes after it exits.

    Returns:
        stdout, stderr and whether the timeout expired

    """
    if process.stdout is None or process.stderr is None:
        raise RuntimeError("Process was started without output pipes")
    out: list[bytes] = []
    err: list[bytes] = []
    readers = {
        asyncio.create_task(_drain(process.stdout, out)),
        asyncio.create_task(_drain(process.stderr, err)),
    }
    timed_out = False

    try:
        try:
            await asyncio.wait_for(process.wait(), timeout)
        except TimeoutError:
            timed_out = True
        finally:
            if process.returncode is None:
                _kill_group(process)
                await process.wait()

        try:
            _, pending = await asyncio.wait(readers, timeout=EXIT_GRACE)
            if pending and not timed_out:
                log.debug("pid=%d left children holding its output", process.pid)
                _kill_group(process)
                await asyncio.wait(pending, timeout=DRAIN_TIMEOUT)
        except asyncio.CancelledError:
            if not all(reader.done() for reader in readers):
                _kill_group(process)
            raise
    finally:
        for reader in readers:
            reader.cancel()

    return b"".join(out), b"".join(err), timed_out


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while chunk := await stream.read(65536):
        chunks.append(chunk)


def _kill_group(process: asyncio.subprocess.Process) -> None:
    """Kill the process and every member of its process group."""
    try:
        if os.name == "posix":
            os.killpg(process.pid, signal.SIGKILL)
        elif process.returncode is None:
            process.kill()
    except (ProcessLookupError, PermissionError):
        pass


def _last_line(text: str) -> str:
    for line in reversed(text.splitlines()):
        if line.strip():
            return line.strip()
    return ""
