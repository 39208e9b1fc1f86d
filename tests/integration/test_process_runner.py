"""Integration tests for SubprocessRunner with real interpreters."""

import asyncio
import shutil
import sys
from pathlib import Path

import pytest

from doctest_runner.runners.base import ExecutionContext
from doctest_runner.runners.builtin import bash_manifest, python_manifest
from doctest_runner.runners.process import SubprocessRunner
from doctest_runner.testing.factories import make_block

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not Path("/proc/self").exists(), reason="requires Linux /proc"),
]


def process_alive(pid: int) -> bool:
    """Check whether a process exists and is not a zombie."""
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except FileNotFoundError:
        return False
    return stat.rsplit(")", 1)[1].split()[0] != "Z"


@pytest.fixture
def context(tmp_path: Path) -> ExecutionContext:
    workdir = tmp_path / "work"
    workdir.mkdir()
    return ExecutionContext(timeout=10.0, cwd=workdir)


class TestPythonRunner:
    """Tests for the built-in python runner."""

    async def test_passing_block_captures_output(
        self, context: ExecutionContext
    ) -> None:
        block = make_block("print('hello')\nimport sys\nprint('oops', file=sys.stderr)")

        result = await python_manifest.runner.run(block, context)

        assert result.status == "passed"
        assert result.error is None
        assert result.output == "hello\noops\n"
        assert result.duration > 0

    async def test_exception_line_is_remapped_to_document(
        self, context: ExecutionContext
    ) -> None:
        """Traceback line is translated to the line in the markdown file."""
        block = make_block("x = 1\nraise ValueError('boom')\n", line=20)

        result = await python_manifest.runner.run(block, context)

        assert result.status == "failed"
        assert result.error is not None
        assert result.error.kind == "execution"
        assert result.error.message == "ValueError: boom"
        assert result.error.line == 22
        assert result.output is not None
        assert "Traceback" in result.output

    async def test_exit_without_traceback_uses_fence_line(
        self, context: ExecutionContext
    ) -> None:
        block = make_block("raise SystemExit(3)", line=7)

        result = await python_manifest.runner.run(block, context)

        assert result.status == "failed"
        assert result.error is not None
        assert result.error.message == "Process exited with status 3"
        assert result.error.line == 7

    async def test_environment_overrides(self, tmp_path: Path) -> None:
        context = ExecutionContext(
            timeout=10.0, cwd=tmp_path, env={"DOCTEST_GREETING": "bonjour"}
        )
        block = make_block("import os\nprint(os.environ['DOCTEST_GREETING'])")

        result = await python_manifest.runner.run(block, context)

        assert result.output == "bonjour\n"

    async def test_runs_in_context_directory_and_cleans_script(
        self, context: ExecutionContext
    ) -> None:
        block = make_block("import os\nprint(os.getcwd())")

        result = await python_manifest.runner.run(block, context)

        assert result.output is not None
        assert Path(result.output.strip()).resolve() == context.cwd.resolve()
        assert list(context.cwd.iterdir()) == []

    async def test_timeout_fails_block(self, tmp_path: Path) -> None:
        """A block sleeping past its timeout is killed and fails."""
        context = ExecutionContext(timeout=0.1, cwd=tmp_path)
        block = make_block("import time\ntime.sleep(0.5)\n", line=4)

        result = await python_manifest.runner.run(block, context)

        assert result.status == "failed"
        assert result.error is not None
        assert result.error.kind == "timeout"
        assert result.error.message == "Execution exceeded timeout of 100 ms"
        assert result.error.line == 4
        assert result.duration < 0.5


@pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")
class TestBashRunner:
    """Tests for the built-in bash runner."""

    async def test_command_not_found_line(self, context: ExecutionContext) -> None:
        block = make_block(
            "echo start\nthis-command-does-not-exist-xyz\n", language="bash", line=10
        )

        result = await bash_manifest.runner.run(block, context)

        assert result.status == "failed"
        assert result.error is not None
        assert result.error.line == 12
        assert "this-command-does-not-exist-xyz" in result.error.message
        assert result.output is not None
        assert result.output.startswith("start\n")

    async def test_timeout_kills_process_group(
        self, tmp_path: Path, context: ExecutionContext
    ) -> None:
        """Timed-out shells and their children leave no processes behind."""
        pids = tmp_path / "pids"
        block = make_block(
            f"echo $$ > {pids}\nsleep 30 &\necho $! >> {pids}\nwait\n",
            language="bash",
        )
        context = ExecutionContext(timeout=0.5, cwd=context.cwd)

        result = await bash_manifest.runner.run(block, context)

        assert result.status == "failed"
        assert result.error is not None
        assert result.error.kind == "timeout"
        shell_pid, child_pid = (int(p) for p in pids.read_text().split())
        for _ in range(50):
            if not process_alive(shell_pid) and not process_alive(child_pid):
                break
            await asyncio.sleep(0.02)
        assert not process_alive(shell_pid)
        assert not process_alive(child_pid)

    async def test_background_child_does_not_fail_block(
        self, tmp_path: Path, context: ExecutionContext
    ) -> None:
        """A script that exits 0 passes even if its background child lingers."""
        pid_file = tmp_path / "child"
        block = make_block(
            f"sleep 30 &\necho $! > {pid_file}\necho started\nexit 0\n",
            language="bash",
        )
        context = ExecutionContext(timeout=2.0, cwd=context.cwd)

        result = await bash_manifest.runner.run(block, context)

        assert result.status == "passed"
        assert result.error is None
        assert result.output == "started\n"
        assert result.duration < 2.0
        child_pid = int(pid_file.read_text())
        for _ in range(50):
            if not process_alive(child_pid):
                break
            await asyncio.sleep(0.02)
        assert not process_alive(child_pid)

    async def test_cancellation_kills_process(
        self, tmp_path: Path, context: ExecutionContext
    ) -> None:
        """Cancelling a run tears the subprocess down before propagating."""
        pid_file = tmp_path / "pid"
        block = make_block(f"echo $$ > {pid_file}\nsleep 30\n", language="bash")

        task = asyncio.create_task(bash_manifest.runner.run(block, context))
        while not pid_file.exists() or not pid_file.read_text().strip():
            await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not process_alive(int(pid_file.read_text()))


async def test_missing_interpreter_fails(context: ExecutionContext) -> None:
    runner = SubprocessRunner(command=("definitely-not-an-interpreter-xyz", "{file}"))

    result = await runner.run(make_block("x"), context)

    assert result.status == "failed"
    assert result.error is not None
    assert result.error.kind == "execution"
    assert "Cannot start definitely-not-an-interpreter-xyz" in result.error.message


async def test_command_without_placeholder_appends_script(
    context: ExecutionContext,
) -> None:
    runner = SubprocessRunner(command=(sys.executable,), suffix=".py")

    result = await runner.run(make_block("print(6 * 7)"), context)

    assert result.output == "42\n"


async def test_exited_script_group_is_not_signalled(
    context: ExecutionContext, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A script that exits cleanly has no group left to kill."""
    killed: list[int] = []
    monkeypatch.setattr("os.killpg", lambda pgid, sig: killed.append(pgid))

    result = await python_manifest.runner.run(make_block("print('done')"), context)

    assert result.status == "passed"
    assert killed == []
