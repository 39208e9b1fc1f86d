"""Runners available without any configuration."""

import sys

from doctest_runner.runners.manifest import RunnerManifest
from doctest_runner.runners.process import SubprocessRunner

python_manifest = RunnerManifest(
    name="python",
    aliases=("py", "python3"),
    runner=SubprocessRunner(
        command=(sys.executable, "{file}"),
        suffix=".py",
        line_pattern=r'File "(?P<file>[^"]+)", line (?P<line>\d+)',
    ),
)

bash_manifest = RunnerManifest(
    name="bash",
    aliases=("shell",),
    runner=SubprocessRunner(
        command=("bash", "{file}"),
        suffix=".sh",
        line_pattern=r"(?P<file>\S+): line (?P<line>\d+):",
    ),
)

sh_manifest = RunnerManifest(
    name="sh",
    runner=SubprocessRunner(
        command=("sh", "{file}"),
        suffix=".sh",
        line_pattern=r"(?P<file>\S+): (?:line )?(?P<line>\d+):",
    ),
)

node_manifest = RunnerManifest(
    name="node",
    aliases=("javascript", "js"),
    runner=SubprocessRunner(
        command=("node", "{file}"),
        suffix=".js",
        line_pattern=r"(?P<file>[^\s()]+\.js):(?P<line>\d+)",
        line_match="first",
    ),
)

BUILTIN_MANIFESTS = (python_manifest, bash_manifest, sh_manifest, node_manifest)
