"""Runner manifest definition for the plugin system."""

from collections.abc import Sequence
from dataclasses import dataclass

from doctest_runner.runners.base import Runner


@dataclass(frozen=True, kw_only=True)
class RunnerManifest:
    """Manifest describing a runner plugin.

    The manifest binds a runner to the language tags it handles. Tags are
    matched case-insensitively.
    """

    name: str
    runner: Runner
    aliases: Sequence[str] = ()

    @property
    def tags(self) -> Sequence[str]:
        return (self.name, *self.aliases)
