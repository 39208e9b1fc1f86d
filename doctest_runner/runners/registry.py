"""Mapping of language tags to runners."""

from collections.abc import Sequence
from dataclasses import dataclass, field

from doctest_runner.config import DocTestConfig, RunnerConfig
from doctest_runner.errors import UnsupportedLanguageError
from doctest_runner.runners.base import Runner
from doctest_runner.runners.builtin import BUILTIN_MANIFESTS
from doctest_runner.runners.loading import load_runner_manifests
from doctest_runner.runners.manifest import RunnerManifest
from doctest_runner.runners.process import SubprocessRunner


@dataclass(kw_only=True)
class RunnerRegistry:
    """Resolves language tags to runners, case-insensitively.

    Later registrations of a tag replace earlier ones.
    """

    runners: dict[str, Runner] = field(default_factory=dict)

    @classmethod
    def from_config(
        cls, config: DocTestConfig, *, plugins: bool = True
    ) -> "RunnerRegistry":
        """Build a registry from built-ins, plugins and configured runners."""
        registry = cls()
        for manifest in BUILTIN_MANIFESTS:
            registry.register(manifest)
        if plugins:
            for manifest in load_runner_manifests():
                registry.register(manifest)
        for name, runner_config in config.runners.items():
            registry.register(manifest_from_config(name, runner_config))
        return registry

    def register(self, manifest: RunnerManifest) -> None:
        for tag in manifest.tags:
            self.runners[tag.lower()] = manifest.runner

    def resolve(self, language: str) -> Runner:
        """Return the runner for ``language``.

        Raises:
            UnsupportedLanguageError: If no runner handles the tag

        """
        try:
            return self.runners[language.lower()]
        except KeyError:
            raise UnsupportedLanguageError(language) from None

    def __contains__(self, language: str) -> bool:
        return language.lower() in self.runners

    @property
    def languages(self) -> Sequence[str]:
        return sorted(self.runners)


def manifest_from_config(name: str, config: RunnerConfig) -> RunnerManifest:
    return RunnerManifest(
        name=name,
        aliases=tuple(config.aliases),
        runner=SubprocessRunner(
            command=tuple(config.command),
            suffix=config.suffix,
            line_pattern=config.line_pattern,
        ),
    )
