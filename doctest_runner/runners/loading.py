"""Loading of runner plugins from entry points."""

import logging
from collections.abc import Sequence
from importlib.metadata import entry_points

from doctest_runner.runners.manifest import RunnerManifest

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "doctest_runner.runners"


class RunnerPluginError(Exception):
    """Raised when an entry point does not provide a runner manifest."""


def load_runner_manifests() -> Sequence[RunnerManifest]:
    """Load all runner manifests registered under the entry point group.

    Returns:
        Manifests in entry point order

    Raises:
        RunnerPluginError: If an entry point resolves to something other
            than a RunnerManifest

    """
    manifests: list[RunnerManifest] = []

    for entry in entry_points(group=ENTRY_POINT_GROUP):
        manifest = entry.load()
        if not isinstance(manifest, RunnerManifest):
            raise RunnerPluginError(
                f"Entry point '{entry.name}' ({entry.value}) is not a RunnerManifest"
            )
        log.debug("Loaded runner plugin %s from %s", manifest.name, entry.value)
        manifests.append(manifest)

    return manifests
