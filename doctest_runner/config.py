"""Run configuration loaded from YAML and command-line overrides."""

import logging
import re
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, ValidationError, field_validator

from doctest_runner.errors import ConfigError
from doctest_runner.models.base import Model

log = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "doctest.yaml"


class RunnerConfig(Model):
    """A subprocess runner declared in configuration."""

    command: Sequence[str] = Field(
        ..., min_length=1, description="Command line; {file} is the script path"
    )
    suffix: str = Field(default="", description="Script file suffix, e.g. '.rb'")
    aliases: Sequence[str] = Field(default_factory=list)
    line_pattern: str | None = Field(
        default=None,
        description="Regex with a 'line' group locating errors in the script",
    )

    @field_validator("line_pattern")
    @classmethod
    def _compiles(cls, value: str | None) -> str | None:
        if value is not None:
            _check_pattern(value)
        return value


class DocTestConfig(Model):
    """Immutable snapshot of options for one invocation."""

    timeout: int = Field(default=5000, gt=0, description="Per-block timeout in ms")
    max_workers: int = Field(default=4, ge=1)
    filter: str | None = Field(default=None, description="Regex selecting blocks")
    debug: bool = False
    verbose: bool = False
    default_language: str = ""
    extract_metadata: bool = True
    unique_headings: bool = False
    working_directory: Path | None = None
    env: Mapping[str, str] = Field(default_factory=dict)
    runners: Mapping[str, RunnerConfig] = Field(default_factory=dict)
    report_format: str = "text"
    patterns: Sequence[str] = Field(default_factory=lambda: ["*.md"])
    poll_interval: float = Field(default=0.25, gt=0)
    debounce: float = Field(default=0.3, ge=0)

    @field_validator("filter")
    @classmethod
    def _filter_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            _check_pattern(value)
        return value

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000


def load_config(
    path: Path | None = None, overrides: Mapping[str, Any] | None = None
) -> DocTestConfig:
    """Load configuration from a YAML file and apply overrides.

    Args:
        path: Config file. When None, ``doctest.yaml`` in the current
            directory is used if it exists.
        overrides: Values that take precedence over the file; None values
            are ignored.

    Raises:
        ConfigError: If the file is unreadable or malformed, or any value
            is invalid.

    """
    values: dict[str, Any] = {}

    if path is None and Path(DEFAULT_CONFIG_FILE).is_file():
        path = Path(DEFAULT_CONFIG_FILE)

    if path is not None:
        log.debug("Loading configuration from %s", path)
        values.update(_read_yaml(path))

    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        return DocTestConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _read_yaml(path: Path) -> Mapping[str, Any]:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}") from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def _check_pattern(value: str) -> None:
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"invalid regular expression {value!r}: {e}") from e
