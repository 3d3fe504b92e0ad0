# Where: tftest/runner/config.py
# What: Environment-driven runner settings, call-time run policy and YAML example configs.
# Why: Read process-wide toggles once and pass them explicitly into the orchestrator.
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tftest.runner.errors import ConfigError
from tftest.runner.models import Configuration

DEFAULT_EXAMPLE_PREFIX = "example-"


@dataclass(frozen=True)
class RunPolicy:
    """Per-call execution policy for the orchestrator."""

    idempotency: bool = True
    parallel: bool = True
    max_workers: int | None = None
    example_prefix: str | None = DEFAULT_EXAMPLE_PREFIX

    def __post_init__(self) -> None:
        if self.max_workers is not None and self.max_workers < 1:
            raise ConfigError(f"max_workers must be at least 1, got {self.max_workers}")


class RunnerSettings(BaseSettings):
    """
    Runner configuration read from environment variables (and ``.env``).
    """

    TERRATEST_IDEMPOTENCY: str = Field(
        default="", description="'false' disables the idempotency check"
    )
    TERRATEST_PARALLEL: str = Field(
        default="", description="'false' runs examples one at a time"
    )
    TERRATEST_DISABLE_PARALLEL_TESTS: str = Field(
        default="", description="'true' (any case) runs examples one at a time"
    )
    TFTEST_MAX_WORKERS: int | None = Field(
        default=None, ge=1, description="Upper bound on concurrently running examples"
    )
    TFTEST_EXAMPLE_PREFIX: str = Field(
        default=DEFAULT_EXAMPLE_PREFIX,
        description="Directory name prefix for examples, empty for all directories",
    )
    TFTEST_TERRAFORM_BINARY: str = Field(default="terraform", description="Terraform binary")
    TFTEST_LOG_DIR: str = Field(default=".tftest/logs", description="Per-example log directory")
    LOG_LEVEL: str = Field(default="INFO", description="Log level")

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def idempotency_enabled(self) -> bool:
        return self.TERRATEST_IDEMPOTENCY != "false"

    @property
    def parallel_enabled(self) -> bool:
        if self.TERRATEST_DISABLE_PARALLEL_TESTS.strip().lower() == "true":
            return False
        return self.TERRATEST_PARALLEL.strip().lower() != "false"

    def to_policy(self, **overrides: Any) -> RunPolicy:
        values: dict[str, Any] = {
            "idempotency": self.idempotency_enabled,
            "parallel": self.parallel_enabled,
            "max_workers": self.TFTEST_MAX_WORKERS,
            "example_prefix": self.TFTEST_EXAMPLE_PREFIX or None,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return RunPolicy(**values)


def load_example_configs(path: Path | str) -> dict[str, Configuration]:
    """Load ``{directory: Configuration}`` from a YAML file.

    Expected shape::

        examples:
          example-basic:
            name: basic
            vars:
              region: us-east-1
    """
    config_file = Path(path)
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as exc:
        raise ConfigError(f"cannot read example config file {config_file}", exc) from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid YAML in {config_file}", exc) from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_file}: top level must be a map")
    return build_example_configs(data.get("examples") or {}, source=str(config_file))


def build_example_configs(
    entries: Mapping[str, Any], *, source: str = "<configs>"
) -> dict[str, Configuration]:
    if not isinstance(entries, Mapping):
        raise ConfigError(f"{source}: 'examples' must be a map of directory name to settings")
    configs: dict[str, Configuration] = {}
    for dir_name, raw in entries.items():
        dir_key = str(dir_name).strip()
        if not dir_key:
            raise ConfigError(f"{source}: example directory names must be non-empty")
        if raw is None:
            raw = {}
        if not isinstance(raw, Mapping):
            raise ConfigError(f"{source}: entry for '{dir_key}' must be a map")
        unknown = sorted(set(raw) - {"name", "vars"})
        if unknown:
            raise ConfigError(f"{source}: unknown field(s) for '{dir_key}': {', '.join(unknown)}")
        name = str(raw.get("name") or dir_key).strip()
        configs[dir_key] = Configuration(name=name, vars=raw.get("vars") or {})
    return configs
