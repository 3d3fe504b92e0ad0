# Where: tftest/runner/models.py
# What: Dataclasses for examples, configurations and live test contexts.
# Why: Keep execution inputs explicit and avoid implicit global state.
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Union

from tftest.runner.errors import ConfigError, OutputError

if TYPE_CHECKING:
    from tftest.runner.engine import EngineOptions, ProvisioningEngine

VarValue = Union[str, int, float, bool, tuple["VarValue", ...], Mapping[str, "VarValue"]]


def freeze_vars(raw: Mapping[str, Any] | None, *, where: str = "vars") -> Mapping[str, VarValue]:
    """Validate a variable mapping and return a read-only deep copy.

    Values must be strings, numbers, booleans, or lists/maps of those. Nested
    lists come back as tuples and nested maps as read-only mappings;
    :func:`thaw_vars` returns plain mutable copies.
    """
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, Mapping):
        raise ConfigError(f"{where} must be a mapping, got {type(raw).__name__}")
    frozen: dict[str, VarValue] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not key:
            raise ConfigError(f"{where} keys must be non-empty strings, got {key!r}")
        frozen[key] = _copy_value(value, f"{where}.{key}")
    return MappingProxyType(frozen)


def _copy_value(value: Any, where: str) -> VarValue:
    # bool is an int subclass, both are accepted as-is
    if isinstance(value, (str, bool, int, float)):
        return value
    # nested maps become read-only proxies, nested lists become tuples
    if isinstance(value, Mapping):
        copied: dict[str, VarValue] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise ConfigError(f"{where} keys must be strings, got {key!r}")
            copied[key] = _copy_value(item, f"{where}.{key}")
        return MappingProxyType(copied)
    if isinstance(value, (list, tuple)):
        return tuple(_copy_value(item, f"{where}[{idx}]") for idx, item in enumerate(value))
    raise ConfigError(f"{where}: unsupported variable type {type(value).__name__}")


def thaw_vars(values: Mapping[str, VarValue]) -> dict[str, Any]:
    return {key: _thaw(value) for key, value in values.items()}


def _thaw(value: VarValue) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_thaw(item) for item in value]
    return value


def _hash_key(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted((key, _hash_key(item)) for key, item in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_hash_key(item) for item in value)
    return value


@dataclass(frozen=True)
class Configuration:
    name: str
    vars: Mapping[str, VarValue] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise ConfigError(f"configuration name must be a string, got {self.name!r}")
        where = f"{self.name or '<unnamed>'}.vars"
        object.__setattr__(self, "vars", freeze_vars(self.vars, where=where))

    def __hash__(self) -> int:
        return hash((self.name, _hash_key(self.vars)))


@dataclass(frozen=True)
class Example:
    name: str
    path: Path
    config: Configuration


@dataclass
class TestContext:
    """Binding of one example's configuration to an engine session."""

    __test__ = False

    config: Configuration
    path: Path
    name: str
    vars: Mapping[str, VarValue]
    options: EngineOptions | None = None
    engine: ProvisioningEngine | None = None

    def variables(self) -> dict[str, Any]:
        return thaw_vars(self.vars)

    def output_json(self, key: str) -> Any:
        return self._require_engine().output_json(self._require_options(), key)

    def output(self, key: str) -> str:
        return self._require_engine().output(self._require_options(), key)

    def output_map(self, key: str) -> dict[str, Any]:
        value = self.output_json(key)
        if not isinstance(value, dict):
            raise OutputError(f"output '{key}' of {self.name} is not a map: {value!r}")
        return value

    def output_list(self, key: str) -> list[Any]:
        value = self.output_json(key)
        if not isinstance(value, list):
            raise OutputError(f"output '{key}' of {self.name} is not a list: {value!r}")
        return value

    def _require_engine(self) -> ProvisioningEngine:
        if self.engine is None:
            raise OutputError(f"test context {self.name} has no provisioning engine")
        return self.engine

    def _require_options(self) -> EngineOptions:
        if self.options is None:
            raise OutputError(f"test context {self.name} has not been initialized")
        return self.options
