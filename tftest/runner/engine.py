# Where: tftest/runner/engine.py
# What: Provisioning engine interface and the Terraform implementation.
# Why: Keep the lifecycle independent of the IaC tool while shelling out to terraform by default.
from __future__ import annotations

import json
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence

from tftest.runner.errors import CleanupError, IdempotencyError, OutputError, ProvisionError
from tftest.runner.logging import run_and_stream
from tftest.runner.models import VarValue, thaw_vars

logger = logging.getLogger(__name__)

_PLAN_EXIT_CLEAN = 0
_PLAN_EXIT_CHANGES = 2
_NO_CHANGES_MARKER = "no changes"


@dataclass
class EngineOptions:
    """Engine session for exactly one example. Never shared between examples."""

    path: Path
    vars: Mapping[str, VarValue]
    env: dict[str, str] = field(default_factory=dict)
    log: Callable[[str], None] | None = None
    state: dict[str, Any] = field(default_factory=dict)

    def emit(self, line: str) -> None:
        if self.log is not None:
            self.log(line)
        else:
            logger.info("[%s] %s", self.path.name, line)


@dataclass(frozen=True)
class PlanResult:
    output: str
    has_changes: bool | None = None

    def reports_changes(self) -> bool:
        """Prefer the structured signal; fall back to looking for "no changes"."""
        if self.has_changes is not None:
            return self.has_changes
        return _NO_CHANGES_MARKER not in self.output.lower()


class ProvisioningEngine:
    def new_options(self, path: Path, vars: Mapping[str, VarValue]) -> EngineOptions:
        return EngineOptions(path=Path(path), vars=vars)

    def init_and_apply(self, options: EngineOptions) -> None:
        raise NotImplementedError

    def plan(self, options: EngineOptions) -> PlanResult:
        raise NotImplementedError

    def output_json(self, options: EngineOptions, key: str) -> Any:
        raise NotImplementedError

    def output(self, options: EngineOptions, key: str) -> str:
        value = self.output_json(options, key)
        if isinstance(value, str):
            return value
        return json.dumps(value, sort_keys=True)

    def destroy(self, options: EngineOptions) -> None:
        raise NotImplementedError


class TerraformEngine(ProvisioningEngine):
    def __init__(
        self,
        binary: str = "terraform",
        *,
        env: Mapping[str, str] | None = None,
        init_args: Sequence[str] = (),
    ) -> None:
        self.binary = binary
        self._env = dict(env or {})
        self._init_args = list(init_args)

    def new_options(self, path: Path, vars: Mapping[str, VarValue]) -> EngineOptions:
        return EngineOptions(path=Path(path), vars=vars, env=dict(self._env))

    def init_and_apply(self, options: EngineOptions) -> None:
        rc = self._run(options, ["init", "-input=false", "-no-color", *self._init_args])
        if rc != 0:
            raise ProvisionError(f"terraform init failed with exit code {rc} in {options.path}")
        rc = self._run(
            options,
            ["apply", "-auto-approve", "-input=false", "-no-color", *self._var_args(options)],
        )
        if rc != 0:
            raise ProvisionError(f"terraform apply failed with exit code {rc} in {options.path}")

    def plan(self, options: EngineOptions) -> PlanResult:
        lines: list[str] = []
        rc = self._run(
            options,
            [
                "plan",
                "-input=false",
                "-no-color",
                "-lock=false",
                "-detailed-exitcode",
                *self._var_args(options),
            ],
            on_line=lines.append,
        )
        output = "\n".join(lines)
        if rc == _PLAN_EXIT_CLEAN:
            return PlanResult(output=output, has_changes=False)
        if rc == _PLAN_EXIT_CHANGES:
            return PlanResult(output=output, has_changes=True)
        raise IdempotencyError(
            f"terraform plan failed with exit code {rc} in {options.path}", diff=output
        )

    def output_json(self, options: EngineOptions, key: str) -> Any:
        cmd = [self.binary, "output", "-no-color", "-json", key]
        result = subprocess.run(
            cmd,
            cwd=str(options.path),
            env=self._command_env(options),
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise OutputError(f"terraform output {key} failed in {options.path}: {detail}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise OutputError(f"terraform output {key} returned invalid JSON", exc) from exc

    def destroy(self, options: EngineOptions) -> None:
        try:
            rc = self._run(
                options,
                ["destroy", "-auto-approve", "-input=false", "-no-color", *self._var_args(options)],
            )
            if rc != 0:
                raise CleanupError(
                    f"terraform destroy failed with exit code {rc} in {options.path}"
                )
        finally:
            self._remove_var_file(options)

    def _run(
        self,
        options: EngineOptions,
        args: list[str],
        *,
        on_line: Callable[[str], None] | None = None,
    ) -> int:
        try:
            return run_and_stream(
                [self.binary, *args],
                cwd=options.path,
                env=self._command_env(options),
                log=options.emit,
                on_line=on_line,
            )
        except FileNotFoundError as exc:
            raise ProvisionError(f"terraform binary not found: {self.binary}", exc) from exc

    def _command_env(self, options: EngineOptions) -> dict[str, str]:
        env = os.environ.copy()
        env.update(options.env)
        env.setdefault("TF_IN_AUTOMATION", "1")
        env.setdefault("TF_INPUT", "0")
        return env

    def _var_args(self, options: EngineOptions) -> list[str]:
        if not options.vars:
            return []
        var_file = options.state.get("var_file")
        if var_file is None:
            fd, name = tempfile.mkstemp(prefix="tftest-", suffix=".tfvars.json")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(thaw_vars(options.vars), f, indent=2, sort_keys=True)
            var_file = name
            options.state["var_file"] = var_file
        return [f"-var-file={var_file}"]

    def _remove_var_file(self, options: EngineOptions) -> None:
        var_file = options.state.pop("var_file", None)
        if var_file and os.path.exists(var_file):
            os.remove(var_file)
