# Where: tftest/runner/tests/conftest.py
# What: Shared fixtures: a recording fake engine, a recording reporter and example trees.
# Why: Exercise the lifecycle and orchestrator without a real terraform binary.
from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import Any

import pytest

from tftest.runner.engine import EngineOptions, PlanResult, ProvisioningEngine
from tftest.runner.errors import CleanupError, IdempotencyError, ProvisionError
from tftest.runner.events import Event
from tftest.runner.harness import Harness
from tftest.runner.models import thaw_vars
from tftest.runner.ui import Reporter


class FakeEngine(ProvisioningEngine):
    """Records every call as ``(operation, example directory name)``."""

    def __init__(
        self,
        *,
        fail_apply: set[str] | None = None,
        changes: set[str] | None = None,
        fail_plan: set[str] | None = None,
        fail_destroy: set[str] | None = None,
        apply_delay: float = 0.0,
        outputs: dict[str, Any] | None = None,
    ) -> None:
        self.fail_apply = fail_apply or set()
        self.changes = changes or set()
        self.fail_plan = fail_plan or set()
        self.fail_destroy = fail_destroy or set()
        self.apply_delay = apply_delay
        self.outputs = outputs or {}
        self.calls: list[tuple[str, str]] = []
        self.applied_vars: dict[str, dict[str, Any]] = {}
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def _record(self, operation: str, options: EngineOptions) -> None:
        with self._lock:
            self.calls.append((operation, options.path.name))

    def count(self, operation: str, name: str | None = None) -> int:
        with self._lock:
            return sum(
                1 for op, example in self.calls if op == operation and name in (None, example)
            )

    def operations(self, name: str) -> list[str]:
        with self._lock:
            return [op for op, example in self.calls if example == name]

    def init_and_apply(self, options: EngineOptions) -> None:
        name = options.path.name
        self._record("apply", options)
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            if self.apply_delay:
                time.sleep(self.apply_delay)
        finally:
            with self._lock:
                self.active -= 1
        if name in self.fail_apply:
            raise ProvisionError(f"apply failed for {name}")
        with self._lock:
            self.applied_vars[name] = thaw_vars(options.vars)
        options.emit(f"Apply complete for {name}")

    def plan(self, options: EngineOptions) -> PlanResult:
        name = options.path.name
        self._record("plan", options)
        if name in self.fail_plan:
            raise IdempotencyError(f"plan failed for {name}", diff="Error: boom")
        if name in self.changes:
            return PlanResult(output="  ~ resource.changed\nPlan: 0 to add, 1 to change")
        return PlanResult(output="No changes. Your infrastructure matches the configuration.")

    def output_json(self, options: EngineOptions, key: str) -> Any:
        self._record("output", options)
        return self.outputs[key]

    def destroy(self, options: EngineOptions) -> None:
        name = options.path.name
        self._record("destroy", options)
        if name in self.fail_destroy:
            raise CleanupError(f"destroy failed for {name}")


class RecordingReporter(Reporter):
    def __init__(self) -> None:
        self.events: list[Event] = []
        self._lock = threading.Lock()

    def emit(self, event: Event) -> None:
        with self._lock:
            self.events.append(event)

    def of_type(self, event_type: str) -> list[Event]:
        with self._lock:
            return [event for event in self.events if event.event_type == event_type]


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def harness(reporter: RecordingReporter):
    with Harness(reporter=reporter) as h:
        yield h


@pytest.fixture
def make_examples(tmp_path: Path):
    def _make(*names: str, root: Path | None = None) -> Path:
        base = root or tmp_path / "examples"
        base.mkdir(parents=True, exist_ok=True)
        for name in names:
            (base / name).mkdir()
            (base / name / "main.tf").write_text("# example\n", encoding="utf-8")
        return base

    return _make


@pytest.fixture
def make_engine():
    return FakeEngine
