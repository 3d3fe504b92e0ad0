# Where: tftest/runner/events.py
# What: Event names, statuses and phase names emitted by the harness.
# Why: Reporters depend only on these values, never on harness internals.
from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

EVENT_SUITE_START = "suite_start"
EVENT_SUITE_END = "suite_end"
EVENT_SUBTEST_START = "subtest_start"
EVENT_SUBTEST_END = "subtest_end"
EVENT_PHASE_START = "phase_start"
EVENT_PHASE_END = "phase_end"
EVENT_PHASE_SKIP = "phase_skip"
EVENT_MESSAGE = "message"

STATUS_RUNNING = "running"
STATUS_PASSED = "passed"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

PHASE_PROVISION = "provision"
PHASE_IDEMPOTENCY = "idempotency"
PHASE_CUSTOM = "custom"
PHASE_DESTROY = "destroy"

ALL_PHASES = (PHASE_PROVISION, PHASE_IDEMPOTENCY, PHASE_CUSTOM, PHASE_DESTROY)


@dataclass(frozen=True)
class Event:
    """One reporter notification; ``subtest`` is the full slash-joined name."""

    event_type: str
    subtest: str | None = None
    phase: str | None = None
    message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.monotonic)
