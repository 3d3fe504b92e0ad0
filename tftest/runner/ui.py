# Where: tftest/runner/ui.py
# What: Line-oriented reporters for suite, subtest and phase events.
# Why: Concurrent examples must still produce one readable line per event.
from __future__ import annotations

import os
import sys
import time
from typing import Callable, NamedTuple

from tftest.runner.events import (
    ALL_PHASES,
    EVENT_MESSAGE,
    EVENT_PHASE_END,
    EVENT_PHASE_SKIP,
    EVENT_PHASE_START,
    EVENT_SUBTEST_END,
    EVENT_SUBTEST_START,
    EVENT_SUITE_END,
    EVENT_SUITE_START,
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_SKIPPED,
    Event,
)
from tftest.runner.logging import safe_print

_RESET = "\033[0m"


class _StatusStyle(NamedTuple):
    phase_word: str
    subtest_word: str
    icon: str
    ansi: str


_STYLES = {
    STATUS_PASSED: _StatusStyle("ok", "PASS", "✅", "\033[32m"),
    STATUS_FAILED: _StatusStyle("failed", "FAIL", "❌", "\033[31m"),
    STATUS_SKIPPED: _StatusStyle("skipped", "SKIP", "⏭️", "\033[33m"),
}


def format_duration(seconds: float) -> str:
    if seconds < 60:
        return f"{seconds:.1f}s"
    mins, secs = divmod(int(seconds), 60)
    return f"{mins}m{secs:02d}s"


def _duration_suffix(event: Event) -> str:
    duration = event.data.get("duration")
    return "" if duration is None else f" ({format_duration(duration)})"


def _terminal_default(opt_out_var: str) -> bool:
    if not sys.stdout.isatty():
        return False
    if os.environ.get("TERM", "").lower() == "dumb":
        return False
    return not os.environ.get(opt_out_var)


class Reporter:
    """Receives every harness event; subclasses decide what to show."""

    def start(self) -> None:
        return None

    def emit(self, event: Event) -> None:
        raise NotImplementedError

    def close(self) -> None:
        return None


class NullReporter(Reporter):
    def emit(self, event: Event) -> None:
        return None


class PlainReporter(Reporter):
    """Prints ``[label] ...`` lines.

    ``color`` and ``emoji`` left as ``None`` follow the terminal: enabled on a TTY
    unless ``TERM=dumb`` or ``NO_COLOR``/``NO_EMOJI`` is set.
    """

    def __init__(
        self,
        *,
        verbose: bool = False,
        label_width: int = 0,
        color: bool | None = None,
        emoji: bool | None = None,
    ) -> None:
        self._verbose = verbose
        self._label_width = max(label_width, 0)
        self._color = _terminal_default("NO_COLOR") if color is None else bool(color)
        self._emoji = _terminal_default("NO_EMOJI") if emoji is None else bool(emoji)
        self._phase_width = max(len(phase) for phase in ALL_PHASES)
        self._handlers: dict[str, Callable[[Event], None]] = {
            EVENT_MESSAGE: self._on_message,
            EVENT_SUITE_START: self._on_suite_start,
            EVENT_SUITE_END: self._on_suite_end,
            EVENT_SUBTEST_START: self._on_subtest_start,
            EVENT_SUBTEST_END: self._on_subtest_end,
            EVENT_PHASE_START: self._on_phase_start,
            EVENT_PHASE_END: self._on_phase_end,
            EVENT_PHASE_SKIP: self._on_phase_skip,
        }

    def emit(self, event: Event) -> None:
        handler = self._handlers.get(event.event_type)
        if handler is not None:
            handler(event)

    def _label(self, name: str) -> str:
        return f"[{name.ljust(self._label_width)}]"

    def _line(self, name: str, icon: str, text: str) -> None:
        mark = f"{icon} " if self._emoji and icon else ""
        safe_print(f"{self._label(name)} {mark}{text}")

    def _paint(self, status: str, word: str) -> str:
        style = _STYLES.get(status)
        if not self._color or style is None:
            return word
        return f"{style.ansi}{word}{_RESET}"

    def _phase_label(self, event: Event) -> str:
        return (event.phase or "").ljust(self._phase_width)

    def _on_message(self, event: Event) -> None:
        if not event.message:
            return
        if event.subtest:
            safe_print(event.message, prefix=self._label(event.subtest))
        else:
            safe_print(event.message)

    def _on_suite_start(self, event: Event) -> None:
        self._line("suite", "🧪", "started")

    def _on_suite_end(self, event: Event) -> None:
        failed = [str(name) for name in event.data.get("failed") or []]
        if failed:
            text = "[FAILED] the following subtests failed: " + ", ".join(failed)
            self._line("suite", "❌", text)
        else:
            self._line("suite", "✅", "[PASSED] all examples passed")

    def _on_subtest_start(self, event: Event) -> None:
        if event.subtest:
            self._line(event.subtest, "🚀", "started")

    def _on_subtest_end(self, event: Event) -> None:
        if not event.subtest:
            return
        status = event.data.get("status", "")
        style = _STYLES.get(status)
        word = self._paint(status, style.subtest_word if style else status)
        self._line(event.subtest, "🏁", f"done ... {word}{_duration_suffix(event)}")
        error = event.data.get("error")
        if status == STATUS_FAILED and error:
            safe_print(str(error), prefix=self._label(event.subtest))

    def _on_phase_start(self, event: Event) -> None:
        if self._verbose and event.subtest and event.phase:
            self._line(event.subtest, "⏳", f"{self._phase_label(event)} ... start")

    def _on_phase_end(self, event: Event) -> None:
        if not (event.subtest and event.phase):
            return
        status = event.data.get("status", "")
        style = _STYLES.get(status)
        word = self._paint(status, style.phase_word if style else status)
        icon = style.icon if style else ""
        text = f"{self._phase_label(event)} ... {word}{_duration_suffix(event)}"
        self._line(event.subtest, icon, text)

    def _on_phase_skip(self, event: Event) -> None:
        if event.subtest and event.phase:
            icon = _STYLES[STATUS_SKIPPED].icon
            self._line(event.subtest, icon, f"{self._phase_label(event)} ... skipped")


class TimingReporter(Reporter):
    """Collects per-subtest phase durations for a summary after the run."""

    def __init__(self, inner: Reporter | None = None) -> None:
        self._inner = inner or NullReporter()
        self.durations: dict[str, dict[str, float]] = {}
        self._started = time.monotonic()
        self.total: float | None = None

    def start(self) -> None:
        self._started = time.monotonic()
        self._inner.start()

    def emit(self, event: Event) -> None:
        if event.event_type == EVENT_PHASE_END and event.subtest and event.phase:
            duration = event.data.get("duration")
            if duration is not None:
                self.durations.setdefault(event.subtest, {})[event.phase] = float(duration)
        elif event.event_type == EVENT_SUITE_END:
            self.total = time.monotonic() - self._started
        self._inner.emit(event)

    def close(self) -> None:
        self._inner.close()

    def summary(self) -> list[str]:
        lines = [
            f"{name}: "
            + ", ".join(f"{phase}={format_duration(secs)}" for phase, secs in phases.items())
            for name, phases in sorted(self.durations.items())
        ]
        if self.total is not None:
            lines.append(f"total: {format_duration(self.total)}")
        return lines
