# Where: tftest/runner/harness.py
# What: In-process test harness with named subtests and guaranteed cleanup stacks.
# Why: Attribute failures to one example and always unwind teardown on every exit path.
from __future__ import annotations

import logging
import threading
import time
import traceback
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterator, NoReturn

from tftest.runner.errors import CleanupError
from tftest.runner.events import (
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
    STATUS_RUNNING,
    STATUS_SKIPPED,
    Event,
)
from tftest.runner.logging import LogSink, log_path_for, make_prefix_printer
from tftest.runner.ui import NullReporter, Reporter

logger = logging.getLogger(__name__)


class SubtestFailed(Exception):
    """Stops the current subtest after a fatal failure."""


class SubtestSkipped(Exception):
    """Stops the current subtest after a skip."""


@dataclass
class SubtestResult:
    name: str
    status: str = STATUS_RUNNING
    error: BaseException | None = None
    messages: list[str] = field(default_factory=list)
    cleanup_errors: list[CleanupError] = field(default_factory=list)
    duration: float | None = None
    log_path: Path | None = None

    @property
    def passed(self) -> bool:
        return self.status == STATUS_PASSED

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED


class Scope:
    """Something cleanups can be attached to: the harness itself or a subtest."""

    def __init__(
        self,
        harness: Harness,
        name: str | None,
        *,
        sink: LogSink | None = None,
    ) -> None:
        self._harness = harness
        self.name = name
        self._sink = sink
        self._cleanups = ExitStack()
        self._printer = (
            make_prefix_printer(name) if harness.verbose and name is not None else None
        )
        self.cleanup_errors: list[CleanupError] = []

    @property
    def harness(self) -> Harness:
        return self._harness

    def log(self, message: str) -> None:
        if self._sink is not None and self._sink.is_open:
            self._sink.write_line(message)
        if self._printer:
            self._printer(message)
        logger.debug("[%s] %s", self.name or "suite", message)

    def register_cleanup(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        """Run ``fn`` when this scope concludes, whatever the outcome.

        Cleanups run last-registered first. A failing cleanup is logged and
        recorded as a CleanupError; it does not change the scope's status.
        """
        self._cleanups.callback(self._run_cleanup, fn, args, kwargs)

    def subtest(self, name: str, fn: Callable[[Subtest], Any]) -> bool:
        """Run ``fn`` as an independently reported subtest.

        Returns True unless the subtest failed. Failures never propagate to
        the caller.
        """
        harness = self._harness
        result = harness._reserve(self._child_name(name))
        full_name = result.name
        owns_sink = False
        sink = self._sink
        if sink is None and harness.log_dir is not None:
            sink = LogSink(log_path_for(harness.log_dir, full_name))
            sink.open()
            owns_sink = True
            result.log_path = sink.path
        sub = Subtest(harness, full_name, result, sink=sink, parent=self)
        harness.emit(Event(EVENT_SUBTEST_START, subtest=full_name))
        started = time.monotonic()
        try:
            try:
                fn(sub)
            except (SubtestFailed, SubtestSkipped):
                pass
            except Exception as exc:
                sub.log(traceback.format_exc().rstrip())
                sub._mark_failed(f"unexpected error: {exc}", exc)
            finally:
                sub._unwind_cleanups()
        finally:
            result.duration = time.monotonic() - started
            if result.status == STATUS_RUNNING:
                result.status = STATUS_PASSED
            harness.emit(
                Event(
                    EVENT_SUBTEST_END,
                    subtest=full_name,
                    data={
                        "status": result.status,
                        "duration": result.duration,
                        "error": result.error,
                    },
                )
            )
            if owns_sink and sink is not None:
                sink.close()
        if result.failed and isinstance(self, Subtest):
            self._mark_failed(f"subtest {full_name} failed", None)
        return not result.failed

    @contextmanager
    def phase(self, phase: str) -> Iterator[None]:
        self._harness.emit(Event(EVENT_PHASE_START, subtest=self.name, phase=phase))
        started = time.monotonic()
        try:
            yield
        except BaseException:
            self._harness.emit(
                Event(
                    EVENT_PHASE_END,
                    subtest=self.name,
                    phase=phase,
                    data={"status": STATUS_FAILED, "duration": time.monotonic() - started},
                )
            )
            raise
        self._harness.emit(
            Event(
                EVENT_PHASE_END,
                subtest=self.name,
                phase=phase,
                data={"status": STATUS_PASSED, "duration": time.monotonic() - started},
            )
        )

    def skip_phase(self, phase: str, reason: str) -> None:
        self.log(reason)
        self._harness.emit(
            Event(EVENT_PHASE_SKIP, subtest=self.name, phase=phase, message=reason)
        )

    def _child_name(self, name: str) -> str:
        if self.name is None:
            return name
        return f"{self.name}/{name}"

    def _run_cleanup(self, fn: Callable[..., Any], args: tuple, kwargs: dict) -> None:
        try:
            fn(*args, **kwargs)
        except Exception as exc:
            if isinstance(exc, CleanupError):
                error = exc
            else:
                error = CleanupError(f"cleanup {getattr(fn, '__name__', fn)!s} failed", exc)
            self.cleanup_errors.append(error)
            self.log(f"[WARN] {error}")
            logger.warning("cleanup failed in %s: %s", self.name or "suite", exc)

    def _unwind_cleanups(self) -> None:
        self._cleanups.close()


class Subtest(Scope):
    def __init__(
        self,
        harness: Harness,
        name: str,
        result: SubtestResult,
        *,
        sink: LogSink | None = None,
        parent: Scope | None = None,
    ) -> None:
        super().__init__(harness, name, sink=sink)
        self.result = result
        self.parent = parent
        self.cleanup_errors = result.cleanup_errors

    def log(self, message: str) -> None:
        self.result.messages.append(message)
        super().log(message)

    def fail(self, message: str, error: BaseException | None = None) -> NoReturn:
        """Mark the subtest failed and stop it."""
        self._mark_failed(message, error)
        raise SubtestFailed(message)

    def error(self, message: str, error: BaseException | None = None) -> None:
        """Mark the subtest failed and keep going."""
        self._mark_failed(message, error)

    def skip(self, message: str) -> NoReturn:
        self.log(f"SKIP: {message}")
        if self.result.status != STATUS_FAILED:
            self.result.status = STATUS_SKIPPED
        raise SubtestSkipped(message)

    def _mark_failed(self, message: str, error: BaseException | None) -> None:
        self.log(f"FAIL: {message}")
        self.result.status = STATUS_FAILED
        if self.result.error is None and error is not None:
            self.result.error = error


class Harness(Scope):
    """Root scope: owns subtest results and the reporter.

    Use as a context manager so harness-level cleanups run at the end of the
    suite.
    """

    def __init__(
        self,
        *,
        reporter: Reporter | None = None,
        log_dir: Path | str | None = None,
        verbose: bool = False,
    ) -> None:
        self.verbose = verbose
        self.log_dir = Path(log_dir) if log_dir is not None else None
        self.reporter = reporter or NullReporter()
        self._results: dict[str, SubtestResult] = {}
        self._lock = threading.Lock()
        self._emit_lock = threading.Lock()
        self._started = False
        super().__init__(self, None)

    @property
    def results(self) -> dict[str, SubtestResult]:
        with self._lock:
            return dict(self._results)

    def failed(self) -> list[str]:
        return [name for name, result in self.results.items() if result.failed]

    def log(self, message: str) -> None:
        super().log(message)
        self.emit(Event(EVENT_MESSAGE, message=message))

    def emit(self, event: Event) -> None:
        with self._emit_lock:
            self.reporter.emit(event)

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        self.reporter.start()
        self.emit(Event(EVENT_SUITE_START))

    def close(self) -> None:
        try:
            self._unwind_cleanups()
        finally:
            self.emit(Event(EVENT_SUITE_END, data={"failed": self.failed()}))
            self.reporter.close()
            self._started = False

    def __enter__(self) -> Harness:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _reserve(self, name: str) -> SubtestResult:
        with self._lock:
            unique = name
            counter = 0
            while unique in self._results:
                counter += 1
                unique = f"{name}#{counter:02d}"
            result = SubtestResult(name=unique)
            self._results[unique] = result
            return result
