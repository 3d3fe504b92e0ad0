# Where: tftest/runner/tests/test_harness.py
# What: Unit tests for subtests, cleanup stacks and harness bookkeeping.
# Why: Teardown must run on every exit path without hiding or inventing failures.
from __future__ import annotations

from tftest.runner.errors import CleanupError
from tftest.runner.events import (
    EVENT_SUBTEST_END,
    EVENT_SUBTEST_START,
    EVENT_SUITE_END,
    STATUS_FAILED,
    STATUS_PASSED,
    STATUS_SKIPPED,
)
from tftest.runner.harness import Harness


def test_cleanups_run_last_registered_first(harness) -> None:
    order: list[str] = []

    def body(sub) -> None:
        sub.register_cleanup(order.append, "first")
        sub.register_cleanup(order.append, "second")
        order.append("body")

    assert harness.subtest("ordering", body) is True
    assert order == ["body", "second", "first"]


def test_cleanups_run_after_fail_skip_and_unexpected_error(harness) -> None:
    cleaned: list[str] = []

    def failing(sub) -> None:
        sub.register_cleanup(cleaned.append, "failing")
        sub.fail("provisioning broke")

    def skipping(sub) -> None:
        sub.register_cleanup(cleaned.append, "skipping")
        sub.skip("not today")

    def crashing(sub) -> None:
        sub.register_cleanup(cleaned.append, "crashing")
        raise RuntimeError("boom")

    assert harness.subtest("failing", failing) is False
    assert harness.subtest("skipping", skipping) is True
    assert harness.subtest("crashing", crashing) is False

    assert cleaned == ["failing", "skipping", "crashing"]
    results = harness.results
    assert results["failing"].status == STATUS_FAILED
    assert results["skipping"].status == STATUS_SKIPPED
    assert results["crashing"].status == STATUS_FAILED
    assert isinstance(results["crashing"].error, RuntimeError)


def test_failing_cleanup_is_recorded_but_does_not_fail_subtest(harness) -> None:
    def broken_destroy() -> None:
        raise CleanupError("destroy failed")

    def body(sub) -> None:
        sub.register_cleanup(broken_destroy)

    assert harness.subtest("teardown", body) is True
    result = harness.results["teardown"]
    assert result.status == STATUS_PASSED
    assert [str(err) for err in result.cleanup_errors] == ["destroy failed"]
    assert any("[WARN] destroy failed" in message for message in result.messages)


def test_non_cleanup_exceptions_are_wrapped(harness) -> None:
    def body(sub) -> None:
        sub.register_cleanup(lambda: 1 / 0)

    harness.subtest("wrapped", body)
    [error] = harness.results["wrapped"].cleanup_errors
    assert isinstance(error, CleanupError)
    assert isinstance(error.cause, ZeroDivisionError)


def test_error_is_not_fatal(harness) -> None:
    reached: list[bool] = []

    def body(sub) -> None:
        sub.error("first problem", ValueError("bad"))
        reached.append(True)
        sub.error("second problem")

    assert harness.subtest("soft", body) is False
    assert reached == [True]
    assert isinstance(harness.results["soft"].error, ValueError)


def test_failed_child_fails_parent_but_not_siblings(harness) -> None:
    def parent(sub) -> None:
        sub.subtest("child_ok", lambda child: None)
        sub.subtest("child_bad", lambda child: child.fail("nope"))

    assert harness.subtest("parent", parent) is False
    assert harness.subtest("sibling", lambda sub: None) is True

    results = harness.results
    assert results["parent/child_ok"].passed
    assert results["parent/child_bad"].failed
    assert results["parent"].failed
    assert harness.failed() == ["parent", "parent/child_bad"]


def test_skip_after_error_keeps_failure(harness) -> None:
    def body(sub) -> None:
        sub.error("broken")
        sub.skip("give up")

    harness.subtest("mixed", body)
    assert harness.results["mixed"].status == STATUS_FAILED


def test_duplicate_names_are_suffixed(harness) -> None:
    harness.subtest("Example_a", lambda sub: None)
    harness.subtest("Example_a", lambda sub: None)
    assert sorted(harness.results) == ["Example_a", "Example_a#01"]


def test_events_and_harness_cleanups(reporter) -> None:
    cleaned: list[str] = []
    with Harness(reporter=reporter) as harness:
        harness.register_cleanup(cleaned.append, "suite")
        harness.subtest("ok", lambda sub: None)
        harness.subtest("bad", lambda sub: sub.fail("broken"))
        assert cleaned == []

    assert cleaned == ["suite"]
    starts = [event.subtest for event in reporter.of_type(EVENT_SUBTEST_START)]
    ends = {event.subtest: event.data["status"] for event in reporter.of_type(EVENT_SUBTEST_END)}
    assert starts == ["ok", "bad"]
    assert ends == {"ok": STATUS_PASSED, "bad": STATUS_FAILED}
    [suite_end] = reporter.of_type(EVENT_SUITE_END)
    assert suite_end.data["failed"] == ["bad"]


def test_top_level_subtests_write_log_files(tmp_path) -> None:
    with Harness(log_dir=tmp_path / "logs") as harness:

        def body(sub) -> None:
            sub.log("hello from the example")
            sub.subtest("nested", lambda child: child.log("nested line"))

        harness.subtest("Example_basic", body)

    result = harness.results["Example_basic"]
    assert result.log_path == tmp_path / "logs" / "Example_basic.log"
    content = result.log_path.read_text(encoding="utf-8")
    assert "hello from the example" in content
    assert "nested line" in content
    assert harness.results["Example_basic/nested"].log_path is None
