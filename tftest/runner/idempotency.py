# Where: tftest/runner/idempotency.py
# What: Verify that a freshly applied example plans with no outstanding changes.
# Why: Catch configurations that drift on re-apply without leaving the lifecycle runner.
from __future__ import annotations

from typing import Mapping

from tftest.runner.errors import ConfigError, IdempotencyError, TftestError
from tftest.runner.events import PHASE_IDEMPOTENCY
from tftest.runner.harness import Scope, Subtest
from tftest.runner.models import TestContext


def check(subtest: Subtest, ctx: TestContext, *, enabled: bool = True) -> None:
    """Plan ``ctx`` and fail ``subtest`` with an IdempotencyError if it would change."""
    if not enabled:
        subtest.skip_phase(
            PHASE_IDEMPOTENCY, f"Idempotency testing disabled for {ctx.name}"
        )
        return
    if ctx.engine is None or ctx.options is None:
        error = ConfigError(f"test context {ctx.name} has no engine session")
        subtest.fail(str(error), error)

    with subtest.phase(PHASE_IDEMPOTENCY):
        subtest.log(f"Running idempotency test for {ctx.name}...")
        try:
            result = ctx.engine.plan(ctx.options)
        except TftestError as exc:
            subtest.fail(f"Idempotency test failed for {ctx.name}: {exc}", exc)
        if result.reports_changes():
            error = IdempotencyError(
                f"Idempotency test failed for {ctx.name}: plan would make changes",
                diff=result.output,
            )
            subtest.fail(f"{error.message}:\n{result.output}", error)
        subtest.log(f"Idempotency test passed for {ctx.name}")


def check_all(
    scope: Scope,
    contexts: Mapping[str, TestContext],
    *,
    enabled: bool = True,
) -> dict[str, bool]:
    """Run :func:`check` for every context, each in its own ``Idempotency_<name>`` subtest."""
    outcomes: dict[str, bool] = {}
    for name in sorted(contexts):
        ctx = contexts[name]
        outcomes[name] = scope.subtest(
            f"Idempotency_{name}", lambda sub, ctx=ctx: check(sub, ctx, enabled=enabled)
        )
    return outcomes
