# Where: tftest/runner/custom.py
# What: Run caller-supplied verification functions against provisioned examples.
# Why: Give each verification its own named subtest so failures are attributed.
from __future__ import annotations

from typing import Any, Callable, Mapping, Sequence

from tftest.runner.events import PHASE_CUSTOM
from tftest.runner.harness import Scope, Subtest
from tftest.runner.models import TestContext

CustomTestFunc = Callable[[Subtest, TestContext], Any]


def custom_test_name(example_name: str, index: int, total: int) -> str:
    if total > 1:
        return f"CustomTest_{index}_{example_name}"
    return f"CustomTest_{example_name}"


def dispatch_one(
    scope: Scope,
    name: str,
    ctx: TestContext,
    test_funcs: Sequence[CustomTestFunc],
) -> bool:
    """Run every function against one context. Returns True if all passed."""
    if not test_funcs:
        return True
    ok = True
    with scope.phase(PHASE_CUSTOM):
        for index, test_func in enumerate(test_funcs, start=1):

            def _run(sub: Subtest, test_func: CustomTestFunc = test_func) -> None:
                test_func(sub, ctx)

            if not scope.subtest(custom_test_name(name, index, len(test_funcs)), _run):
                ok = False
    return ok


def dispatch(
    scope: Scope,
    results: Mapping[str, TestContext],
    *test_funcs: CustomTestFunc,
) -> bool:
    """Second pass over a result map; contexts must still be provisioned."""
    ok = True
    for name in sorted(results):
        if not dispatch_one(scope, name, results[name], test_funcs):
            ok = False
    return ok
