# Where: tftest/runner/lifecycle.py
# What: Drive one example through provision, idempotency check, custom tests and destroy.
# Why: Keep per-example sequencing and teardown guarantees out of the orchestrator.
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

from tftest.runner import context, custom, idempotency
from tftest.runner.catalog import find_example
from tftest.runner.config import RunPolicy
from tftest.runner.engine import ProvisioningEngine, TerraformEngine
from tftest.runner.errors import ConfigError, DiscoveryError, ProvisionError
from tftest.runner.events import PHASE_DESTROY, PHASE_PROVISION
from tftest.runner.harness import Subtest
from tftest.runner.models import Configuration, TestContext

Publisher = Callable[[TestContext], Any]


def run_example(
    subtest: Subtest,
    path: Path | str,
    config: Configuration,
    *,
    policy: RunPolicy | None = None,
    engine: ProvisioningEngine | None = None,
    publish: Publisher | None = None,
    tests: Sequence[custom.CustomTestFunc] = (),
    example_name: str | None = None,
) -> TestContext:
    """Run the full lifecycle of one example inside ``subtest``.

    Destroy is registered on ``subtest`` before anything is provisioned, so it
    runs exactly once whether provisioning, the idempotency check or a custom
    test fails. ``publish`` is called as soon as provisioning succeeds.
    """
    policy = policy or RunPolicy()
    engine = engine or TerraformEngine()
    try:
        ctx = context.run(path, config, engine=engine)
    except ConfigError as exc:
        subtest.fail(f"invalid configuration for {path}: {exc}", exc)
    assert ctx.options is not None
    ctx.options.log = subtest.log
    subtest.register_cleanup(_destroy, subtest, ctx)

    with subtest.phase(PHASE_PROVISION):
        subtest.log(f"Provisioning {ctx.name} from {ctx.path}")
        try:
            engine.init_and_apply(ctx.options)
        except Exception as exc:
            error = exc if isinstance(exc, ProvisionError) else ProvisionError(str(exc), exc)
            subtest.fail(f"Provisioning failed for {ctx.name}: {error}", error)

    if publish is not None:
        publish(ctx)

    idempotency.check(subtest, ctx, enabled=policy.idempotency)
    custom.dispatch_one(subtest, example_name or ctx.name, ctx, tests)
    return ctx


def run_single_example(
    subtest: Subtest,
    root: Path | str,
    name: str,
    config: Configuration | None = None,
    *,
    policy: RunPolicy | None = None,
    engine: ProvisioningEngine | None = None,
) -> TestContext:
    """Run one example directly in the caller's subtest.

    ``name`` may be ``"."`` to use ``root`` itself. Resources are destroyed when
    ``subtest`` concludes, so the caller can verify them first.
    """
    try:
        example = find_example(root, name)
    except DiscoveryError as exc:
        subtest.fail(str(exc), exc)
    if config is None or not config.name:
        config = example.config
    return run_example(
        subtest,
        example.path,
        config,
        policy=policy,
        engine=engine,
        example_name=example.name,
    )


def _destroy(subtest: Subtest, ctx: TestContext) -> None:
    assert ctx.engine is not None and ctx.options is not None
    with subtest.phase(PHASE_DESTROY):
        subtest.log(f"Destroying {ctx.name}")
        ctx.engine.destroy(ctx.options)
