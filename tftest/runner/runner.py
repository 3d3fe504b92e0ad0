# Where: tftest/runner/runner.py
# What: Run every discovered example as its own subtest, in parallel or one at a time.
# Why: Collect per-example test contexts into a shared result map without cross-talk.
from __future__ import annotations

import logging
import threading
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Iterator, Sequence

from tftest.runner.catalog import default_config, discover
from tftest.runner.config import RunPolicy
from tftest.runner.custom import CustomTestFunc
from tftest.runner.engine import ProvisioningEngine, TerraformEngine
from tftest.runner.errors import ConfigError
from tftest.runner.harness import Harness, Subtest
from tftest.runner.lifecycle import run_example
from tftest.runner.models import Configuration, Example, TestContext

logger = logging.getLogger(__name__)


class ResultMap(Mapping):
    """Example name to provisioned TestContext. Written only through :meth:`publish`."""

    def __init__(self) -> None:
        self._items: dict[str, TestContext] = {}
        self._lock = threading.Lock()

    def publish(self, name: str, ctx: TestContext) -> bool:
        with self._lock:
            if name in self._items:
                refused = True
            else:
                self._items[name] = ctx
                refused = False
        if refused:
            logger.warning("result for %s already published; keeping the first one", name)
        return not refused

    def __getitem__(self, name: str) -> TestContext:
        with self._lock:
            return self._items[name]

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._items))

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __repr__(self) -> str:
        return f"ResultMap({sorted(self)!r})"


def run_all(
    harness: Harness,
    root: Path | str,
    configs: Mapping[str, Configuration] | None = None,
    *,
    policy: RunPolicy | None = None,
    engine: ProvisioningEngine | None = None,
    tests: Sequence[CustomTestFunc] = (),
) -> ResultMap:
    """Provision, check and destroy every example under ``root``.

    Discovery and configuration errors are raised before any subtest starts.
    Each example runs in its own ``Example_<name>`` subtest; a failing example
    never stops the others. Returns once every example has finished.
    """
    policy = policy or RunPolicy()
    engine = engine or TerraformEngine()
    examples = discover(root, prefix=policy.example_prefix)
    _validate_configs(configs)
    planned = _plan(harness, examples, configs)
    results = ResultMap()
    if not planned:
        harness.log(f"No examples found under {root}")
        return results

    def _run(example: Example, config: Configuration) -> bool:
        def _body(sub: Subtest) -> None:
            run_example(
                sub,
                example.path,
                config,
                policy=policy,
                engine=engine,
                publish=lambda ctx: results.publish(example.name, ctx),
                tests=tests,
                example_name=example.name,
            )

        return harness.subtest(f"Example_{example.name}", _body)

    if policy.parallel and len(planned) > 1:
        max_workers = min(policy.max_workers or len(planned), len(planned))
        logger.debug("running %d examples with %d workers", len(planned), max_workers)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="tftest") as executor:
            future_to_name = {
                executor.submit(_run, example, config): example.name
                for example, config in planned
            }
            for future in as_completed(future_to_name):
                name = future_to_name[future]
                try:
                    future.result()
                except Exception:
                    logger.exception("example %s did not complete", name)
    else:
        for example, config in planned:
            _run(example, config)
    return results


def run_all_with_tests(
    harness: Harness,
    root: Path | str,
    configs: Mapping[str, Configuration] | None,
    *test_funcs: CustomTestFunc,
    policy: RunPolicy | None = None,
    engine: ProvisioningEngine | None = None,
) -> ResultMap:
    """Like :func:`run_all`, running ``test_funcs`` against each example before it is destroyed."""
    return run_all(harness, root, configs, policy=policy, engine=engine, tests=test_funcs)


def _validate_configs(configs: Mapping[str, Configuration] | None) -> None:
    if configs is None:
        return
    if not isinstance(configs, Mapping):
        raise ConfigError(f"configs must be a mapping, got {type(configs).__name__}")
    for name, config in configs.items():
        if not isinstance(name, str) or not name:
            raise ConfigError(f"config keys must be non-empty example names, got {name!r}")
        if not isinstance(config, Configuration):
            raise ConfigError(
                f"config for {name} must be a Configuration, got {type(config).__name__}"
            )


def _plan(
    harness: Harness,
    examples: list[Example],
    configs: Mapping[str, Configuration] | None,
) -> list[tuple[Example, Configuration]]:
    if not configs:
        return [(example, default_config(example.name)) for example in examples]
    planned: list[tuple[Example, Configuration]] = []
    for example in examples:
        config = configs.get(example.name)
        if config is None:
            harness.log(f"No configuration found for example {example.name}, skipping")
            continue
        planned.append((example, config))
    known = {example.name for example in examples}
    for name in sorted(set(configs) - known):
        logger.warning("configuration for %s matches no discovered example", name)
    return planned
