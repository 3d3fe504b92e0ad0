# Where: tftest/runner/context.py
# What: Build test contexts binding an example path and configuration to an engine session.
# Why: Keep context assembly separate from provisioning so it stays side-effect free.
from __future__ import annotations

from pathlib import Path

from tftest.runner.engine import ProvisioningEngine, TerraformEngine
from tftest.runner.errors import ConfigError
from tftest.runner.models import Configuration, TestContext


def build(
    path: Path | str,
    config: Configuration,
    *,
    engine: ProvisioningEngine | None = None,
) -> TestContext:
    """Bind ``config`` to ``path`` without touching the filesystem or the engine."""
    resolved = _require_path(path)
    if not isinstance(config, Configuration):
        raise ConfigError(f"expected a Configuration for {resolved}, got {type(config).__name__}")
    return TestContext(
        config=config,
        path=resolved,
        name=config.name,
        vars=config.vars,
        engine=engine,
    )


def run(
    path: Path | str,
    config: Configuration,
    *,
    engine: ProvisioningEngine | None = None,
) -> TestContext:
    """Like :func:`build`, plus a freshly allocated engine options handle.

    Nothing is provisioned yet.
    """
    engine = engine or TerraformEngine()
    ctx = build(path, config, engine=engine)
    ctx.options = engine.new_options(ctx.path, ctx.vars)
    return ctx


def _require_path(path: Path | str) -> Path:
    if path is None or str(path).strip() == "":
        raise ConfigError("example path must be non-empty")
    return Path(path)
