#!/usr/bin/env python3
# Where: tftest/run_examples.py
# What: Command-line entry point that runs every example of a Terraform module.
# Why: Provide a single command for discovery, provisioning, checks and teardown.
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

from tftest.runner.catalog import discover
from tftest.runner.cli import parse_args
from tftest.runner.config import RunnerSettings, load_example_configs
from tftest.runner.engine import TerraformEngine
from tftest.runner.errors import ConfigError, DiscoveryError
from tftest.runner.harness import Harness, SubtestResult
from tftest.runner.logging import read_tail
from tftest.runner.runner import run_all
from tftest.runner.ui import PlainReporter, TimingReporter

logger = logging.getLogger("tftest")


def print_tail_logs(failed: list[SubtestResult], *, lines: int = 40) -> None:
    for result in failed:
        if result.log_path is None:
            continue
        if not result.log_path.exists():
            print(f"[TFTEST] No log file found for {result.name}: {result.log_path}")
            continue
        print(f"\n[TFTEST] Last {lines} lines for {result.name} ({result.log_path}):")
        try:
            tail = read_tail(result.log_path, lines=lines)
        except OSError as exc:
            print(f"[TFTEST] Failed to read log for {result.name}: {exc}")
            continue
        for line in tail:
            print(line)


def resolve_label_width(names: list[str]) -> int:
    if not names:
        return 0
    return max(len(f"Example_{name}") for name in names)


def main(argv=None) -> int:
    args = parse_args(argv)
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file, override=False)
    try:
        settings = RunnerSettings()
    except ValidationError as exc:
        print(f"[ERROR] invalid runner settings: {exc}", file=sys.stderr)
        return 2
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        policy = settings.to_policy(
            idempotency=args.idempotency,
            parallel=args.parallel,
            max_workers=args.max_workers,
            example_prefix=args.prefix,
        )
        configs = load_example_configs(args.config) if args.config else None
        examples = discover(args.root, prefix=policy.example_prefix)
    except (ConfigError, DiscoveryError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    engine = TerraformEngine(args.terraform_binary or settings.TFTEST_TERRAFORM_BINARY)
    log_dir = Path(args.log_dir or settings.TFTEST_LOG_DIR)
    timing = TimingReporter(
        PlainReporter(
            verbose=args.verbose,
            label_width=resolve_label_width([example.name for example in examples]),
            color=args.color,
            emoji=args.emoji,
        )
    )

    try:
        with Harness(reporter=timing, log_dir=log_dir, verbose=args.verbose) as harness:
            run_all(harness, args.root, configs, policy=policy, engine=engine)
    except (ConfigError, DiscoveryError) as exc:
        print(f"[ERROR] {exc}", file=sys.stderr)
        return 2

    for line in timing.summary():
        logger.info(line)

    results = harness.results
    failed = [results[name] for name in harness.failed() if "/" not in name]
    if failed:
        print_tail_logs(failed)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
