# Where: tftest/runner/catalog.py
# What: Discover example directories under an examples root.
# Why: Keep discovery separate from configuration and execution.
from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable

from tftest.runner.errors import DiscoveryError
from tftest.runner.models import Configuration, Example

logger = logging.getLogger(__name__)

EXAMPLES_DIRNAME = "examples"


def default_config(name: str) -> Configuration:
    return Configuration(name=name, vars={})


def examples_dir(module_root: Path | str) -> Path:
    return Path(module_root) / EXAMPLES_DIRNAME


def discover(root: Path | str, *, prefix: str | None = None) -> list[Example]:
    """Return the example directories directly under ``root``, sorted by name.

    With ``prefix``, only directories whose name starts with it (case-sensitive)
    are included. Files are ignored.
    """
    root_path = Path(root).absolute()
    try:
        entries = list(root_path.iterdir())
    except OSError as exc:
        raise DiscoveryError(f"failed to read examples directory {root_path}", exc) from exc

    examples: list[Example] = []
    for entry in sorted(entries, key=lambda p: p.name):
        if not entry.is_dir():
            continue
        if prefix and not entry.name.startswith(prefix):
            logger.debug("ignoring %s: does not match prefix %r", entry.name, prefix)
            continue
        examples.append(Example(name=entry.name, path=entry, config=default_config(entry.name)))
    return examples


def find_example(root: Path | str, name: str) -> Example:
    """Resolve a single example; ``"."`` means ``root`` itself."""
    root_path = Path(root).absolute()
    path = root_path if name == "." else root_path / name
    if not path.is_dir():
        raise DiscoveryError(f"example {name} not found at path {path}")
    example_name = root_path.name if name == "." else name
    return Example(name=example_name, path=path, config=default_config(example_name))


def configure_examples(
    examples: Iterable[Example],
    configurator: Callable[[Example], Configuration],
) -> dict[str, Configuration]:
    return {example.name: configurator(example) for example in examples}
