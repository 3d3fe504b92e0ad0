# Where: tftest/runner/errors.py
# What: Error taxonomy for discovery, setup, provisioning and teardown.
# Why: Let the orchestrator tell run-fatal errors from per-example failures.
from __future__ import annotations


class TftestError(Exception):
    """Base class for errors raised by the example runner."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        if cause is not None:
            super().__init__(f"{message} (cause: {cause})")
        else:
            super().__init__(message)


class DiscoveryError(TftestError):
    """The examples root could not be listed. Aborts the whole run."""


class ConfigError(TftestError):
    """A path or configuration is malformed."""


class ProvisionError(TftestError):
    """Init-and-apply failed for one example."""


class IdempotencyError(TftestError):
    """A plan after apply still reports outstanding changes."""

    def __init__(self, message: str, diff: str = "", cause: BaseException | None = None) -> None:
        self.diff = diff
        super().__init__(message, cause)


class CleanupError(TftestError):
    """Destroy failed after the subtest concluded."""


class OutputError(TftestError):
    """A named output could not be read or has the wrong shape."""
