"""Exception types raised by the harness."""

from __future__ import annotations

from typing import Optional


class HarnessError(Exception):
    """Base class for all harness errors."""


class ConfigurationError(HarnessError):
    """Missing or invalid credential, or malformed environment input."""


class HarnessStateError(HarnessError):
    """A lifecycle call was made out of order (e.g. initializing twice)."""


class DriverError(HarnessError):
    """A browser launch, navigation or element interaction failed."""

    def __init__(self, action: str, message: str, selector: Optional[str] = None):
        self.action = action
        self.selector = selector
        self.message = message
        target = f" on '{selector}'" if selector else ""
        super().__init__(f"{action}{target} failed: {message}")


class CheckpointMismatchError(HarnessError):
    """A blocking close found checkpoints that did not match their baseline."""

    def __init__(self, test_name: str, failures: list[str]):
        self.test_name = test_name
        self.failures = failures
        super().__init__(
            f"{len(failures)} visual checkpoint(s) failed in '{test_name}': "
            + "; ".join(failures)
        )
