"""Error taxonomy shared across the agent runtime."""

from __future__ import annotations


class AutoloopError(Exception):
    """Base class for runtime errors raised by this package."""


class ConfigurationError(AutoloopError):
    """Startup misconfiguration that makes the agent unable to run."""


class TransientError(AutoloopError):
    """Retryable infrastructure failure (timeout, throttling, 5xx)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class StorageError(AutoloopError):
    """A storage or queue operation failed after exhausting retries."""


class ReasoningEngineError(AutoloopError):
    """The reasoning engine could not produce a completion."""


class CommandRejected(AutoloopError):
    """Terminal command failure; the message must not be redelivered."""
