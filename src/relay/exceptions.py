"""Framework exception types."""

from __future__ import annotations


class RelayError(Exception):
    """Base error type."""


class ConfigurationError(RelayError):
    """Startup configuration is invalid; the process must not serve requests."""


class BindError(RelayError):
    """The transport could not acquire its listening endpoint."""

    def __init__(self, host: str, port: int, detail: str) -> None:
        super().__init__(f"Error starting server: {detail}")
        self.host = host
        self.port = port
        self.detail = detail


class ResponseMissingError(RelayError):
    """A middleware expected ``context.response`` to be set by the rest of the chain."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Response is not set in the context. Cannot {action}.")
        self.action = action


class ContinuationError(RelayError):
    """A middleware invoked its continuation more than once."""


class BodyConsumedError(RelayError):
    """The request body stream has already been drained."""
