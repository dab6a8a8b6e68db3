"""Relay: a minimal asynchronous HTTP middleware core."""

from .config import ALLOWED_LOG_LEVELS, LoggingConfig, LogLevel, ServerOptions
from .context import Context
from .exceptions import (
    BindError,
    BodyConsumedError,
    ConfigurationError,
    ContinuationError,
    RelayError,
    ResponseMissingError,
)
from .logger import Logger
from .middleware import Continuation, Middleware, MiddlewareChain
from .requests import BodyStream, Headers, Request
from .responses import JSONResponse, PlainTextResponse, Response, not_found
from .server import Server
from .testing import TestClient

__all__ = [
    "ALLOWED_LOG_LEVELS",
    "BindError",
    "BodyConsumedError",
    "BodyStream",
    "ConfigurationError",
    "Context",
    "Continuation",
    "ContinuationError",
    "Headers",
    "JSONResponse",
    "LogLevel",
    "Logger",
    "LoggingConfig",
    "Middleware",
    "MiddlewareChain",
    "PlainTextResponse",
    "RelayError",
    "Request",
    "Response",
    "ResponseMissingError",
    "Server",
    "ServerOptions",
    "TestClient",
    "not_found",
]
