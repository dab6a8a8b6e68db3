"""Middleware installed by :class:`~relay.server.Server` itself."""

from __future__ import annotations

import time
from typing import Callable

from .context import Context
from .exceptions import ResponseMissingError
from .logger import Logger
from .middleware import Continuation, MiddlewareCallable

SECURITY_HEADERS: tuple[tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "DENY"),
    ("X-XSS-Protection", "1; mode=block"),
)


async def security_headers_middleware(context: Context, call_next: Continuation) -> None:
    """Stamp the fixed security headers onto whatever response the chain produced."""

    await call_next()
    if context.response is None:
        raise ResponseMissingError("set security headers")
    context.response = context.response.set_headers(SECURITY_HEADERS)


def request_logging_middleware(
    logger: Logger,
    *,
    clock: Callable[[], float] = time.perf_counter,
) -> MiddlewareCallable:
    """Return middleware logging ``[METHOD] path - status (Nms)`` for every request."""

    async def log_requests(context: Context, call_next: Continuation) -> None:
        start = clock()
        await call_next()
        elapsed_ms = max(0, round((clock() - start) * 1000))
        if context.response is None:
            raise ResponseMissingError("log request")
        logger.info(
            "Server",
            f"[{context.method}] {context.pathname} - {context.response.status} ({elapsed_ms}ms)",
        )

    return log_requests


__all__ = ["SECURITY_HEADERS", "request_logging_middleware", "security_headers_middleware"]
