"""Reference deployment: a catch-all handler that reflects the request back."""

from __future__ import annotations

from typing import Any

from .config import ServerOptions
from .context import Context
from .middleware import Continuation
from .responses import JSONResponse
from .server import Server


async def echo_middleware(context: Context, call_next: Continuation) -> None:
    """Answer every request with a JSON document describing it."""

    body: str | None = None
    if context.body is not None:
        body = (await context.body.read()).decode("utf-8", errors="replace")
    data: dict[str, Any] = {
        "headers": context.headers,
        "query": context.query,
        "body": body,
        "method": str(context.method),
        "pathname": context.pathname,
    }
    context.response = JSONResponse(data)
    await call_next()


def create_echo_server(options: ServerOptions | None = None, **kwargs: Any) -> Server:
    server = Server(options, **kwargs)
    server.register(echo_middleware)
    return server
