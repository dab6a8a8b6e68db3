"""Server core and Granian integration helpers."""

from __future__ import annotations

import os
import socket
from typing import Any, Awaitable, Callable, Mapping, MutableMapping

import msgspec
from granian import Granian

from .builtins import request_logging_middleware, security_headers_middleware
from .config import LoggingConfig, ServerOptions, load_logging_config, normalize_logging_config
from .context import Context
from .exceptions import BindError
from .http import Status
from .logger import Logger
from .middleware import MiddlewareCallable, MiddlewareChain
from .requests import BodyStream, Request
from .responses import PlainTextResponse, Response, not_found

Receive = Callable[[], Awaitable[Mapping[str, Any]]]
Send = Callable[[Mapping[str, Any]], Awaitable[None]]

_CURRENT_APP: "Server | None" = None


class Server:
    """Owns the middleware chain and turns requests into responses.

    Request logging (optional) and security headers are installed first, so
    handlers added with :meth:`register` run innermost.
    """

    def __init__(
        self,
        options: ServerOptions | None = None,
        *,
        logger: Logger | None = None,
        logging_config: LoggingConfig | None = None,
        environ: MutableMapping[str, str] | None = None,
    ) -> None:
        self.options = options or ServerOptions()
        self._logging_config = logging_config
        self._environ = environ
        self.logger = logger or Logger(logging_config)
        self.host: str | None = None
        self.port: int | None = None
        self.chain = MiddlewareChain()
        if self.options.log_requests:
            self.chain.append(request_logging_middleware(self.logger))
        self.chain.append(security_headers_middleware)

    def register(self, middleware: MiddlewareCallable) -> MiddlewareCallable:
        """Append ``middleware`` to the end of the chain."""

        self.chain.append(middleware)
        return middleware

    async def handle_request(self, request: Request) -> Response:
        context = Context(request, logger=self.logger)
        await self.chain.dispatch(context)
        return context.response or not_found()

    # ------------------------------------------------------------------ lifecycle
    def verify_and_normalize_environment(self) -> LoggingConfig:
        """Validate the severity setting and reconfigure the log sink with it.

        Raises :class:`~relay.exceptions.ConfigurationError` when the value is
        unparseable or outside the allowed set.
        """

        if self._logging_config is not None:
            config, environ = self._logging_config, self._environ
        else:
            environ = os.environ if self._environ is None else self._environ
            config = load_logging_config(environ)
        normalized, notice = normalize_logging_config(config, environ)
        self.logger.configure(normalized)
        self.logger.info("Server", notice)
        return normalized

    def listen(self, port: int, hostname: str = "0.0.0.0", *, workers: int = 1) -> None:
        """Validate configuration, bind ``hostname:port`` and serve until stopped."""

        self.verify_and_normalize_environment()
        self.host = hostname
        self.port = port
        try:
            _ensure_bindable(hostname, port)
            run(self, ServerConfig(host=hostname, port=port, workers=workers))
        except (OSError, RuntimeError) as exc:
            # granian reports socket setup failures as RuntimeError
            detail = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
            error = BindError(hostname, port, detail)
            self.logger.error("Server", str(error))
            raise error from exc

    def _on_listen(self) -> None:
        self.logger.info(
            "Server",
            f"Server is listening on {self.host}:{self.port}. Available on http://localhost:{self.port}/",
        )

    # ------------------------------------------------------------------ interface adapters
    async def __call__(self, scope: Mapping[str, Any], receive: Receive, send: Send) -> None:
        scope_type = scope.get("type")
        if scope_type == "http":
            await self._handle_http(scope, receive, send)
            return
        if scope_type == "lifespan":
            await self._handle_lifespan(receive, send)
            return
        raise RuntimeError("Server only supports HTTP and lifespan scopes")

    async def _handle_lifespan(self, receive: Receive, send: Send) -> None:
        while True:
            message = await receive()
            message_type = message.get("type")
            if message_type == "lifespan.startup":
                self._on_listen()
                await send({"type": "lifespan.startup.complete"})
            elif message_type == "lifespan.shutdown":
                await send({"type": "lifespan.shutdown.complete"})
                return

    async def _handle_http(self, scope: Mapping[str, Any], receive: Receive, send: Send) -> None:
        headers = [(key.decode("latin-1"), value.decode("latin-1")) for key, value in scope.get("headers", [])]
        request = Request(
            method=scope["method"],
            path=scope["path"],
            query_string=(scope.get("query_string") or b"").decode("latin-1"),
            headers=headers,
            body=BodyStream(receive=receive) if _has_body(headers) else None,
        )
        try:
            response = await self.handle_request(request)
        except Exception as exc:
            self.logger.error("Server", f"Unhandled error for [{request.method}] {request.path}: {exc}", exc_info=exc)
            response = PlainTextResponse("Internal Server Error", status=int(Status.INTERNAL_SERVER_ERROR))
        await send(
            {
                "type": "http.response.start",
                "status": response.status,
                "headers": [(k.encode("latin-1"), v.encode("latin-1")) for k, v in response.headers],
            }
        )
        await send({"type": "http.response.body", "body": response.body})


def _ensure_bindable(host: str, port: int) -> None:
    """Raise :class:`OSError` when ``host:port`` cannot be bound right now."""

    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))


def _has_body(headers: list[tuple[str, str]]) -> bool:
    for name, value in headers:
        lowered = name.lower()
        if lowered == "transfer-encoding":
            return True
        if lowered == "content-length" and value.strip() not in ("", "0"):
            return True
    return False


# ---------------------------------------------------------------------- granian
def _register_current_app(app: Server) -> None:
    """Store ``app`` for retrieval by worker processes."""

    global _CURRENT_APP
    _CURRENT_APP = app


def _clear_current_app() -> None:
    """Clear any registered server instance."""

    global _CURRENT_APP
    _CURRENT_APP = None


def _current_app_loader() -> Server:
    """Return the server registered for the current process."""

    if _CURRENT_APP is None:
        raise RuntimeError("no relay server registered for Granian")
    return _CURRENT_APP


class ServerConfig(msgspec.Struct, frozen=True):
    host: str = "0.0.0.0"
    port: int = 3000
    interface: str = "asgi"
    loop: str = "auto"
    workers: int = 1


def _granian_kwargs(cfg: ServerConfig) -> Mapping[str, Any]:
    if not 0 <= cfg.port <= 65535:
        raise ValueError(f"Invalid port: {cfg.port}")
    if cfg.workers < 1:
        raise ValueError("workers must be at least 1")
    return {
        "address": cfg.host,
        "port": cfg.port,
        "interface": cfg.interface,
        "loop": cfg.loop,
        "workers": cfg.workers,
    }


def create_server(app: Server, config: ServerConfig | None = None) -> Granian:
    cfg = config or ServerConfig()
    _register_current_app(app)
    try:
        kwargs = _granian_kwargs(cfg)
        return Granian("relay.server:_current_app_loader", **kwargs)
    except Exception:
        _clear_current_app()
        raise


def run(app: Server, config: ServerConfig | None = None) -> None:
    server = create_server(app, config)
    try:
        server.serve(target_loader=_current_app_loader, wrap_loader=False)
    finally:
        _clear_current_app()


__all__ = ["Server", "ServerConfig", "create_server", "run"]
