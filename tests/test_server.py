from __future__ import annotations

import io
import socket
from typing import Mapping

import pytest

from relay.builtins import security_headers_middleware
from relay.config import LoggingConfig, LogLevel, ServerOptions
from relay.context import Context
from relay.exceptions import BindError, ConfigurationError, ResponseMissingError
from relay.logger import Logger
from relay.middleware import MiddlewareChain
from relay.requests import Request
from relay.responses import JSONResponse, Response
from relay.server import (
    Server,
    ServerConfig,
    _clear_current_app,
    _current_app_loader,
    create_server,
    run,
)
from relay.testing import TestClient


def build_server(options: ServerOptions | None = None, level: int | None = int(LogLevel.INFO), **kwargs):
    stream = io.StringIO()
    logger = Logger(LoggingConfig(level=level, color=False), stream=stream)
    return Server(options, logger=logger, **kwargs), stream


async def echo_ok(context: Context, call_next) -> None:
    context.response = JSONResponse({"ok": True})
    await call_next()


@pytest.mark.asyncio
async def test_logging_security_and_handler_scenario() -> None:
    server, stream = build_server()
    server.register(echo_ok)
    response = await TestClient(server).get("/x?a=1")
    assert response.status == 200
    assert response.body == b'{"ok":true}'
    assert ("X-Content-Type-Options", "nosniff") in response.headers
    assert ("X-Frame-Options", "DENY") in response.headers
    assert ("X-XSS-Protection", "1; mode=block") in response.headers
    assert "[GET] /x - 200" in stream.getvalue()


def test_default_chain_layout() -> None:
    server, _ = build_server()
    assert len(server.chain) == 2
    assert server.chain[1] is security_headers_middleware

    quiet, _ = build_server(ServerOptions(log_requests=False))
    assert list(quiet.chain) == [security_headers_middleware]


@pytest.mark.asyncio
async def test_log_requests_disabled_emits_nothing() -> None:
    server, stream = build_server(ServerOptions(log_requests=False))
    server.register(echo_ok)
    response = await TestClient(server).get("/")
    assert response.status == 200
    assert stream.getvalue() == ""


@pytest.mark.asyncio
async def test_registered_handlers_run_innermost() -> None:
    server, _ = build_server()
    events: list[str] = []

    async def first(context: Context, call_next) -> None:
        events.append("first:in")
        await call_next()
        assert context.response is not None
        assert context.response.header("x-frame-options") is None
        events.append("first:out")

    async def second(context: Context, call_next) -> None:
        events.append("second:in")
        context.response = Response(status=204)
        await call_next()
        events.append("second:out")

    assert server.register(first) is first
    server.register(second)
    response = await TestClient(server).get("/")
    assert events == ["first:in", "second:in", "second:out", "first:out"]
    assert response.header("x-frame-options") == "DENY"


@pytest.mark.asyncio
async def test_empty_chain_yields_not_found() -> None:
    server, _ = build_server()
    server.chain = MiddlewareChain()
    response = await server.handle_request(Request(method="GET", path="/anything"))
    assert response.status == 404
    assert response.headers == ()
    assert response.body == b"Not found"


@pytest.mark.asyncio
async def test_short_circuit_without_response_falls_back_to_not_found() -> None:
    server, _ = build_server()
    server.chain = MiddlewareChain()

    async def stop(context: Context, call_next) -> None:
        return None

    server.register(stop)
    response = await server.handle_request(Request(method="GET", path="/"))
    assert response.status == 404


@pytest.mark.asyncio
async def test_missing_handler_is_a_loud_error() -> None:
    server, _ = build_server()
    with pytest.raises(ResponseMissingError):
        await server.handle_request(Request(method="GET", path="/"))


@pytest.mark.asyncio
async def test_handler_errors_propagate_out_of_handle_request() -> None:
    server, _ = build_server()

    async def failing(context: Context, call_next) -> None:
        raise LookupError("missing")

    server.register(failing)
    with pytest.raises(LookupError):
        await TestClient(server).get("/")


# ---------------------------------------------------------------------- startup


def test_listen_rejects_invalid_level_before_binding(monkeypatch) -> None:
    calls: list[object] = []
    monkeypatch.setattr("relay.server.run", lambda app, config=None: calls.append(config))
    server, _ = build_server(level=None, environ={"LOG_LEVEL": "99"})
    with pytest.raises(ConfigurationError, match="allowed range"):
        server.listen(3000)
    assert calls == []


def test_listen_rejects_unparseable_level(monkeypatch) -> None:
    calls: list[object] = []
    monkeypatch.setattr("relay.server.run", lambda app, config=None: calls.append(config))
    server, _ = build_server(level=None, environ={"LOG_LEVEL": "loud"})
    with pytest.raises(ConfigurationError, match="not a number"):
        server.listen(3000)
    assert calls == []


def test_listen_defaults_level_and_serves(monkeypatch) -> None:
    monkeypatch.setattr("relay.server._ensure_bindable", lambda host, port: None)
    configs: list[ServerConfig] = []
    monkeypatch.setattr("relay.server.run", lambda app, config=None: configs.append(config))
    environ: dict[str, str] = {}
    server, stream = build_server(level=None, environ=environ)
    server.listen(8080, "127.0.0.1", workers=2)
    assert environ["LOG_LEVEL"] == "20"
    assert server.logger.config.level == LogLevel.INFO
    assert configs == [ServerConfig(host="127.0.0.1", port=8080, workers=2)]
    assert "LOG_LEVEL environment variable not set, defaulting to INFO." in stream.getvalue()


def test_listen_uses_injected_logging_config(monkeypatch) -> None:
    monkeypatch.setattr("relay.server._ensure_bindable", lambda host, port: None)
    monkeypatch.setattr("relay.server.run", lambda app, config=None: None)
    stream = io.StringIO()
    logger = Logger(stream=stream)
    config = LoggingConfig(level=int(LogLevel.WARNING), color=False)
    server = Server(logger=logger, logging_config=config, environ={"LOG_LEVEL": "99"})
    server.listen(3000)
    assert server.logger.config == config
    # INFO notice is below the WARNING threshold
    assert stream.getvalue() == ""


def test_listen_bind_failure_is_fatal(monkeypatch) -> None:
    monkeypatch.setattr("relay.server._ensure_bindable", lambda host, port: None)

    def refuse(app, config=None):
        raise OSError(98, "Address already in use")

    monkeypatch.setattr("relay.server.run", refuse)
    server, stream = build_server(level=None, environ={"LOG_LEVEL": "40"})
    with pytest.raises(BindError) as excinfo:
        server.listen(3000, "127.0.0.1")
    assert excinfo.value.port == 3000
    assert "ERR [Server] Error starting server: Address already in use" in stream.getvalue()


def test_listen_maps_granian_socket_errors_to_bind_error(monkeypatch) -> None:
    monkeypatch.setattr("relay.server._ensure_bindable", lambda host, port: None)

    def refuse(app, config=None):
        raise RuntimeError("Address already in use (os error 98)")

    monkeypatch.setattr("relay.server.run", refuse)
    server, stream = build_server(level=None, environ={"LOG_LEVEL": "40"})
    with pytest.raises(BindError):
        server.listen(3000, "127.0.0.1")
    assert "Error starting server: Address already in use (os error 98)" in stream.getvalue()


def test_listen_detects_occupied_port_before_serving(monkeypatch) -> None:
    calls: list[object] = []
    monkeypatch.setattr("relay.server.run", lambda app, config=None: calls.append(config))
    server, stream = build_server(level=None, environ={"LOG_LEVEL": "20"})
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as holder:
        holder.bind(("127.0.0.1", 0))
        holder.listen()
        port = holder.getsockname()[1]
        with pytest.raises(BindError) as excinfo:
            server.listen(port, "127.0.0.1")
    assert calls == []
    assert excinfo.value.port == port
    assert "ERR [Server] Error starting server:" in stream.getvalue()


# ---------------------------------------------------------------------- asgi


def _asgi_io(incoming: list[dict[str, object]]):
    messages: list[dict[str, object]] = []

    async def receive() -> Mapping[str, object]:
        return incoming.pop(0) if incoming else {"type": "http.disconnect"}

    async def send(message: Mapping[str, object]) -> None:
        messages.append(dict(message))

    return receive, send, messages


@pytest.mark.asyncio
async def test_asgi_interface_handles_request() -> None:
    server, stream = build_server()

    async def reply(context: Context, call_next) -> None:
        payload = await context.form_params()
        context.response = JSONResponse({"form": payload, "query": context.query})
        await call_next()

    server.register(reply)
    receive, send, messages = _asgi_io(
        [
            {"type": "http.request", "body": b"name=Wid", "more_body": True},
            {"type": "http.request", "body": b"get", "more_body": False},
        ]
    )
    await server(
        {
            "type": "http",
            "method": "POST",
            "path": "/submit",
            "query_string": b"a=1",
            "headers": [
                (b"content-type", b"application/x-www-form-urlencoded"),
                (b"content-length", b"11"),
            ],
        },
        receive,
        send,
    )
    assert messages[0]["status"] == 200
    assert (b"X-Frame-Options", b"DENY") in messages[0]["headers"]
    assert messages[1]["body"] == b'{"form":{"name":"Widget"},"query":{"a":"1"}}'
    assert "[POST] /submit - 200" in stream.getvalue()


@pytest.mark.asyncio
async def test_asgi_converts_uncaught_errors_to_500() -> None:
    server, stream = build_server()

    async def failing(context: Context, call_next) -> None:
        raise RuntimeError("kaboom")

    server.register(failing)
    receive, send, messages = _asgi_io([])
    scope = {"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": []}
    await server(scope, receive, send)
    assert messages[0]["status"] == 500
    assert messages[1]["body"] == b"Internal Server Error"
    assert "kaboom" in stream.getvalue()


@pytest.mark.asyncio
async def test_asgi_request_without_body_headers_has_no_body() -> None:
    server, _ = build_server()
    seen: list[object] = []

    async def inspect(context: Context, call_next) -> None:
        seen.append(context.body)
        context.response = Response(status=204)
        await call_next()

    server.register(inspect)
    receive, send, messages = _asgi_io([])
    scope = {"type": "http", "method": "GET", "path": "/", "query_string": b"", "headers": []}
    await server(scope, receive, send)
    assert seen == [None]
    assert messages[0]["status"] == 204


@pytest.mark.asyncio
async def test_asgi_lifespan_logs_listening_line() -> None:
    server, stream = build_server()
    server.host, server.port = "0.0.0.0", 3000
    receive, send, messages = _asgi_io([{"type": "lifespan.startup"}, {"type": "lifespan.shutdown"}])
    await server({"type": "lifespan"}, receive, send)
    assert messages == [
        {"type": "lifespan.startup.complete"},
        {"type": "lifespan.shutdown.complete"},
    ]
    assert "Server is listening on 0.0.0.0:3000. Available on http://localhost:3000/" in stream.getvalue()


@pytest.mark.asyncio
async def test_asgi_rejects_unknown_scope() -> None:
    server, _ = build_server()
    receive, send, _ = _asgi_io([])
    with pytest.raises(RuntimeError):
        await server({"type": "websocket"}, receive, send)


# ---------------------------------------------------------------------- granian


def _granian_spy(monkeypatch):
    calls: list[dict[str, object]] = []

    class DummyGranian:
        def __init__(self, target: str, **kwargs):
            calls.append({"target": target, "kwargs": kwargs})

    monkeypatch.setattr("relay.server.Granian", DummyGranian)
    return calls, DummyGranian


def test_create_server_configures_granian(monkeypatch) -> None:
    server, _ = build_server()
    calls, DummyGranian = _granian_spy(monkeypatch)
    try:
        granian = create_server(server, ServerConfig(host="127.0.0.1", port=9000, workers=2))
        assert isinstance(granian, DummyGranian)
        assert calls[0]["target"] == "relay.server:_current_app_loader"
        assert calls[0]["kwargs"] == {
            "address": "127.0.0.1",
            "port": 9000,
            "interface": "asgi",
            "loop": "auto",
            "workers": 2,
        }
        assert _current_app_loader() is server
    finally:
        _clear_current_app()


def test_create_server_rejects_invalid_config(monkeypatch) -> None:
    server, _ = build_server()
    _granian_spy(monkeypatch)
    with pytest.raises(ValueError):
        create_server(server, ServerConfig(port=70000))
    with pytest.raises(RuntimeError):
        _current_app_loader()


def test_run_invokes_serve(monkeypatch) -> None:
    server, _ = build_server()
    served: dict[str, object] = {"called": False}

    class DummyServer:
        def serve(self, target_loader=None, wrap_loader=True) -> None:
            served["called"] = True
            served["loader"] = target_loader
            served["wrap"] = wrap_loader

    monkeypatch.setattr("relay.server.create_server", lambda app, config=None: DummyServer())
    run(server)
    assert served["called"] is True
    assert served["loader"] is _current_app_loader
    assert served["wrap"] is False


def test_current_app_loader_without_registration() -> None:
    _clear_current_app()
    with pytest.raises(RuntimeError):
        _current_app_loader()
