"""Command line entry point for the reference deployment."""

from __future__ import annotations

import argparse
from typing import Sequence

from .config import LoggingConfig, LogLevel, ServerOptions
from .echo import create_echo_server
from .exceptions import BindError, ConfigurationError
from .logger import Logger

PROJECT_NAME = "relay"


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=PROJECT_NAME, description="Relay HTTP server")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Serve the echo handler")
    serve.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    serve.add_argument("--port", type=int, default=3000, help="Port to bind")
    serve.add_argument("--workers", type=int, default=1, help="Granian worker processes")
    serve.add_argument("--no-log-requests", action="store_true", help="Disable the request log middleware")
    serve.set_defaults(func=_cmd_serve)
    return parser


def _cmd_serve(args: argparse.Namespace) -> int:
    server = create_echo_server(ServerOptions(log_requests=not args.no_log_requests))
    try:
        server.listen(args.port, args.host, workers=args.workers)
    except ConfigurationError as exc:
        # the configured threshold is unusable, so report through an ERROR-level sink
        Logger(LoggingConfig(level=int(LogLevel.ERROR)), name=f"{PROJECT_NAME}.cli").error("Server", str(exc))
        return 1
    except BindError:
        return 1
    return 0
