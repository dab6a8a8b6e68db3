"""Leveled console log sink built on :mod:`logging`."""

from __future__ import annotations

import datetime as dt
import logging
from typing import IO, Any

import msgspec

from .config import LoggingConfig, LogLevel
from .serialization import json_encode

_RESET = "\x1b[0m"

_COLORS: dict[int, str] = {
    int(LogLevel.DEBUG): "\x1b[36m",
    int(LogLevel.WARNING): "\x1b[33m",
    int(LogLevel.ERROR): "\x1b[31m",
    int(LogLevel.CRITICAL): "\x1b[31m",
}


def render_fragment(value: Any) -> str:
    """Render a single message fragment the way the sink prints it."""

    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    try:
        return json_encode(value).decode("utf-8")
    except (msgspec.EncodeError, TypeError):
        return repr(value)


class LineFormatter(logging.Formatter):
    """Format records as ``<timestamp> <LEVEL> [<area>] <message>``."""

    def __init__(self, *, color: bool = True) -> None:
        super().__init__()
        self.color = color

    def format(self, record: logging.LogRecord) -> str:
        timestamp = dt.datetime.fromtimestamp(record.created, tz=dt.timezone.utc)
        stamp = timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        area = getattr(record, "area", record.name)
        try:
            label = LogLevel(record.levelno).label
        except ValueError:
            label = record.levelname
        line = f"{stamp} {label} [{area}] {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        prefix = _COLORS.get(record.levelno)
        if not self.color or prefix is None:
            return line
        return f"{prefix}{line}{_RESET}"


class Logger:
    """Log sink taking an area label and variadic message fragments.

    Output is gated by :attr:`LoggingConfig.level`: a call is emitted only
    when a threshold is configured and the call's severity reaches it.
    """

    def __init__(
        self,
        config: LoggingConfig | None = None,
        *,
        name: str = "relay",
        stream: IO[str] | None = None,
    ) -> None:
        # kept out of the logging registry so every sink owns its handler
        self._logger = logging.Logger(name, logging.DEBUG)
        self._logger.propagate = False
        self._stream = stream
        self._handler: logging.Handler | None = None
        self.configure(config or LoggingConfig())

    @property
    def config(self) -> LoggingConfig:
        return self._config

    def configure(self, config: LoggingConfig) -> None:
        """Swap in ``config``; used once at startup after normalisation."""

        self._config = config
        handler = logging.StreamHandler(self._stream)
        handler.setFormatter(LineFormatter(color=config.color))
        if self._handler is not None:
            self._logger.removeHandler(self._handler)
        self._logger.addHandler(handler)
        self._handler = handler

    def is_enabled_for(self, level: int) -> bool:
        threshold = self._config.level
        if threshold is None:
            return False
        return level >= threshold

    def debug(self, area: str, *messages: Any) -> None:
        self._emit(LogLevel.DEBUG, area, messages)

    def info(self, area: str, *messages: Any) -> None:
        self._emit(LogLevel.INFO, area, messages)

    def warning(self, area: str, *messages: Any) -> None:
        self._emit(LogLevel.WARNING, area, messages)

    def error(self, area: str, *messages: Any, exc_info: BaseException | None = None) -> None:
        self._emit(LogLevel.ERROR, area, messages, exc_info=exc_info)

    def _emit(
        self,
        level: LogLevel,
        area: str,
        messages: tuple[Any, ...],
        *,
        exc_info: BaseException | None = None,
    ) -> None:
        if not self.is_enabled_for(level):
            return
        text = " ".join(render_fragment(message) for message in messages)
        self._logger.log(int(level), "%s", text, extra={"area": area}, exc_info=exc_info)


__all__ = ["LineFormatter", "Logger", "render_fragment"]
