"""Configuration objects."""

from __future__ import annotations

import os
from enum import IntEnum
from typing import Mapping, MutableMapping

from msgspec import Struct, structs

from .exceptions import ConfigurationError

LOG_LEVEL_ENV = "LOG_LEVEL"


class LogLevel(IntEnum):
    """Severity levels understood by the log sink."""

    NOTSET = 0
    DEBUG = 10
    INFO = 20
    WARNING = 30
    ERROR = 40
    CRITICAL = 50

    @property
    def label(self) -> str:
        return _LEVEL_LABELS[self]


_LEVEL_LABELS: dict[LogLevel, str] = {
    LogLevel.NOTSET: "____",
    LogLevel.DEBUG: "DEB",
    LogLevel.INFO: "INFO",
    LogLevel.WARNING: "WARN",
    LogLevel.ERROR: "ERR",
    LogLevel.CRITICAL: "CRIT",
}

ALLOWED_LOG_LEVELS: frozenset[int] = frozenset(int(level) for level in LogLevel)


class ServerOptions(Struct, frozen=True):
    """Options recognised by :class:`~relay.server.Server`."""

    log_requests: bool = True


class LoggingConfig(Struct, frozen=True):
    """Configuration injected into :class:`~relay.logger.Logger`.

    ``level`` is the minimum severity that is emitted. ``None`` means no
    threshold has been configured, in which case the sink stays silent.
    """

    level: int | None = None
    color: bool = True

    @property
    def level_name(self) -> str:
        if self.level is None or self.level not in ALLOWED_LOG_LEVELS:
            return LogLevel.NOTSET.label
        return LogLevel(self.level).label


def load_logging_config(environ: Mapping[str, str] | None = None) -> LoggingConfig:
    """Build a :class:`LoggingConfig` from ``environ`` (``os.environ`` by default).

    Membership in the allowed level set is not checked here; that happens in
    :func:`normalize_logging_config` during startup.
    """

    env = os.environ if environ is None else environ
    color = "NO_COLOR" not in env
    raw = env.get(LOG_LEVEL_ENV)
    if raw is None:
        return LoggingConfig(level=None, color=color)
    text = raw.strip()
    digits = text[1:] if text[:1] in ("+", "-") else text
    # int() alone would also accept forms such as "1_0"
    if not (digits.isascii() and digits.isdigit()):
        raise ConfigurationError(f"{LOG_LEVEL_ENV} environment variable is not a number.")
    return LoggingConfig(level=int(text), color=color)


def normalize_logging_config(
    config: LoggingConfig,
    environ: MutableMapping[str, str] | None = None,
) -> tuple[LoggingConfig, str]:
    """Validate ``config`` and fill in the default level.

    Returns the normalised configuration together with the notice that should
    be logged once the sink has been reconfigured. A missing level defaults
    to INFO and is written back to ``environ`` when one is given.
    """

    if config.level is None:
        normalized = structs.replace(config, level=int(LogLevel.INFO))
        if environ is not None:
            environ[LOG_LEVEL_ENV] = str(int(LogLevel.INFO))
        return normalized, f"{LOG_LEVEL_ENV} environment variable not set, defaulting to INFO."
    if config.level not in ALLOWED_LOG_LEVELS or config.level == LogLevel.NOTSET:
        raise ConfigurationError(f"{LOG_LEVEL_ENV} environment variable is not in the allowed range.")
    return config, f"{LOG_LEVEL_ENV} environment variable set to {config.level_name}"


__all__ = [
    "ALLOWED_LOG_LEVELS",
    "LOG_LEVEL_ENV",
    "LogLevel",
    "LoggingConfig",
    "ServerOptions",
    "load_logging_config",
    "normalize_logging_config",
]
