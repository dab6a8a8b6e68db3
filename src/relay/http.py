"""HTTP methods and status codes."""

from __future__ import annotations

from enum import Enum, IntEnum


class Method(str, Enum):
    """Request methods the core knows by name."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"
    HEAD = "HEAD"
    OPTIONS = "OPTIONS"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, raw: str) -> "Method | str":
        """Return the matching member, or the upper-cased ``raw`` for other methods."""

        normalized = raw.upper()
        try:
            return cls(normalized)
        except ValueError:
            return normalized


class Status(IntEnum):
    """Enumeration of the HTTP status codes used within the core."""

    OK = 200
    NOT_FOUND = 404
    INTERNAL_SERVER_ERROR = 500


__all__ = ["Method", "Status"]
