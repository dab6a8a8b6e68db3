"""Response primitives."""

from __future__ import annotations

from typing import Any, Iterable

import msgspec

from .http import Status
from .serialization import json_encode

Headers = tuple[tuple[str, str], ...]


class Response(msgspec.Struct, frozen=True):
    """Immutable response payload."""

    status: int = int(Status.OK)
    headers: Headers = ()
    body: bytes = b""

    def header(self, name: str, default: str | None = None) -> str | None:
        """Return the last value of header ``name`` (case-insensitive)."""

        wanted = name.lower()
        found = default
        for key, value in self.headers:
            if key.lower() == wanted:
                found = value
        return found

    def set_headers(self, headers: Iterable[tuple[str, str]]) -> "Response":
        """Return a new response where ``headers`` replace any same-named entries."""

        additions = tuple(headers)
        replaced = {name.lower() for name, _ in additions}
        kept = tuple((name, value) for name, value in self.headers if name.lower() not in replaced)
        return Response(status=self.status, headers=kept + additions, body=self.body)


def PlainTextResponse(
    text: str,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a plain text response."""

    default_headers = (("content-type", "text/plain; charset=utf-8"),)
    combined = default_headers + tuple(headers or ())
    return Response(status=status, headers=combined, body=text.encode("utf-8"))


def JSONResponse(
    data: Any,
    *,
    status: int = int(Status.OK),
    headers: Iterable[tuple[str, str]] | None = None,
) -> Response:
    """Create a JSON response encoded via :mod:`msgspec`."""

    default_headers = (("content-type", "application/json"),)
    combined = default_headers + tuple(headers or ())
    return Response(status=status, headers=combined, body=json_encode(data))


def not_found() -> Response:
    """Fallback used when the chain unwinds without setting a response."""

    return Response(status=int(Status.NOT_FOUND), body=b"Not found")


__all__ = ["JSONResponse", "PlainTextResponse", "Response", "not_found"]
