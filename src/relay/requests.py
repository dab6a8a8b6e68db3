"""Request primitives owned by the transport."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Awaitable, Callable, Iterable, Iterator, Mapping
from urllib.parse import urlsplit

from .exceptions import BodyConsumedError
from .http import Method

Receive = Callable[[], Awaitable[Mapping[str, Any]]]


class Headers(Mapping[str, str]):
    """Case-insensitive, read-only header mapping."""

    __slots__ = ("_items",)

    def __init__(self, raw: Mapping[str, str] | Iterable[tuple[str, str]] | None = None) -> None:
        pairs = raw.items() if isinstance(raw, Mapping) else (raw or ())
        self._items: dict[str, str] = {}
        for name, value in pairs:
            self._items[name.lower()] = value

    def __getitem__(self, name: str) -> str:
        return self._items[name.lower()]

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._items

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __repr__(self) -> str:
        return f"Headers({self._items!r})"

    def to_dict(self) -> dict[str, str]:
        return dict(self._items)


class BodyStream:
    """Lazy request body that can be drained exactly once.

    Chunks come either from an ASGI ``receive`` callable or from a fixed
    payload. Nothing is buffered for replay.
    """

    __slots__ = ("_consumed", "_payload", "_receive")

    def __init__(self, *, receive: Receive | None = None, payload: bytes | None = None) -> None:
        if (receive is None) == (payload is None):
            raise ValueError("BodyStream requires exactly one of receive or payload")
        self._receive = receive
        self._payload = payload
        self._consumed = False

    @classmethod
    def from_bytes(cls, payload: bytes) -> "BodyStream":
        return cls(payload=payload)

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __aiter__(self) -> AsyncIterator[bytes]:
        if self._consumed:
            raise BodyConsumedError("Request body has already been read")
        self._consumed = True
        return self._chunks()

    async def _chunks(self) -> AsyncIterator[bytes]:
        if self._payload is not None:
            payload, self._payload = self._payload, None
            if payload:
                yield payload
            return
        assert self._receive is not None
        while True:
            message = await self._receive()
            message_type = message.get("type")
            if message_type == "http.disconnect":
                return
            if message_type != "http.request":
                continue
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                return

    async def read(self) -> bytes:
        """Drain the stream and return every chunk joined together."""

        buffer = bytearray()
        async for chunk in self:
            buffer.extend(chunk)
        return bytes(buffer)


class Request:
    """Immutable view of an inbound request as parsed by the transport."""

    __slots__ = ("body", "headers", "method", "path", "query_string")

    def __init__(
        self,
        *,
        method: str,
        path: str,
        query_string: str = "",
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: BodyStream | bytes | None = None,
    ) -> None:
        self.method = Method.parse(method)
        self.path = path or "/"
        self.query_string = query_string.lstrip("?")
        self.headers = headers if isinstance(headers, Headers) else Headers(headers)
        self.body = BodyStream.from_bytes(body) if isinstance(body, bytes) else body

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        *,
        headers: Mapping[str, str] | Iterable[tuple[str, str]] | None = None,
        body: BodyStream | bytes | None = None,
    ) -> "Request":
        """Build a request from a full or origin-form URL."""

        parts = urlsplit(url)
        return cls(method=method, path=parts.path, query_string=parts.query, headers=headers, body=body)

    def __repr__(self) -> str:
        return f"Request({self.method!s} {self.path!r})"


__all__ = ["BodyStream", "Headers", "Receive", "Request"]
