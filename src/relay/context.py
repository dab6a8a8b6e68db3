"""Per-request context threaded through the middleware chain."""

from __future__ import annotations

from email.parser import BytesParser
from email.policy import HTTP
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl

from .http import Method
from .requests import BodyStream, Request
from .responses import Response

if TYPE_CHECKING:
    from .logger import Logger

_URLENCODED = "application/x-www-form-urlencoded"
_MULTIPART = "multipart/form-data"


class FormParseError(ValueError):
    """Raised internally when a body cannot be read as form data."""


class Context:
    """Read-only view of one request plus the slot for its response.

    A context belongs to exactly one in-flight request. ``response`` starts
    out as ``None``; later writes replace earlier ones.
    """

    __slots__ = ("_logger", "request", "response")

    def __init__(self, request: Request, logger: "Logger") -> None:
        self.request = request
        self.response: Response | None = None
        self._logger = logger

    @property
    def method(self) -> Method | str:
        return self.request.method

    @property
    def pathname(self) -> str:
        return self.request.path

    @property
    def query(self) -> dict[str, str]:
        """Query parameters; duplicate keys keep their last value."""

        return dict(parse_qsl(self.request.query_string, keep_blank_values=True))

    @property
    def headers(self) -> dict[str, str]:
        return self.request.headers.to_dict()

    @property
    def body(self) -> BodyStream | None:
        return self.request.body

    def set_response(self, response: Response) -> None:
        self.response = response

    def get_response(self) -> Response | None:
        return self.response

    async def form_params(self) -> dict[str, str]:
        """Parse the body as form data, returning ``{}`` when that is not possible."""

        body = self.request.body
        if body is None:
            return {}
        try:
            payload = await body.read()
            return _parse_form(self.request.headers.get("content-type", ""), payload)
        except Exception as exc:
            self._logger.error("Server.context", f"Error parsing form data: {exc}")
            return {}


def _parse_form(content_type: str, payload: bytes) -> dict[str, str]:
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == _URLENCODED:
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FormParseError("body is not valid UTF-8") from exc
        if not text:
            return {}
        return dict(parse_qsl(text, keep_blank_values=True))
    if media_type == _MULTIPART:
        return _parse_multipart(content_type, payload)
    raise FormParseError(f"unsupported content type {media_type or '(none)'!r}")


def _parse_multipart(content_type: str, payload: bytes) -> dict[str, str]:
    document = b"Content-Type: " + content_type.encode("latin-1") + b"\r\n\r\n" + payload
    message = BytesParser(policy=HTTP).parsebytes(document)
    if not message.is_multipart() or message.defects:
        raise FormParseError("malformed multipart body")
    params: dict[str, str] = {}
    for part in message.iter_parts():
        if part.get_content_disposition() != "form-data":
            continue
        name = part.get_param("name", header="content-disposition")
        if not name:
            raise FormParseError("multipart section without a field name")
        filename = part.get_filename()
        if filename is not None:
            params[str(name)] = filename
            continue
        raw = part.get_payload(decode=True) or b""
        charset = part.get_content_charset() or "utf-8"
        params[str(name)] = raw.decode(charset)
    return params


__all__ = ["Context", "FormParseError"]
