"""Testing helpers."""

from __future__ import annotations

from typing import Any, Mapping
from urllib.parse import urlencode

from .requests import Request
from .responses import Response
from .serialization import json_encode
from .server import Server


class TestClient:
    """Async test client that dispatches requests in-process."""

    __test__ = False

    def __init__(self, server: Server) -> None:
        self.server = server

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any | None = None,
        data: Mapping[str, str] | None = None,
        content: bytes | None = None,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        payload = content
        request_headers = {key.lower(): value for key, value in (headers or {}).items()}
        if json is not None:
            payload = json_encode(json)
            request_headers.setdefault("content-type", "application/json")
        elif data is not None:
            payload = urlencode(data).encode("utf-8")
            request_headers.setdefault("content-type", "application/x-www-form-urlencoded")
        if payload is not None:
            request_headers.setdefault("content-length", str(len(payload)))
        path, _, inline_query = path.partition("?")
        query_string = urlencode(query, doseq=True) if query else inline_query
        request = Request(
            method=method,
            path=path,
            query_string=query_string,
            headers=request_headers,
            body=payload,
        )
        return await self.server.handle_request(request)

    async def get(
        self,
        path: str,
        *,
        query: Mapping[str, Any] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("GET", path, query=query, headers=headers)

    async def post(
        self,
        path: str,
        *,
        json: Any | None = None,
        data: Mapping[str, str] | None = None,
        content: bytes | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> Response:
        return await self.request("POST", path, json=json, data=data, content=content, headers=headers)
