"""
aiohttp.web adapter.

The native response is a `web.StreamResponse`. Headers and status are set
before `prepare()`; `send` prepares the response and writes each chunk as
it arrives, so large bodies are never held in memory.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

from aiohttp import hdrs, web

from authbridge.adapters.base import DEFAULT_HOST, HttpAdapter, group_values, parse_body
from authbridge.errors import HeadersSentError
from authbridge.session import AuthContext


class AiohttpAdapter(HttpAdapter[web.Request, web.StreamResponse]):
    """Adapter for aiohttp.web applications."""

    def get_protocol(self, request: web.Request) -> str:
        return request.scheme

    def get_host(self, request: web.Request) -> str:
        return request.headers.get(hdrs.HOST) or DEFAULT_HOST

    def get_url(self, request: web.Request) -> str:
        return request.raw_path

    def get_method(self, request: web.Request) -> str:
        return request.method

    def get_headers(self, request: web.Request) -> dict[str, str | list[str] | None]:
        return group_values(list(request.headers.items()))

    def get_cookie(self, request: web.Request) -> str | None:
        return request.headers.get(hdrs.COOKIE)

    async def get_body(self, request: web.Request) -> Any:
        if not request.body_exists:
            return None
        raw = await request.read()
        return parse_body(raw, request.headers.get(hdrs.CONTENT_TYPE))

    def set_header(self, response: web.StreamResponse, name: str, value: str | list[str]) -> None:
        if response.prepared:
            raise HeadersSentError()
        response.headers.popall(name, None)
        if isinstance(value, list):
            for item in value:
                response.headers.add(name, item)
        else:
            response.headers[name] = value

    def set_status(self, response: web.StreamResponse, code: int) -> None:
        if response.prepared:
            raise HeadersSentError()
        response.set_status(code)

    async def send(
        self,
        request: web.Request,
        response: web.StreamResponse,
        body: str | bytes | AsyncIterator[bytes],
    ) -> None:
        await response.prepare(request)
        if isinstance(body, str):
            body = body.encode("utf-8")
        if isinstance(body, bytes):
            if body:
                await response.write(body)
        else:
            async for chunk in body:
                await response.write(chunk)
        await response.write_eof()

    def attach_context(self, request: web.Request, context: AuthContext) -> None:
        request["auth"] = context
        request["session"] = context.session
        request[context.property_name] = context.user

    def get_context(self, request: web.Request) -> AuthContext | None:
        return request.get("auth")
