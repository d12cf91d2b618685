"""
Starlette / FastAPI adapter.

The native response is a `StreamingResponse` created by the endpoint.
Status and headers are mutated in place and `send` installs the body
iterator; Starlette then streams it to the client once the endpoint
returns it.
"""

from __future__ import annotations

from typing import Any, AsyncIterator

from starlette.requests import Request
from starlette.responses import StreamingResponse

from authbridge.adapters.base import DEFAULT_HOST, HttpAdapter, group_values, parse_body
from authbridge.session import AuthContext


async def _single(payload: bytes) -> AsyncIterator[bytes]:
    yield payload


class StarletteAdapter(HttpAdapter[Request, StreamingResponse]):
    """Adapter for ASGI apps built on Starlette (including FastAPI)."""

    def get_protocol(self, request: Request) -> str:
        return request.url.scheme

    def get_host(self, request: Request) -> str:
        return request.headers.get("host") or DEFAULT_HOST

    def get_url(self, request: Request) -> str:
        raw_path = request.scope.get("raw_path")
        path = raw_path.decode("latin-1") if raw_path else request.url.path
        query = request.url.query
        return f"{path}?{query}" if query else path

    def get_method(self, request: Request) -> str:
        return request.method

    def get_headers(self, request: Request) -> dict[str, str | list[str] | None]:
        return group_values(request.headers.items())

    def get_cookie(self, request: Request) -> str | None:
        return request.headers.get("cookie")

    async def get_body(self, request: Request) -> Any:
        raw = await request.body()
        return parse_body(raw, request.headers.get("content-type"))

    def set_header(self, response: StreamingResponse, name: str, value: str | list[str]) -> None:
        del response.headers[name]
        if isinstance(value, list):
            for item in value:
                response.headers.append(name, item)
        else:
            response.headers[name] = value

    def set_status(self, response: StreamingResponse, code: int) -> None:
        response.status_code = code

    async def send(
        self,
        request: Request,
        response: StreamingResponse,
        body: str | bytes | AsyncIterator[bytes],
    ) -> None:
        if isinstance(body, str):
            body = body.encode("utf-8")
        if isinstance(body, bytes):
            response.body_iterator = _single(body)
        else:
            response.body_iterator = body

    def attach_context(self, request: Request, context: AuthContext) -> None:
        request.state.auth = context
        request.state.session = context.session
        setattr(request.state, context.property_name, context.user)

    def get_context(self, request: Request) -> AuthContext | None:
        return getattr(request.state, "auth", None)
