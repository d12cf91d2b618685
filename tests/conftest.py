"""
Shared fixtures: a fake auth engine and a fake runtime adapter.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator
from urllib.parse import parse_qs

import httpx
import pytest

from authbridge.adapters.base import HttpAdapter
from authbridge.adapters.factory import AdapterCache, AdapterFactory, RuntimeHost
from authbridge.config import AuthOptions
from authbridge.session import AuthContext


BASE_PATH = "/api/auth"

SESSION = {
    "user": {
        "name": "Test User",
        "email": "test@example.com",
        "image": None,
        "roles": ["admin"],
    },
    "expires": "2030-01-01T00:00:00.000Z",
    "idToken": "id-token-123",
}

VALID_COOKIE = "session-token=valid"

LATIN1_BODY = "caf\u00e9".encode("latin-1")

# 64 chunks of 4 KiB, each with a distinct byte value
STREAM_CHUNKS = [bytes([i]) * 4096 for i in range(64)]


# =============================================================================
# Fake engine
# =============================================================================


class FakeEngine:
    """
    Minimal stand-in for the auth engine.

    - GET  {base}/session              session JSON for a valid cookie, else null
    - POST {base}/callback/credentials test/password signs in (two cookies)
    - POST {base}/signout              clears the cookie
    - GET  {base}/stream               streamed binary body
    - GET  {base}/legacy               latin-1 text body
    """

    def __init__(self, base_path: str = BASE_PATH):
        self.base_path = base_path
        self.calls: list[httpx.Request] = []
        self.seen_options: list[AuthOptions] = []
        self.error: Exception | None = None

    async def __call__(self, request: httpx.Request, options: AuthOptions) -> httpx.Response:
        self.calls.append(request)
        self.seen_options.append(options)
        if self.error:
            raise self.error

        action = request.url.path[len(self.base_path):].strip("/")

        if action == "session" and request.method == "GET":
            return self.session(request)
        if action == "callback/credentials" and request.method == "POST":
            return await self.credentials(request)
        if action == "signout" and request.method == "POST":
            return httpx.Response(
                302,
                headers=[
                    ("location", "/"),
                    ("set-cookie", "session-token=; Path=/; Max-Age=0"),
                ],
            )
        if action == "legacy":
            return httpx.Response(
                200,
                headers={"content-type": "text/plain; charset=latin-1"},
                content=LATIN1_BODY,
            )
        if action == "stream":
            return httpx.Response(
                200,
                headers={"content-type": "application/octet-stream"},
                content=stream_chunks(),
            )
        return httpx.Response(400, text="Bad request")

    def session(self, request: httpx.Request) -> httpx.Response:
        if VALID_COOKIE in request.headers.get("cookie", ""):
            return httpx.Response(200, json=SESSION)
        return httpx.Response(200, content=b"null", headers={"content-type": "application/json"})

    async def credentials(self, request: httpx.Request) -> httpx.Response:
        await request.aread()
        form = parse_qs(request.content.decode())
        if form.get("username") == ["test"] and form.get("password") == ["password"]:
            return httpx.Response(
                302,
                headers=[
                    ("location", "/"),
                    ("set-cookie", f"{VALID_COOKIE}; Path=/; HttpOnly"),
                    ("set-cookie", "csrf=a,b; Path=/"),
                ],
            )
        return httpx.Response(302, headers={"location": f"{self.base_path}/signin?error=CredentialsSignin"})


async def stream_chunks() -> AsyncIterator[bytes]:
    for chunk in STREAM_CHUNKS:
        yield chunk


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def options():
    return AuthOptions(
        providers=[{"id": "credentials", "type": "credentials"}],
        secret="a_very_secure_secret_for_testing",
        base_path=BASE_PATH,
    )


# =============================================================================
# Fake runtime
# =============================================================================


@dataclass
class FakeRequest:
    protocol: str = "https"
    host: str = "example.com"
    url: str = "/"
    method: str = "GET"
    headers: dict[str, Any] = field(default_factory=dict)
    body: Any = None
    state: dict[str, Any] = field(default_factory=dict)


@dataclass
class FakeResponse:
    status: int | None = None
    headers: dict[str, Any] = field(default_factory=dict)
    header_calls: list[tuple[str, Any]] = field(default_factory=list)
    body: Any = None
    chunks: list[bytes] = field(default_factory=list)
    fail_on_header: bool = False


class FakeAdapter(HttpAdapter[FakeRequest, FakeResponse]):
    """Records everything; reads plain attributes off FakeRequest."""

    def get_protocol(self, request):
        return request.protocol

    def get_host(self, request):
        return request.host

    def get_url(self, request):
        return request.url

    def get_method(self, request):
        return request.method

    def get_headers(self, request):
        return request.headers

    def get_cookie(self, request):
        return request.headers.get("cookie")

    async def get_body(self, request):
        return request.body

    def set_header(self, response, name, value):
        if response.fail_on_header:
            raise RuntimeError("tripwire-write-fail")
        response.header_calls.append((name, value))
        response.headers[name] = value

    def set_status(self, response, code):
        response.status = code

    async def send(self, request, response, body):
        if isinstance(body, (str, bytes)):
            response.body = body
            return
        async for chunk in body:
            response.chunks.append(chunk)

    def attach_context(self, request, context: AuthContext):
        request.state["auth"] = context
        request.state["session"] = context.session
        request.state[context.property_name] = context.user

    def get_context(self, request):
        return request.state.get("auth")


@pytest.fixture
def fake_host():
    """A runtime host tagged 'fake', backed by FakeAdapter."""
    AdapterFactory.register("fake", FakeAdapter)
    yield RuntimeHost("fake")
    AdapterFactory._registry.pop("fake", None)


@pytest.fixture
def adapters(fake_host):
    return AdapterCache(fake_host)


@pytest.fixture
def adapter():
    return FakeAdapter()
