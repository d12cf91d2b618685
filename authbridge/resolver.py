"""
Session resolution.

Asks the engine "who is this?" by synthesizing a GET to its session
endpoint with the caller's cookies, the same request a browser would make.
A failed or unparseable answer means "no session"; a broken engine call is
reported as `SessionResolutionError` for the guard to decide on.

Nothing is cached across requests: every call hits the engine.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Awaitable, Callable, Union

import httpx

from authbridge.adapters.factory import AdapterCache
from authbridge.config import AuthOptions
from authbridge.errors import ConfigurationError, SessionResolutionError

logger = logging.getLogger(__name__)

# The authentication engine: canonical request + options -> canonical response.
Engine = Callable[
    [httpx.Request, AuthOptions],
    Union[httpx.Response, Awaitable[httpx.Response]],
]


async def call_engine(engine: Engine, request: httpx.Request, options: AuthOptions) -> httpx.Response:
    """Call the engine; sync and async engines are both accepted."""
    result = engine(request, options)
    if inspect.isawaitable(result):
        return await result
    return result


def validate_options(options: AuthOptions) -> None:
    """
    Check the options can resolve a session at all.

    Raises ConfigurationError; this is a setup mistake, not a per-request
    condition.
    """
    if not options.providers:
        raise ConfigurationError("No authentication providers configured")
    if not options.secret and options.environment != "development":
        raise ConfigurationError("AUTH_SECRET is required outside development")


def _first(value: str | list[str] | None) -> str | None:
    """First value of a possibly repeated / comma-joined proxy header."""
    if isinstance(value, list):
        value = value[0] if value else None
    if not value:
        return None
    return value.split(",", 1)[0].strip() or None


def create_action_url(action: str, protocol: str, host: str, options: AuthOptions) -> str:
    """
    URL of an engine action, e.g. https://example.com/auth/session.

    A configured `url` wins over the request's own host and protocol.
    """
    if options.url:
        origin = options.url
    else:
        protocol = protocol.rstrip(":") or "https"
        origin = f"{protocol}://{host}"
    origin = origin.rstrip("/")

    base_path = (options.base_path or "").strip("/")
    if base_path:
        return f"{origin}/{base_path}/{action}"
    return f"{origin}/{action}"


class SessionResolver:
    """
    Resolves the engine's raw session for a native request.

    Usage:
        resolver = SessionResolver(engine, AdapterCache(host))
        raw = await resolver.resolve(request, options)   # dict | None
    """

    def __init__(self, engine: Engine, adapters: AdapterCache):
        self.engine = engine
        self.adapters = adapters

    def build_session_request(self, request: Any, options: AuthOptions) -> httpx.Request:
        """The synthetic 'get current session' request."""
        adapter = self.adapters.get()
        protocol = adapter.get_protocol(request)
        host = adapter.get_host(request)
        native_headers = adapter.get_headers(request)

        forwarded_host = _first(native_headers.get("x-forwarded-host")) or host
        forwarded_proto = _first(native_headers.get("x-forwarded-proto")) or protocol

        headers = {
            "host": host,
            "x-forwarded-host": forwarded_host,
            "x-forwarded-proto": forwarded_proto,
        }
        cookie = adapter.get_cookie(request)
        if cookie:
            headers["cookie"] = cookie

        url = create_action_url("session", forwarded_proto, forwarded_host, options)
        return httpx.Request("GET", url, headers=headers)

    async def resolve(self, request: Any, options: AuthOptions) -> dict[str, Any] | None:
        """
        Return the raw session payload, or None when there is no session.

        Raises:
            ConfigurationError: options can't resolve sessions at all
            SessionResolutionError: the engine call itself failed
        """
        validate_options(options)
        session_request = self.build_session_request(request, options)

        try:
            response = await call_engine(self.engine, session_request, options)
            if not response.is_success:
                logger.debug(f"Session endpoint answered {response.status_code}")
                await response.aclose()
                return None
            await response.aread()
        except Exception as e:
            raise SessionResolutionError(str(e) or e.__class__.__name__) from e

        try:
            payload = response.json()
        except ValueError:
            return None

        if not isinstance(payload, dict):
            return None
        return payload
