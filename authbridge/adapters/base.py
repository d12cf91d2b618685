"""
Runtime adapter interface.

Each supported HTTP runtime gets one `HttpAdapter` implementation that
exposes the same primitive facts about a native request and the same
mutators for a native response. Translators and guards only ever talk to
this interface, never to Starlette or aiohttp objects directly.

Adapters hold no per-request state, so one instance is shared for the
lifetime of the process.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, AsyncIterator, Generic, TypeVar
from urllib.parse import parse_qsl

if TYPE_CHECKING:
    from authbridge.session import AuthContext

RequestT = TypeVar("RequestT")
ResponseT = TypeVar("ResponseT")

DEFAULT_HOST = "localhost"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
JSON_CONTENT_TYPE = "application/json"


class HttpAdapter(ABC, Generic[RequestT, ResponseT]):
    """
    Capability set for one native HTTP runtime.

    Request side: protocol, host, url, method, headers, cookie, body.
    Response side: set_header, set_status, send.
    """

    # =========================================================================
    # Request accessors
    # =========================================================================

    @abstractmethod
    def get_protocol(self, request: RequestT) -> str:
        """'http' or 'https'."""
        pass

    @abstractmethod
    def get_host(self, request: RequestT) -> str:
        """Host header value, or 'localhost' when absent."""
        pass

    @abstractmethod
    def get_url(self, request: RequestT) -> str:
        """Raw path and query string as received."""
        pass

    @abstractmethod
    def get_method(self, request: RequestT) -> str:
        pass

    @abstractmethod
    def get_headers(self, request: RequestT) -> dict[str, str | list[str] | None]:
        """All headers; repeated headers come back as a list."""
        pass

    @abstractmethod
    def get_cookie(self, request: RequestT) -> str | None:
        """The raw cookie header, if any."""
        pass

    @abstractmethod
    async def get_body(self, request: RequestT) -> Any:
        """
        The parsed request body.

        - form submissions: dict, repeated keys map to lists
        - JSON: the decoded value
        - anything else: raw bytes
        - empty body: None
        """
        pass

    # =========================================================================
    # Response mutators
    # =========================================================================

    @abstractmethod
    def set_header(self, response: ResponseT, name: str, value: str | list[str]) -> None:
        """Set one header; a list emits one header line per element."""
        pass

    @abstractmethod
    def set_status(self, response: ResponseT, code: int) -> None:
        pass

    @abstractmethod
    async def send(
        self,
        request: RequestT,
        response: ResponseT,
        body: str | bytes | AsyncIterator[bytes],
    ) -> None:
        """Send the body: one payload, or an async stream forwarded chunk by chunk."""
        pass

    # =========================================================================
    # Request context
    # =========================================================================

    @abstractmethod
    def attach_context(self, request: RequestT, context: AuthContext) -> None:
        """Store the auth context in the request's own scoped storage."""
        pass

    @abstractmethod
    def get_context(self, request: RequestT) -> AuthContext | None:
        pass


def group_values(items: list[tuple[str, str]], lower: bool = True) -> dict[str, str | list[str]]:
    """
    Collapse (name, value) pairs into a dict.

    A name seen more than once maps to a list. Header names are
    lowercased; form field names are not (lower=False).
    """
    grouped: dict[str, str | list[str]] = {}
    for name, value in items:
        key = name.lower() if lower else name
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            grouped[key] = [existing, value]
    return grouped


def media_type(content_type: str | None) -> str:
    """'application/json; charset=utf-8' -> 'application/json'."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def parse_body(raw: bytes, content_type: str | None) -> Any:
    """
    Parse a raw body the way the runtime's body parsers would.

    Form and JSON bodies are decoded; anything else (including JSON that
    doesn't parse) stays as raw bytes.
    """
    if not raw:
        return None

    kind = media_type(content_type)
    if kind == FORM_CONTENT_TYPE:
        pairs = parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
        return group_values(pairs, lower=False)
    if kind == JSON_CONTENT_TYPE:
        try:
            return json.loads(raw)
        except ValueError:
            return raw
    return raw
