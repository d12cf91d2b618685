"""
Translation between native runtime messages and canonical httpx messages.

Inbound:  native request  -> httpx.Request   (what the engine consumes)
Outbound: httpx.Response  -> native response (what the client receives)

Both directions go through an `HttpAdapter`, so nothing here knows which
runtime is serving the request.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, AsyncIterator
from urllib.parse import urlencode

import httpx

from authbridge.adapters.base import (
    FORM_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    HttpAdapter,
    media_type,
)

logger = logging.getLogger(__name__)

BODYLESS_METHODS = ("GET", "HEAD")

# Recomputed by httpx for the re-encoded body.
_BODY_FRAMING_HEADERS = ("content-length", "transfer-encoding")

# Describe the encoded body, not the one httpx decoded.
_DECODED_BODY_HEADERS = ("content-encoding", "content-length")


# =============================================================================
# Inbound
# =============================================================================


def canonical_headers(raw: Mapping[str, Any]) -> httpx.Headers:
    """
    Build canonical headers from a native header dict.

    List values append each non-empty element; empty or missing values
    drop the header entirely.
    """
    items: list[tuple[str, str]] = []
    for name, value in raw.items():
        if name.lower() in _BODY_FRAMING_HEADERS:
            continue
        if isinstance(value, (list, tuple)):
            items.extend((name, str(v)) for v in value if v)
        elif value:
            items.append((name, str(value)))
    return httpx.Headers(items)


def _form_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_form_value(v) for v in value]
    return value


def form_encode(data: Mapping[str, Any]) -> str:
    """
    Form-encode with repeated keys for sequences.

        {"a": ["1", "2"], "b": "x"} -> "a=1&a=2&b=x"
    """
    return urlencode({key: _form_value(value) for key, value in data.items()}, doseq=True)


def encode_body(body: Any, content_type: str | None) -> bytes | str | None:
    """Encode a parsed native body for the canonical request."""
    if body is None:
        return None
    if isinstance(body, (bytes, bytearray, memoryview)):
        return bytes(body)
    if isinstance(body, str):
        return body

    kind = media_type(content_type)
    if kind == FORM_CONTENT_TYPE and isinstance(body, Mapping):
        return form_encode(body)
    if kind == JSON_CONTENT_TYPE:
        return json.dumps(body, separators=(",", ":"))
    if isinstance(body, Mapping):
        # Form posts that arrived without an explicit content type.
        return form_encode(body)
    return None


async def to_canonical_request(request: Any, adapter: HttpAdapter) -> httpx.Request:
    """
    Convert a native request into an httpx.Request.

    GET and HEAD never carry a body, whatever the runtime parsed.
    """
    protocol = adapter.get_protocol(request)
    host = adapter.get_host(request)
    url = f"{protocol}://{host}{adapter.get_url(request)}"

    headers = canonical_headers(adapter.get_headers(request))
    method = adapter.get_method(request)

    content: bytes | str | None = None
    if method.upper() not in BODYLESS_METHODS:
        body = await adapter.get_body(request)
        content = encode_body(body, headers.get("content-type"))

    return httpx.Request(method, url, headers=headers, content=content)


# =============================================================================
# Outbound
# =============================================================================


def group_response_headers(headers: httpx.Headers) -> dict[str, str | list[str]]:
    """
    Collapse canonical response headers for the native response.

    Every set-cookie line is kept, in order, as a list (cookie values may
    contain commas, so they are never joined). Other headers are
    last-value-wins.
    """
    grouped: dict[str, str | list[str]] = {}
    for name, value in headers.multi_items():
        key = name.lower()
        if key == "set-cookie":
            cookies = grouped.setdefault(key, [])
            cookies.append(value)
        else:
            grouped[name] = value
    return grouped


async def relay_stream(canonical: httpx.Response) -> AsyncIterator[bytes]:
    """
    Yield the canonical body chunk by chunk as it arrives.

    The canonical response is closed when the stream ends or fails;
    failures propagate to whoever is consuming the chunks.
    """
    if not isinstance(canonical.stream, httpx.AsyncByteStream):
        try:
            for chunk in canonical.iter_raw():
                if chunk:
                    yield bytes(chunk)
        finally:
            canonical.close()
        return

    try:
        async for chunk in canonical.aiter_raw():
            if chunk:
                yield bytes(chunk)
    finally:
        await canonical.aclose()


async def write_native_response(
    canonical: httpx.Response,
    request: Any,
    response: Any,
    adapter: HttpAdapter,
) -> None:
    """
    Write status, headers and body of an httpx.Response onto a native response.

    Headers and status go first. A body that was already read is sent as
    the exact bytes httpx holds; if httpx decoded it, the encoding and
    length headers of the compressed body are not forwarded. Errors from
    the runtime (e.g. headers already sent) are not caught here.
    """
    try:
        body: bytes | None = canonical.content
    except httpx.ResponseNotRead:
        body = None

    skipped: tuple[str, ...] = ()
    if body is not None and canonical.headers.get("content-encoding"):
        skipped = _DECODED_BODY_HEADERS

    for name, value in group_response_headers(canonical.headers).items():
        if name.lower() in skipped:
            continue
        adapter.set_header(response, name, value)

    adapter.set_status(response, canonical.status_code)

    if body is None:
        logger.debug(f"Streaming {canonical.status_code} response body")
        await adapter.send(request, response, relay_stream(canonical))
        return

    await adapter.send(request, response, body)
