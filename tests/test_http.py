"""
Tests for native <-> canonical HTTP translation.
"""

import gzip
import json

import httpx
import pytest

from authbridge.http import (
    canonical_headers,
    encode_body,
    form_encode,
    group_response_headers,
    to_canonical_request,
    write_native_response,
)
from tests.conftest import STREAM_CHUNKS, FakeRequest, FakeResponse, stream_chunks


# =============================================================================
# Inbound
# =============================================================================


class TestCanonicalHeaders:
    def test_filters_empty_and_missing_values(self):
        headers = canonical_headers({
            "content-type": "application/json",
            "x-array": ["first", "", "second"],
            "x-single": None,
            "x-empty": "",
        })

        assert headers.get("content-type") == "application/json"
        assert headers.get("x-array") == "first, second"
        assert headers.get_list("x-array") == ["first", "second"]
        assert "x-single" not in headers
        assert "x-empty" not in headers

    def test_names_are_case_insensitive(self):
        headers = canonical_headers({"X-Custom": "value"})
        assert headers.get("x-custom") == "value"

    def test_content_length_is_not_forwarded(self):
        headers = canonical_headers({"content-length": "99", "transfer-encoding": "chunked"})
        assert "content-length" not in headers
        assert "transfer-encoding" not in headers


class TestToCanonicalRequest:
    @pytest.mark.asyncio
    async def test_get_request_url_and_headers(self, adapter):
        request = FakeRequest(
            protocol="https",
            host="example.com",
            url="/test?x=1",
            method="GET",
            headers={
                "content-type": "application/json",
                "x-array": ["first", "", "second"],
                "x-single": None,
            },
        )

        canonical = await to_canonical_request(request, adapter)

        assert str(canonical.url) == "https://example.com/test?x=1"
        assert canonical.method == "GET"
        assert canonical.headers.get("x-array") == "first, second"
        assert "x-single" not in canonical.headers
        assert canonical.content == b""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", ["GET", "HEAD", "get", "head"])
    async def test_get_and_head_never_carry_a_body(self, adapter, method):
        request = FakeRequest(
            method=method,
            headers={"content-type": "application/json"},
            body={"ignored": True},
        )

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b""

    @pytest.mark.asyncio
    async def test_json_body(self, adapter):
        body = {"foo": "bar", "baz": 2}
        request = FakeRequest(
            method="POST",
            url="/json",
            headers={"content-type": "application/json"},
            body=body,
        )

        canonical = await to_canonical_request(request, adapter)

        assert canonical.method == "POST"
        assert json.loads(canonical.content) == body

    @pytest.mark.asyncio
    async def test_form_body(self, adapter):
        request = FakeRequest(
            method="PUT",
            headers={"content-type": "application/x-www-form-urlencoded"},
            body={"alpha": "one", "beta": "two"},
        )

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b"alpha=one&beta=two"
        assert canonical.headers["content-length"] == str(len(b"alpha=one&beta=two"))

    @pytest.mark.asyncio
    async def test_form_arrays_use_repeated_keys(self, adapter):
        request = FakeRequest(
            method="POST",
            headers={"content-type": "application/x-www-form-urlencoded; charset=utf-8"},
            body={"a": ["1", "2"], "b": "x"},
        )

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b"a=1&a=2&b=x"

    @pytest.mark.asyncio
    async def test_string_body_passes_through(self, adapter):
        request = FakeRequest(
            method="PATCH",
            headers={"content-type": "text/plain"},
            body="plain text body",
        )

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b"plain text body"

    @pytest.mark.asyncio
    async def test_binary_body_passes_through(self, adapter):
        payload = bytes(range(256))
        request = FakeRequest(method="DELETE", protocol="http", body=payload)

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == payload

    @pytest.mark.asyncio
    async def test_object_body_without_content_type_is_form_encoded(self, adapter):
        request = FakeRequest(method="POST", body={"csrfToken": "abc", "callbackUrl": "/"})

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b"csrfToken=abc&callbackUrl=%2F"

    @pytest.mark.asyncio
    async def test_missing_body(self, adapter):
        request = FakeRequest(method="POST", body=None)

        canonical = await to_canonical_request(request, adapter)

        assert canonical.content == b""


class TestEncodeBody:
    def test_none_values_encode_as_empty(self):
        assert form_encode({"a": None, "b": True}) == "a=&b=true"

    def test_json_is_compact(self):
        assert encode_body({"a": [1, 2]}, "application/json") == '{"a":[1,2]}'

    def test_scalar_without_content_type_has_no_body(self):
        assert encode_body(42, None) is None


# =============================================================================
# Outbound
# =============================================================================


class TestGroupResponseHeaders:
    def test_set_cookie_lines_stay_separate(self):
        headers = httpx.Headers([
            ("Content-Type", "text/plain"),
            ("Set-Cookie", "A=1; Path=/; HttpOnly"),
            ("Set-Cookie", "B=2,3; Path=/; Secure"),
        ])

        grouped = group_response_headers(headers)

        assert grouped["content-type"] == "text/plain"
        assert grouped["set-cookie"] == ["A=1; Path=/; HttpOnly", "B=2,3; Path=/; Secure"]

    def test_other_headers_last_value_wins(self):
        headers = httpx.Headers([("x-dup", "one"), ("x-dup", "two")])
        assert group_response_headers(headers) == {"x-dup": "two"}


class TestWriteNativeResponse:
    @pytest.mark.asyncio
    async def test_status_headers_and_text_body(self, adapter):
        canonical = httpx.Response(
            201,
            headers=[
                ("Content-Type", "text/plain"),
                ("Set-Cookie", "A=1; Path=/; HttpOnly"),
                ("Set-Cookie", "B=2; Path=/; Secure"),
            ],
            content=b"OK",
        )
        response = FakeResponse()

        await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.status == 201
        assert response.body == b"OK"
        assert response.headers["content-type"] == "text/plain"
        assert response.headers["set-cookie"] == ["A=1; Path=/; HttpOnly", "B=2; Path=/; Secure"]
        assert [name for name, _ in response.header_calls].count("set-cookie") == 1

    @pytest.mark.asyncio
    async def test_stream_is_relayed_chunk_by_chunk(self, adapter):
        canonical = httpx.Response(200, content=stream_chunks())
        response = FakeResponse()

        await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.chunks == STREAM_CHUNKS
        assert b"".join(response.chunks) == b"".join(STREAM_CHUNKS)
        assert canonical.is_closed

    @pytest.mark.asyncio
    async def test_stream_error_propagates(self, adapter):
        async def broken():
            yield b"partial"
            raise ConnectionResetError("upstream went away")

        canonical = httpx.Response(200, content=broken())
        response = FakeResponse()

        with pytest.raises(ConnectionResetError):
            await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.chunks == [b"partial"]

    @pytest.mark.asyncio
    async def test_header_write_failure_propagates(self, adapter):
        canonical = httpx.Response(302, headers={"location": "/"})
        response = FakeResponse(fail_on_header=True)

        with pytest.raises(RuntimeError, match="tripwire-write-fail"):
            await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.status is None
        assert response.body is None

    @pytest.mark.asyncio
    async def test_non_utf8_body_is_sent_byte_for_byte(self, adapter):
        canonical = httpx.Response(
            200,
            headers={"content-type": "text/plain; charset=latin-1"},
            content="café".encode("latin-1"),
        )
        response = FakeResponse()

        await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.body == b"caf\xe9"
        assert response.headers["content-length"] == "4"

    @pytest.mark.asyncio
    async def test_decoded_body_drops_encoding_headers(self, adapter):
        canonical = httpx.Response(
            200,
            headers={"content-type": "text/plain", "content-encoding": "gzip"},
            content=gzip.compress(b"hello world"),
        )
        response = FakeResponse()

        await write_native_response(canonical, FakeRequest(), response, adapter)

        assert response.body == b"hello world"
        assert "content-encoding" not in response.headers
        assert "content-length" not in response.headers
        assert response.headers["content-type"] == "text/plain"
