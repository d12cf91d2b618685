"""
Auth route handling.

Requests under the engine's base path (sign-in, callbacks, sign-out,
session, ...) are handed to the engine as-is and its response is written
back onto the native response.
"""

from __future__ import annotations

import logging
from typing import Any

from authbridge.adapters.base import HttpAdapter
from authbridge.adapters.factory import AdapterCache, RuntimeHost
from authbridge.config import AuthOptions, default_options, merge_options, set_env_defaults
from authbridge.http import to_canonical_request, write_native_response
from authbridge.resolver import Engine, call_engine

logger = logging.getLogger(__name__)


class AuthMiddleware:
    """
    Runs one auth route request through the engine.

    Errors are not swallowed: a failed engine call or a failed write
    reaches the runtime's error handling. If the failure happened after
    the response started, the runtime must not try to write it again.
    """

    def __init__(
        self,
        options: AuthOptions,
        engine: Engine,
        host: RuntimeHost | None = None,
        adapters: AdapterCache | None = None,
    ):
        self.options = options
        self.engine = engine
        self.adapters = adapters or AdapterCache(host)

    @property
    def adapter(self) -> HttpAdapter:
        return self.adapters.get()

    async def handle(self, request: Any, response: Any) -> None:
        adapter = self.adapter
        options = set_env_defaults(merge_options(default_options(), self.options))

        canonical_request = await to_canonical_request(request, adapter)
        logger.debug(f"Engine call: {canonical_request.method} {canonical_request.url.path}")

        canonical_response = await call_engine(self.engine, canonical_request, options)
        await write_native_response(canonical_response, request, response, adapter)
