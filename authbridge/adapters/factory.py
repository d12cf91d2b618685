"""
Runtime selection.

Integrations tag the application with the runtime they installed
(`RuntimeHost.attach`). The factory looks the tag up in its registry; it
never guesses from class names, which don't survive bundling or
subclassing.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable

from authbridge.adapters.base import HttpAdapter
from authbridge.errors import RuntimeNotInitializedError, UnsupportedRuntimeError

logger = logging.getLogger(__name__)


class RuntimeKind(str, Enum):
    """Supported native HTTP runtimes."""

    STARLETTE = "starlette"
    AIOHTTP = "aiohttp"


class RuntimeHost:
    """
    Holds the discriminator of the runtime serving the app.

    Empty until an integration attaches to an application.
    """

    def __init__(self, kind: RuntimeKind | str | None = None):
        self.kind = kind

    def attach(self, kind: RuntimeKind | str) -> None:
        self.kind = kind

    @property
    def is_attached(self) -> bool:
        return self.kind is not None


def _starlette_adapter() -> type[HttpAdapter]:
    from authbridge.adapters.starlette import StarletteAdapter
    return StarletteAdapter


def _aiohttp_adapter() -> type[HttpAdapter]:
    from authbridge.adapters.aiohttp import AiohttpAdapter
    return AiohttpAdapter


class AdapterFactory:
    """
    Creates the adapter matching the attached runtime.

    Runtime packages are imported only when their adapter is requested,
    so an aiohttp app doesn't need Starlette installed and vice versa.
    """

    _registry: dict[str, type[HttpAdapter] | Callable[[], type[HttpAdapter]]] = {
        RuntimeKind.STARLETTE.value: _starlette_adapter,
        RuntimeKind.AIOHTTP.value: _aiohttp_adapter,
    }

    @classmethod
    def register(cls, kind: RuntimeKind | str, adapter_cls: type[HttpAdapter]) -> None:
        """Register (or replace) the adapter class for a runtime tag."""
        cls._registry[_tag(kind)] = adapter_cls

    @classmethod
    def create(cls, host: RuntimeHost | None) -> HttpAdapter:
        if host is None or not host.is_attached:
            raise RuntimeNotInitializedError()

        tag = _tag(host.kind)
        entry = cls._registry.get(tag)
        if entry is None:
            raise UnsupportedRuntimeError(tag)

        adapter_cls = entry if isinstance(entry, type) else entry()
        logger.debug(f"Using {adapter_cls.__name__} for runtime '{tag}'")
        return adapter_cls()


def _tag(kind: RuntimeKind | str | None) -> str:
    if isinstance(kind, RuntimeKind):
        return kind.value
    return str(kind)


class AdapterCache:
    """
    Lazily creates the adapter once and reuses it.

    Safe to share between requests: adapters carry no per-request state.
    """

    def __init__(self, host: RuntimeHost | None):
        self.host = host
        self._adapter: HttpAdapter | None = None

    def get(self) -> HttpAdapter:
        if self._adapter is None:
            self._adapter = AdapterFactory.create(self.host)
        return self._adapter
