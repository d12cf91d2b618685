"""
HTTP runtime adapters.

One capability set per native runtime, chosen once by an explicit tag.
"""

from authbridge.adapters.base import HttpAdapter
from authbridge.adapters.factory import (
    AdapterCache,
    AdapterFactory,
    RuntimeHost,
    RuntimeKind,
)

__all__ = [
    "HttpAdapter",
    "AdapterCache",
    "AdapterFactory",
    "RuntimeHost",
    "RuntimeKind",
]
