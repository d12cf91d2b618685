"""
authbridge - framework-agnostic auth engine bridge for Starlette/FastAPI and aiohttp.

Design principles:
1. One canonical HTTP message shape (httpx.Request / httpx.Response)
2. One adapter per runtime, picked by an explicit tag
3. Public routes never fail on auth; protected routes fail with 401
4. No session is cached between requests
"""

from authbridge.adapters import (
    AdapterCache,
    AdapterFactory,
    HttpAdapter,
    RuntimeHost,
    RuntimeKind,
)
from authbridge.config import (
    AuthOptions,
    SessionOptions,
    Settings,
    default_options,
    get_settings,
    load_options,
    merge_options,
    set_env_defaults,
)
from authbridge.errors import (
    AuthBridgeError,
    ConfigurationError,
    ForbiddenError,
    HeadersSentError,
    RuntimeNotInitializedError,
    SessionResolutionError,
    UnauthorizedError,
    UnsupportedRuntimeError,
)
from authbridge.guards import PROTECTED, PUBLIC, AuthGuard, RolesGuard, RouteAuth
from authbridge.http import to_canonical_request, write_native_response
from authbridge.middleware import AuthMiddleware
from authbridge.resolver import Engine, SessionResolver, create_action_url
from authbridge.session import AuthContext, AuthSession, AuthUser

__all__ = [
    # Main interface
    "AuthGuard",
    "RolesGuard",
    "RouteAuth",
    "PUBLIC",
    "PROTECTED",
    "AuthMiddleware",
    "SessionResolver",
    "Engine",
    # Translation
    "to_canonical_request",
    "write_native_response",
    "create_action_url",
    # Adapters
    "HttpAdapter",
    "AdapterCache",
    "AdapterFactory",
    "RuntimeHost",
    "RuntimeKind",
    # Types
    "AuthContext",
    "AuthSession",
    "AuthUser",
    # Config
    "AuthOptions",
    "SessionOptions",
    "Settings",
    "default_options",
    "get_settings",
    "load_options",
    "merge_options",
    "set_env_defaults",
    # Errors
    "AuthBridgeError",
    "ConfigurationError",
    "ForbiddenError",
    "HeadersSentError",
    "RuntimeNotInitializedError",
    "SessionResolutionError",
    "UnauthorizedError",
    "UnsupportedRuntimeError",
]
