"""
Error taxonomy.

Configuration and runtime errors fail fast. Session resolution errors are
absorbed into "no session" by the guard. Unauthorized and forbidden are the
only errors meant to reach the host framework as HTTP responses.
"""

from __future__ import annotations


class AuthBridgeError(Exception):
    """Base class for all authbridge errors."""
    pass


class ConfigurationError(AuthBridgeError):
    """The merged options cannot be used to resolve a session."""
    pass


class UnsupportedRuntimeError(AuthBridgeError):
    """No adapter is registered for the attached HTTP runtime."""

    def __init__(self, kind: object):
        self.kind = kind
        super().__init__(f"Unsupported HTTP runtime: {kind}")


class RuntimeNotInitializedError(AuthBridgeError):
    """The adapter was requested before a runtime was attached."""

    def __init__(self, message: str = "No HTTP runtime found. Ensure the auth integration is installed on the app."):
        super().__init__(message)


class HeadersSentError(AuthBridgeError, RuntimeError):
    """A header or status was changed after the response started."""

    def __init__(self, message: str = "Cannot modify the response after headers have been sent"):
        super().__init__(message)


class SessionResolutionError(AuthBridgeError):
    """Calling the engine for the current session failed."""
    pass


class UnauthorizedError(AuthBridgeError):
    """A protected route was hit without a usable session."""

    status_code = 401

    def __init__(self, reason: str = "Unauthorized"):
        self.reason = reason
        super().__init__(reason)


class ForbiddenError(AuthBridgeError):
    """The user lacks every role the route requires."""

    status_code = 403

    def __init__(self, reason: str = "Forbidden resource"):
        self.reason = reason
        super().__init__(reason)
