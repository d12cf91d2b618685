"""
Route guards.

`AuthGuard` decides per route whether a session is required:
- public routes resolve the session if there is one and always pass
- protected routes (the default) raise `UnauthorizedError` without a user

`RolesGuard` runs after it and checks the user's roles against the
route's required roles.

Route metadata is an explicit `RouteAuth` record attached when the route
is registered; nothing is read by reflection.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from authbridge.adapters.base import HttpAdapter
from authbridge.adapters.factory import AdapterCache, RuntimeHost
from authbridge.config import AuthOptions, default_options, merge_options, set_env_defaults
from authbridge.errors import ForbiddenError, SessionResolutionError, UnauthorizedError
from authbridge.resolver import Engine, SessionResolver
from authbridge.session import AuthContext, AuthSession, AuthUser

logger = logging.getLogger(__name__)

NO_OPTIONS_ERROR = "Auth options must be configured to use AuthGuard"
NO_USER_ERROR = "No user found in session"


@dataclass(frozen=True)
class RouteAuth:
    """
    Per-route auth metadata.

    Usage:
        RouteAuth()                                # protected
        RouteAuth(public=True)                     # anyone
        RouteAuth(required_roles=("admin",))       # protected + role
    """

    public: bool = False
    required_roles: tuple[str, ...] = ()


PUBLIC = RouteAuth(public=True)
PROTECTED = RouteAuth()


# =============================================================================
# Auth guard
# =============================================================================


class AuthGuard:
    """
    Resolves the session for a request and attaches it.

    Subclasses can override `get_authenticate_options` to supply per-call
    options; they win over the module options, which win over defaults.
    """

    def __init__(
        self,
        options: AuthOptions | None,
        engine: Engine,
        host: RuntimeHost | None = None,
        adapters: AdapterCache | None = None,
    ):
        if options is None:
            logger.error(NO_OPTIONS_ERROR)
        self.options = options
        self.adapters = adapters or AdapterCache(host)
        self.resolver = SessionResolver(engine, self.adapters)

    @property
    def adapter(self) -> HttpAdapter:
        return self.adapters.get()

    async def can_activate(self, request: Any, route: RouteAuth = PROTECTED) -> bool:
        """
        Run the guard for one request.

        Returns True when the request may proceed; protected routes
        without a user raise UnauthorizedError instead of returning False.
        """
        if route.public:
            return await self.handle_public_route(request)
        return await self.handle_protected_route(request)

    def get_authenticate_options(self, request: Any) -> AuthOptions | dict[str, Any] | None:
        """Hook for per-request options. May be async."""
        return None

    async def merged_options(self, request: Any) -> AuthOptions:
        override = self.get_authenticate_options(request)
        if inspect.isawaitable(override):
            override = await override
        merged = merge_options(default_options(), self.options, override)
        return set_env_defaults(merged)

    async def handle_public_route(self, request: Any) -> bool:
        """Attach whatever session exists; never raises for a missing one."""
        options = await self.merged_options(request)
        session, _ = await self.get_session_or_error(request, options)

        context = AuthContext.from_session(session, property_name=options.property)
        self.adapter.attach_context(request, context)
        return True

    async def handle_protected_route(self, request: Any) -> bool:
        """Require a user; attach the context only when there is one."""
        options = await self.merged_options(request)
        session, error = await self.get_session_or_error(request, options)

        user = self.handle_request(error, session.user if session else None)

        context = AuthContext(session=session, user=user, property_name=options.property)
        self.adapter.attach_context(request, context)
        return True

    def handle_request(self, error: Exception | None, user: AuthUser | None) -> AuthUser:
        """Map a resolution outcome to a user or an UnauthorizedError."""
        if error:
            logger.error(f"Authentication error: {error}")
        if isinstance(error, UnauthorizedError):
            raise error
        if error:
            raise UnauthorizedError(str(error)) from error
        if user is None:
            raise UnauthorizedError(NO_USER_ERROR)
        return user

    async def get_session_or_error(
        self,
        request: Any,
        options: AuthOptions,
    ) -> tuple[AuthSession | None, Exception | None]:
        """
        Resolve and project the session, returning the failure instead of raising.

        Configuration errors are not captured; they surface immediately.
        """
        try:
            raw = await self.resolver.resolve(request, options)
        except SessionResolutionError as e:
            return None, e

        try:
            return AuthSession.from_core(raw), None
        except ValidationError as e:
            return None, SessionResolutionError(f"Malformed session: {e}")


# =============================================================================
# Roles guard
# =============================================================================


def has_required_roles(user_roles: list[str], required_roles: tuple[str, ...] | list[str]) -> bool:
    """True when nothing is required or the user has at least one required role."""
    if not required_roles:
        return True
    return any(role in user_roles for role in required_roles)


class RolesGuard:
    """
    Checks the roles of the user attached by `AuthGuard`.

    The user's roles come from the `roles` extension field of the session
    user, as set by the engine's session callback.
    """

    def __init__(self, adapters: AdapterCache):
        self.adapters = adapters

    def can_activate(self, request: Any, route: RouteAuth = PROTECTED) -> bool:
        if not route.required_roles:
            return True
        context = self.adapters.get().get_context(request)
        user_roles = context.roles if context else []
        return has_required_roles(user_roles, route.required_roles)

    def check(self, request: Any, route: RouteAuth = PROTECTED) -> None:
        """Raise ForbiddenError when `can_activate` says no."""
        if not self.can_activate(request, route):
            raise ForbiddenError()
