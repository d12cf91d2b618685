"""
Starlette / FastAPI integration.

Usage:
    auth = StarletteAuth(AuthOptions(providers=[...], secret=...), engine)
    app = FastAPI()
    auth.install(app)

    @app.get("/me")                                   # protected
    async def me(request: Request):
        return request.state.user

    @app.get("/admin")
    async def admin(ctx: AuthContext = Depends(auth.require_roles("admin"))):
        ...

    @app.get("/")
    async def home(ctx: AuthContext = Depends(auth.public())):
        return {"signed_in": ctx.is_authenticated}

    auth.mark("/docs", PUBLIC)

Every matched route except the auth routes is guarded, protected unless
it is marked otherwise. Marks come from the `public()` / `protected()` /
`require_roles()` dependencies, from `guard_endpoint(endpoint, route)` for
plain Starlette routes, or from `mark(endpoint_or_path, route)`.
"""

from __future__ import annotations

import functools
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import BaseRoute, Match
from starlette.types import ASGIApp, Receive, Scope, Send

from authbridge.adapters.factory import AdapterCache, RuntimeHost, RuntimeKind
from authbridge.config import AuthOptions
from authbridge.errors import ForbiddenError, UnauthorizedError
from authbridge.guards import NO_USER_ERROR, PROTECTED, PUBLIC, AuthGuard, RolesGuard, RouteAuth
from authbridge.middleware import AuthMiddleware
from authbridge.resolver import Engine
from authbridge.session import AuthContext, AuthSession, AuthUser

logger = logging.getLogger(__name__)

AUTH_ROUTE_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


async def _no_body() -> AsyncIterator[bytes]:
    # Placeholder until `send` installs the real body.
    for chunk in ():
        yield chunk


async def auth_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render UnauthorizedError / ForbiddenError as JSON."""
    status_code = getattr(exc, "status_code", 401)
    reason = getattr(exc, "reason", str(exc))
    return JSONResponse({"detail": reason}, status_code=status_code)


def _dependency_mark(dependant: Any) -> RouteAuth | None:
    """First RouteAuth carried by a FastAPI dependency tree."""
    for dependency in dependant.dependencies:
        mark = getattr(dependency.call, "route_auth", None)
        if mark is None:
            mark = _dependency_mark(dependency)
        if mark is not None:
            return mark
    return None


class GuardMiddleware:
    """
    ASGI middleware running the guards before a matched route is dispatched.

    Auth failures are rendered here; they never reach the app's handlers.
    """

    def __init__(self, app: ASGIApp, auth: StarletteAuth):
        self.app = app
        self.auth = auth

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        route_auth = self.auth.route_auth_for(scope)
        if route_auth is not None:
            request = Request(scope, receive)
            try:
                await self.auth.authorize(request, route_auth)
            except (UnauthorizedError, ForbiddenError) as e:
                response = await auth_error_handler(request, e)
                await response(scope, receive, send)
                return

        await self.app(scope, receive, send)


class StarletteAuth:
    """
    Wires the guards and the auth routes into a Starlette or FastAPI app.
    """

    def __init__(self, options: AuthOptions, engine: Engine, host: RuntimeHost | None = None):
        self.options = options
        self.host = host or RuntimeHost()
        self.adapters = AdapterCache(self.host)
        self.guard = AuthGuard(options, engine, adapters=self.adapters)
        self.roles_guard = RolesGuard(self.adapters)
        self.middleware = AuthMiddleware(options, engine, adapters=self.adapters)
        self._marks: dict[Any, RouteAuth] = {}
        self._app: Starlette | None = None

    @property
    def base_path(self) -> str:
        return "/" + self.options.base_path.strip("/")

    def install(self, app: Starlette) -> None:
        """Tag the runtime, mount the auth routes, guard every other route."""
        self.host.attach(RuntimeKind.STARLETTE)
        app.router.add_route(
            f"{self.base_path}/{{path:path}}",
            self.handle_auth_route,
            methods=AUTH_ROUTE_METHODS,
            include_in_schema=False,
        )
        app.add_middleware(GuardMiddleware, auth=self)
        app.add_exception_handler(UnauthorizedError, auth_error_handler)
        app.add_exception_handler(ForbiddenError, auth_error_handler)
        app.state.auth = self
        self._app = app
        logger.info(f"Auth routes mounted at {self.base_path}")

    async def handle_auth_route(self, request: Request) -> Response:
        response = StreamingResponse(_no_body())
        await self.middleware.handle(request, response)
        return response

    # =========================================================================
    # Route metadata
    # =========================================================================

    def mark(self, target: Callable[..., Any] | str, route_auth: RouteAuth) -> None:
        """Attach auth metadata to an endpoint or a route path."""
        self._marks[target] = route_auth

    def route_mark(self, route: BaseRoute) -> RouteAuth:
        """Auth metadata of a route; PROTECTED when it carries none."""
        endpoint = getattr(route, "endpoint", None)
        path = getattr(route, "path", None)
        for key in (endpoint, path):
            if key is not None and key in self._marks:
                return self._marks[key]

        mark = getattr(endpoint, "route_auth", None)
        dependant = getattr(route, "dependant", None)
        if mark is None and dependant is not None:
            mark = _dependency_mark(dependant)
        return mark or PROTECTED

    def route_auth_for(self, scope: Scope) -> RouteAuth | None:
        """
        Auth metadata for the route a request will hit.

        None means the request is not guarded: auth routes, and requests
        no route fully matches (left to the router's 404/405).
        """
        if self._app is None:
            return None
        for route in self._app.router.routes:
            match, _ = route.matches(scope)
            if match != Match.FULL:
                continue
            if getattr(route, "endpoint", None) == self.handle_auth_route:
                return None
            return self.route_mark(route)
        return None

    # =========================================================================
    # Guarding
    # =========================================================================

    async def authorize(self, request: Request, route: RouteAuth) -> AuthContext:
        """
        Run both guards and return the attached context.

        The session is resolved once per request; later calls only
        re-check the route's requirements against the attached context.
        """
        context = self.adapters.get().get_context(request)
        if context is None:
            await self.guard.can_activate(request, route)
            context = self.adapters.get().get_context(request) or AuthContext.anonymous()
        elif not route.public and not context.is_authenticated:
            raise UnauthorizedError(NO_USER_ERROR)
        self.roles_guard.check(request, route)
        return context

    def guarded(self, route: RouteAuth) -> Callable[[Request], Awaitable[AuthContext]]:
        """FastAPI dependency guarding a route with `route`."""

        async def dependency(request: Request) -> AuthContext:
            return await self.authorize(request, route)

        dependency.route_auth = route
        return dependency

    def public(self) -> Callable[[Request], Awaitable[AuthContext]]:
        return self.guarded(PUBLIC)

    def protected(self) -> Callable[[Request], Awaitable[AuthContext]]:
        return self.guarded(PROTECTED)

    def require_roles(self, *roles: str) -> Callable[[Request], Awaitable[AuthContext]]:
        """Protected, and the user needs at least one of `roles`."""
        return self.guarded(RouteAuth(required_roles=tuple(roles)))

    def guard_endpoint(
        self,
        endpoint: Callable[[Request], Awaitable[Response]],
        route: RouteAuth = PROTECTED,
    ) -> Callable[[Request], Awaitable[Response]]:
        """Wrap a plain Starlette endpoint with the guards."""

        @functools.wraps(endpoint)
        async def wrapper(request: Request) -> Response:
            await self.authorize(request, route)
            return await endpoint(request)

        wrapper.route_auth = route
        return wrapper

    # =========================================================================
    # Reading the context
    # =========================================================================

    async def session(self, request: Request) -> AuthSession | None:
        """Dependency: the session attached by a guard, or None."""
        context = self.adapters.get().get_context(request)
        return context.session if context else None

    async def current_user(self, request: Request) -> AuthUser | None:
        """Dependency: the user attached by a guard, or None."""
        context = self.adapters.get().get_context(request)
        return context.user if context else None
