"""
aiohttp.web integration.

Usage:
    auth = AiohttpAuth(AuthOptions(providers=[...], secret=...), engine)
    app = web.Application()
    auth.setup(app)

    auth.add_route(app, "GET", "/me", me)                          # protected
    auth.add_route(app, "GET", "/", home, public=True)
    auth.add_route(app, "GET", "/admin", admin, roles=["admin"])

    async def me(request):
        ctx = request["auth"]
        return web.json_response(ctx.user.model_dump())

Every matched route except the auth routes goes through the guard
middleware. Routes registered without `add_route` are protected.
"""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable, Iterable

from aiohttp import web

from authbridge.adapters.factory import AdapterCache, RuntimeHost, RuntimeKind
from authbridge.config import AuthOptions
from authbridge.errors import ForbiddenError, UnauthorizedError
from authbridge.guards import PROTECTED, AuthGuard, RolesGuard, RouteAuth
from authbridge.middleware import AuthMiddleware
from authbridge.resolver import Engine
from authbridge.session import AuthContext

logger = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def _error_body(reason: str) -> str:
    return json.dumps({"detail": reason})


class AiohttpAuth:
    """
    Wires the guards and the auth routes into an aiohttp application.
    """

    def __init__(self, options: AuthOptions, engine: Engine, host: RuntimeHost | None = None):
        self.options = options
        self.host = host or RuntimeHost()
        self.adapters = AdapterCache(self.host)
        self.guard = AuthGuard(options, engine, adapters=self.adapters)
        self.roles_guard = RolesGuard(self.adapters)
        self.middleware = AuthMiddleware(options, engine, adapters=self.adapters)
        self._routes: dict[web.AbstractRoute, RouteAuth] = {}
        self._auth_route: web.AbstractRoute | None = None

    @property
    def base_path(self) -> str:
        return "/" + self.options.base_path.strip("/")

    def setup(self, app: web.Application) -> None:
        """Tag the runtime, add the auth routes and the guard middleware."""
        self.host.attach(RuntimeKind.AIOHTTP)
        self._auth_route = app.router.add_route("*", self.base_path + "/{tail:.*}", self.handle_auth_route)
        app.middlewares.append(self.create_middleware())
        logger.info(f"Auth routes mounted at {self.base_path}")

    async def handle_auth_route(self, request: web.Request) -> web.StreamResponse:
        response = web.StreamResponse()
        await self.middleware.handle(request, response)
        return response

    # =========================================================================
    # Route metadata
    # =========================================================================

    def add_route(
        self,
        app: web.Application,
        method: str,
        path: str,
        handler: Handler,
        *,
        public: bool = False,
        roles: Iterable[str] = (),
    ) -> web.AbstractRoute:
        """Register a route together with its auth metadata."""
        route = app.router.add_route(method, path, handler)
        self.mark(route, RouteAuth(public=public, required_roles=tuple(roles)))
        return route

    def mark(self, route: web.AbstractRoute, route_auth: RouteAuth) -> None:
        """Attach auth metadata to an already registered route."""
        self._routes[route] = route_auth

    def route_auth(self, request: web.Request) -> RouteAuth:
        return self._routes.get(request.match_info.route, PROTECTED)

    # =========================================================================
    # Guarding
    # =========================================================================

    async def authorize(self, request: web.Request, route: RouteAuth) -> AuthContext:
        """Run both guards, translating their errors into HTTP errors."""
        try:
            await self.guard.can_activate(request, route)
            self.roles_guard.check(request, route)
        except UnauthorizedError as e:
            raise web.HTTPUnauthorized(text=_error_body(e.reason), content_type="application/json") from e
        except ForbiddenError as e:
            raise web.HTTPForbidden(text=_error_body(e.reason), content_type="application/json") from e
        return self.adapters.get().get_context(request) or AuthContext.anonymous()

    def create_middleware(self):
        @web.middleware
        async def auth_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
            # Unmatched routes fall through to the router's own 404/405;
            # auth routes go straight to the engine.
            if request.match_info.http_exception is None and request.match_info.route is not self._auth_route:
                await self.authorize(request, self.route_auth(request))
            return await handler(request)

        return auth_middleware
