"""RSGI HTTP router with regular expression routes.

Inspired by go-chi/mux's Mux, but routes are an ordered list of patterns
rather than a tree: the first route matching both path and method wins.

Lifecycle:
    1. build: register routes, middleware and error handlers
    2. serve: finalize() composes every handler chain once and freezes the
       router; any further registration raises RuntimeError
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Literal, Protocol

from .middleware import compose
from .params import RoutedHTTPScope
from .responses import (
    method_not_allowed,
    method_not_allowed_terminal,
    not_found,
    not_found_terminal,
)
from .routes import Route, add_route, find_route, format_routes

if TYPE_CHECKING:
    import asyncio

    from .rsgi import HTTPProtocol, HTTPScope, Middleware, RSGIHTTPHandler

logger = logging.getLogger(__name__)

type HTTPMethod = Literal[
    "CONNECT", "DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "TRACE"
]


class StaticFallback(Protocol):
    """Serves requests under a path prefix before any route is considered."""

    def serve(self, scope: HTTPScope, proto: HTTPProtocol) -> bool: ...


class Router:
    __slots__ = (
        "_chains",
        "_finalized",
        "_method_not_allowed_chain",
        "_method_not_allowed_handler",
        "_middleware",
        "_not_found_chain",
        "_not_found_handler",
        "_routes",
        "_static",
    )
    _routes: tuple[Route, ...]
    _middleware: tuple[Middleware, ...]
    _static: StaticFallback | None
    _not_found_handler: RSGIHTTPHandler | None
    _method_not_allowed_handler: RSGIHTTPHandler | None
    _chains: dict[Route, RSGIHTTPHandler]
    _not_found_chain: RSGIHTTPHandler | None
    _method_not_allowed_chain: RSGIHTTPHandler | None
    _finalized: bool

    def __init__(self, *, static: StaticFallback | None = None) -> None:
        self._routes = ()
        self._middleware = ()
        self._static = static
        self._not_found_handler = None
        self._method_not_allowed_handler = None
        self._chains = {}
        self._not_found_chain = None
        self._method_not_allowed_chain = None
        self._finalized = False

    @property
    def routes(self) -> tuple[Route, ...]:
        return self._routes

    @property
    def middleware(self) -> tuple[Middleware, ...]:
        return self._middleware

    @property
    def finalized(self) -> bool:
        return self._finalized

    # --- serving --------------------------------------------------------------
    def __rsgi_init__(self, loop: asyncio.AbstractEventLoop) -> None:
        """Called by the RSGI server on startup, before any request."""
        self.finalize()

    async def __rsgi__(self, scope: HTTPScope, proto: HTTPProtocol) -> None:
        if not self._finalized:
            self.finalize()
        if self._static is not None and self._static.serve(scope, proto):
            return
        handler, routed_scope = self._handler(scope)
        await handler(routed_scope, proto)  # type: ignore[arg-type]

    def _handler(self, scope: HTTPScope) -> tuple[RSGIHTTPHandler, RoutedHTTPScope]:
        """Returns the composed handler and per-request scope for the request."""
        route, fields, allowed = find_route(self._routes, scope.method, scope.path)
        if route is not None:
            routed = RoutedHTTPScope(scope, route=route.pattern, path_fields=fields)
            return self._chains[route], routed
        if allowed:
            logger.debug(
                "405 %s %s, allowed: %s", scope.method, scope.path, ", ".join(allowed)
            )
            assert self._method_not_allowed_chain is not None  # set by finalize
            return self._method_not_allowed_chain, RoutedHTTPScope(
                scope, allowed_methods=allowed
            )
        logger.debug("404 %s %s", scope.method, scope.path)
        assert self._not_found_chain is not None  # set by finalize
        return self._not_found_chain, RoutedHTTPScope(scope)

    def resolve(
        self, method: str, path: str
    ) -> tuple[Route | None, tuple[str, ...], tuple[str, ...]]:
        """Returns (route, fields, allowed_methods) for method and path.

        Pure lookup, nothing is invoked. See routes.find_route.
        """
        return find_route(self._routes, method, path)

    def finalize(self) -> None:
        """Compose every handler chain and freeze the router.

        Global middleware wraps route middleware, which wraps the route handler.
        The 404 and 405 handlers are only wrapped by global middleware.
        Idempotent - safe to call multiple times.

        This is called automatically on RSGI startup and on the first request,
        but can be called manually before forking workers.
        """
        if self._finalized:
            return
        self._chains = {
            route: compose(route.handler, self._middleware + route.middleware)
            for route in self._routes
        }
        self._not_found_chain = compose(
            not_found_terminal(self._not_found_handler or not_found),
            self._middleware,
        )
        self._method_not_allowed_chain = compose(
            method_not_allowed_terminal(
                self._method_not_allowed_handler or method_not_allowed
            ),
            self._middleware,
        )
        self._finalized = True
        logger.info(
            "router finalized: %d routes, %d global middleware",
            len(self._routes),
            len(self._middleware),
        )

    def _check_not_finalized(self) -> None:
        if self._finalized:
            msg = "router is finalized, no more routes or middleware can be added"
            raise RuntimeError(msg)

    # --- registration ---------------------------------------------------------
    def add_route(
        self,
        method: HTTPMethod | str,
        pattern: str,
        handler: RSGIHTTPHandler,
        *middleware: Middleware,
    ) -> None:
        """Registers handler for method on paths fully matching pattern.

        Raises PatternError if pattern is not a valid regular expression, in
        which case the router is left unchanged.
        """
        self._check_not_finalized()
        self._routes = add_route(self._routes, method, pattern, handler, middleware)

    def route(
        self, method: HTTPMethod | str, pattern: str, *middleware: Middleware
    ) -> Callable[[RSGIHTTPHandler], RSGIHTTPHandler]:
        """Decorator form of add_route."""

        def decorator(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
            self.add_route(method, pattern, handler, *middleware)
            return handler

        return decorator

    def connect(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for CONNECT, with optional middleware."""
        self.add_route("CONNECT", pattern, handler, *middleware)

    def delete(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for DELETE, with optional middleware."""
        self.add_route("DELETE", pattern, handler, *middleware)

    def get(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for GET, with optional middleware."""
        self.add_route("GET", pattern, handler, *middleware)

    def head(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for HEAD, with optional middleware."""
        self.add_route("HEAD", pattern, handler, *middleware)

    def options(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for OPTIONS, with optional middleware."""
        self.add_route("OPTIONS", pattern, handler, *middleware)

    def patch(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for PATCH, with optional middleware."""
        self.add_route("PATCH", pattern, handler, *middleware)

    def post(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for POST, with optional middleware."""
        self.add_route("POST", pattern, handler, *middleware)

    def put(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for PUT, with optional middleware."""
        self.add_route("PUT", pattern, handler, *middleware)

    def trace(
        self, pattern: str, handler: RSGIHTTPHandler, *middleware: Middleware
    ) -> None:
        """Registers handler for TRACE, with optional middleware."""
        self.add_route("TRACE", pattern, handler, *middleware)

    def use(self, *middleware: Middleware) -> None:
        """Adds global middleware, wrapping every route and the 404/405 handlers."""
        self._check_not_finalized()
        self._middleware = self._middleware + middleware

    def not_found(self, handler: RSGIHTTPHandler) -> None:
        """Registers handler for paths no route matches. Status is always 404."""
        self._check_not_finalized()
        if self._not_found_handler is not None:
            msg = "not found handler is already set"
            raise ValueError(msg)
        self._not_found_handler = handler

    def method_not_allowed(self, handler: RSGIHTTPHandler) -> None:
        """Registers handler for paths matched only for other methods.

        Status is always 405 and the `allow` header is always set; the allowed
        methods are also available to the handler as scope.allowed_methods.
        """
        self._check_not_finalized()
        if self._method_not_allowed_handler is not None:
            msg = "method not allowed handler is already set"
            raise ValueError(msg)
        self._method_not_allowed_handler = handler

    def format_routes(self) -> str:
        """Registered routes as a human-readable list, in matching order."""
        return format_routes(self._routes)
