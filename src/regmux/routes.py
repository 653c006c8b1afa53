"""Ordered route table with method-mismatch tracking.

Inspired by the regexp routers of go's pre-1.22 ecosystem: routes are scanned
in registration order and the first one matching both path and method wins.
"""

import re
from dataclasses import dataclass

from .pattern import compile_pattern, match_path
from .rsgi import Middleware, RSGIHTTPHandler


@dataclass(slots=True, frozen=True, eq=False)  # identity hash, used as chain key
class Route:
    method: str
    pattern: str
    regex: re.Pattern[str]
    handler: RSGIHTTPHandler
    middleware: tuple[Middleware, ...] = ()


def add_route(
    routes: tuple[Route, ...],
    method: str,
    pattern: str,
    handler: RSGIHTTPHandler,
    middleware: tuple[Middleware, ...] = (),
) -> tuple[Route, ...]:
    """Returns routes with a new route appended.

    Raises PatternError before anything is built, so the given table is
    never affected by a bad pattern. Duplicates are accepted: a later route
    with the same method and pattern is simply never reached.
    """
    regex = compile_pattern(pattern)
    route = Route(
        method=method.upper(),
        pattern=pattern,
        regex=regex,
        handler=handler,
        middleware=middleware,
    )
    return (*routes, route)


def find_route(
    routes: tuple[Route, ...], method: str, path: str
) -> tuple[Route | None, tuple[str, ...], tuple[str, ...]]:
    """Scans routes in order for the first match on path and method.

    Returns (route, fields, allowed):
        * (route, fields, ()) for a full match, fields being the captures
        * (None, (), allowed) when the path matched only for other methods,
          allowed listing those methods in the order they were encountered
        * (None, (), ()) when no route matched the path at all
    """
    method = method.upper()
    allowed: list[str] = []
    for route in routes:
        fields = match_path(route.regex, path)
        if fields is None:
            continue
        if route.method != method:
            allowed.append(route.method)
            continue
        return route, fields, ()
    return None, (), tuple(allowed)


def format_routes(routes: tuple[Route, ...]) -> str:
    """Format the route table as a column-aligned list in registration order.

        GET    /               home
        GET    /user/([0-9]+)  get_user    [auth > audit]
        POST   /user/([0-9]+)  save_user   [auth]
    """
    if not routes:
        return ""
    method_w = max(len(r.method) for r in routes)
    pattern_w = max(len(r.pattern) for r in routes)
    handler_w = max(len(_qualname(r.handler)) for r in routes)

    lines: list[str] = []
    for route in routes:
        line = f"{route.method:<{method_w}}   {route.pattern:<{pattern_w}}   "
        if route.middleware:
            mw = " > ".join(_qualname(m) for m in route.middleware)
            line += f"{_qualname(route.handler):<{handler_w}}   [{mw}]"
        else:
            line += _qualname(route.handler)
        lines.append(line)
    return "\n".join(lines)


def _qualname(obj: object) -> str:
    """Extract __qualname__ from a callable, falling back to repr."""
    return str(obj.__qualname__) if hasattr(obj, "__qualname__") else repr(obj)
