import pytest

from regmux.pattern import PatternError
from regmux.routes import Route, add_route, find_route, format_routes
from regmux.rsgi import HTTPProtocol, HTTPScope, RSGIHTTPHandler


async def home_handler(s: HTTPScope, p: HTTPProtocol) -> None:
    pass


async def user_handler(s: HTTPScope, p: HTTPProtocol) -> None:
    pass


async def save_user_handler(s: HTTPScope, p: HTTPProtocol) -> None:
    pass


def auth_middleware(h: RSGIHTTPHandler) -> RSGIHTTPHandler:
    return h


def audit_middleware(h: RSGIHTTPHandler) -> RSGIHTTPHandler:
    return h


def _table() -> tuple[Route, ...]:
    routes: tuple[Route, ...] = ()
    routes = add_route(routes, "GET", "/", home_handler)
    routes = add_route(routes, "GET", "/user/([0-9]+)", user_handler)
    routes = add_route(routes, "POST", "/user/([0-9]+)", save_user_handler)
    return routes


# --- add_route ----------------------------------------------------------------
def test_add_route_appends_in_order() -> None:
    routes = _table()
    assert [(r.method, r.pattern) for r in routes] == [
        ("GET", "/"),
        ("GET", "/user/([0-9]+)"),
        ("POST", "/user/([0-9]+)"),
    ]


def test_add_route_does_not_mutate_input() -> None:
    routes = _table()
    extended = add_route(routes, "PUT", "/user/([0-9]+)", save_user_handler)
    assert len(routes) == 3
    assert len(extended) == 4
    assert extended[:3] == routes


def test_add_route_invalid_pattern() -> None:
    routes = _table()
    with pytest.raises(PatternError):
        add_route(routes, "GET", "/broken/(", home_handler)
    assert len(routes) == 3


def test_add_route_uppercases_method() -> None:
    (route,) = add_route((), "get", "/", home_handler)
    assert route.method == "GET"


def test_add_route_keeps_middleware() -> None:
    (route,) = add_route(
        (), "GET", "/", home_handler, (auth_middleware, audit_middleware)
    )
    assert route.middleware == (auth_middleware, audit_middleware)


def test_add_route_accepts_duplicates() -> None:
    routes = add_route((), "GET", "/dup", home_handler)
    routes = add_route(routes, "GET", "/dup", user_handler)
    assert len(routes) == 2


# --- find_route ---------------------------------------------------------------
@pytest.mark.parametrize(
    "method,path,expected_handler,expected_fields,expected_allowed",
    [
        ("GET", "/", home_handler, (), ()),
        ("GET", "/user/42", user_handler, ("42",), ()),
        ("POST", "/user/42", save_user_handler, ("42",), ()),
        ("post", "/user/42", save_user_handler, ("42",), ()),
        ("DELETE", "/user/42", None, (), ("GET", "POST")),
        ("POST", "/", None, (), ("GET",)),
        ("GET", "/user/abc", None, (), ()),
        ("GET", "/missing", None, (), ()),
        ("GET", "/user/42/", None, (), ()),
    ],
)
def test_find_route(
    method: str,
    path: str,
    expected_handler: RSGIHTTPHandler | None,
    expected_fields: tuple[str, ...],
    expected_allowed: tuple[str, ...],
) -> None:
    route, fields, allowed = find_route(_table(), method, path)
    if expected_handler is None:
        assert route is None
    else:
        assert route is not None
        assert route.handler is expected_handler
    assert fields == expected_fields
    assert allowed == expected_allowed


def test_find_route_first_match_wins() -> None:
    routes = add_route((), "GET", "/item/(.*)", home_handler)
    routes = add_route(routes, "GET", "/item/([0-9]+)", user_handler)
    route, fields, _ = find_route(routes, "GET", "/item/5")
    assert route is not None
    assert route.handler is home_handler
    assert fields == ("5",)


def test_find_route_shadowed_duplicate_never_reached() -> None:
    routes = add_route((), "GET", "/dup", home_handler)
    routes = add_route(routes, "GET", "/dup", user_handler)
    route, _, _ = find_route(routes, "GET", "/dup")
    assert route is not None
    assert route.handler is home_handler


def test_find_route_keeps_scanning_after_method_mismatch() -> None:
    routes = add_route((), "POST", "/thing", home_handler)
    routes = add_route(routes, "GET", "/thing", user_handler)
    route, _, allowed = find_route(routes, "GET", "/thing")
    assert route is not None
    assert route.handler is user_handler
    assert allowed == ()


def test_find_route_allowed_keeps_duplicates_in_encounter_order() -> None:
    routes = add_route((), "PUT", "/x", home_handler)
    routes = add_route(routes, "GET", "/(x|y)", home_handler)
    routes = add_route(routes, "PUT", "/x", user_handler)
    routes = add_route(routes, "GET", "/y", user_handler)
    route, fields, allowed = find_route(routes, "DELETE", "/x")
    assert route is None
    assert fields == ()
    assert allowed == ("PUT", "GET", "PUT")


# --- format_routes ------------------------------------------------------------
def test_format_routes() -> None:
    routes = add_route((), "GET", "/", home_handler)
    routes = add_route(
        routes,
        "GET",
        "/user/([0-9]+)",
        user_handler,
        (auth_middleware, audit_middleware),
    )
    routes = add_route(
        routes, "POST", "/user/([0-9]+)", save_user_handler, (auth_middleware,)
    )
    assert format_routes(routes) == (
        "GET    /                home_handler\n"
        "GET    /user/([0-9]+)   user_handler        [auth_middleware > audit_middleware]\n"
        "POST   /user/([0-9]+)   save_user_handler   [auth_middleware]"
    )


def test_format_routes_empty() -> None:
    assert format_routes(()) == ""
