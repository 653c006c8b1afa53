"""404 and 405 responses.

The status of an error response is decided by the router, not the error
handler: handlers only supply headers and body. _FixedStatusHTTPProtocol
enforces that. The router also owns the `allow` header of 405 responses,
any `allow` set by the handler is replaced.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .rsgi import ProxiedHTTPProtocol

if TYPE_CHECKING:
    from .rsgi import HTTPProtocol, HTTPScope, RSGIHTTPHandler

NOT_FOUND_BODY = "404 page not found\n"
METHOD_NOT_ALLOWED_BODY = "405 method not allowed"

_TEXT_PLAIN = ("content-type", "text/plain; charset=utf-8")


class _FixedStatusHTTPProtocol(ProxiedHTTPProtocol):
    """Wraps HTTPProtocol to force the response status and set headers.

    Headers given here take the place of any handler header with the same name.
    """

    __slots__ = ("_headers", "_replaced", "_status")

    def __init__(
        self, proto: HTTPProtocol, status: int, headers: list[tuple[str, str]]
    ) -> None:
        super().__init__(proto)
        self._status = status
        self._headers = headers
        self._replaced = frozenset(name.lower() for name, _ in headers)

    def _respond(
        self, status: int, headers: list[tuple[str, str]]
    ) -> tuple[int, list[tuple[str, str]]]:
        if self._replaced:
            headers = [h for h in headers if h[0].lower() not in self._replaced]
        return self._status, self._headers + headers


async def not_found(_scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(404, [_TEXT_PLAIN], NOT_FOUND_BODY)


async def method_not_allowed(_scope: HTTPScope, proto: HTTPProtocol) -> None:
    proto.response_str(405, [_TEXT_PLAIN], METHOD_NOT_ALLOWED_BODY)


def not_found_terminal(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
    """Terminal handler for unmatched paths: always answers 404."""

    async def terminal(scope: HTTPScope, proto: HTTPProtocol) -> None:
        await handler(scope, _FixedStatusHTTPProtocol(proto, 404, []))

    return terminal


def method_not_allowed_terminal(handler: RSGIHTTPHandler) -> RSGIHTTPHandler:
    """Terminal handler for method mismatches: always answers 405 with `allow`.

    The allowed methods are read from scope.allowed_methods (RoutedHTTPScope).
    """

    async def terminal(scope: HTTPScope, proto: HTTPProtocol) -> None:
        allowed: tuple[str, ...] = getattr(scope, "allowed_methods", ())
        headers = [("allow", ", ".join(allowed))]
        await handler(scope, _FixedStatusHTTPProtocol(proto, 405, headers))

    return terminal
