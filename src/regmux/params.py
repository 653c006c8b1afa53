"""Per-request routing state.

The router hands every handler chain a RoutedHTTPScope: the transport's scope
plus what routing found out about this request. It is created per request and
dropped with it, nothing is kept on the router.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .rsgi import HTTPScope


class RoutedHTTPScope:
    """Lightweight wrapper that adds routing results to an HTTPScope."""

    __slots__ = ("_scope", "allowed_methods", "path_fields", "route")

    def __init__(
        self,
        scope: HTTPScope,
        *,
        route: str = "",
        path_fields: tuple[str, ...] = (),
        allowed_methods: tuple[str, ...] = (),
    ) -> None:
        self._scope = scope
        self.route = route  # matched pattern, "" for 404/405
        self.path_fields = path_fields
        self.allowed_methods = allowed_methods

    def __getattr__(self, name: str) -> object:
        return getattr(self._scope, name)


def path_fields(scope: HTTPScope) -> tuple[str, ...]:
    """All captured path fields for the request, () if it did not match a route."""
    return getattr(scope, "path_fields", ())


def get_field(scope: HTTPScope, index: int) -> str:
    """Captured path field at index, or "" when there is no such field."""
    fields = path_fields(scope)
    if 0 <= index < len(fields):
        return fields[index]
    return ""
