from collections.abc import Sequence
from functools import reduce

from regmux.rsgi import Middleware, RSGIHTTPHandler


def compose(
    handler: RSGIHTTPHandler, middleware: Sequence[Middleware]
) -> RSGIHTTPHandler:
    """Wraps handler so that middleware[0] is the outermost layer.

    Middleware is applied in reverse, so at call time it runs in list order
    on the way in and in reverse order on the way out.
    """
    return reduce(lambda h, m: m(h), reversed(middleware), handler)


__all__ = ["Middleware", "compose"]
