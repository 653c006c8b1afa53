from importlib.metadata import version

from .params import RoutedHTTPScope, get_field, path_fields
from .pattern import PatternError
from .router import Router

__all__ = [
    "PatternError",
    "RoutedHTTPScope",
    "Router",
    "__version__",
    "get_field",
    "path_fields",
]

__version__ = version("regmux")
