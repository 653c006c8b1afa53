"""Regular expression route patterns.

A pattern always matches the whole request path: "/user/([0-9]+)" matches
"/user/42" but not "/user/42/edit" or "/api/user/42". Capture groups become
positional path fields.
"""

import re


class PatternError(ValueError):
    """Route pattern is not a valid regular expression."""

    def __init__(self, pattern: str, reason: str) -> None:
        super().__init__(f"invalid route pattern {pattern!r}: {reason}")
        self.pattern = pattern


def compile_pattern(pattern: str) -> re.Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise PatternError(pattern, str(e)) from e


def match_path(regex: re.Pattern[str], path: str) -> tuple[str, ...] | None:
    """Returns the captured groups if regex matches the entire path, else None.

    Groups that did not take part in the match are reported as "".
    """
    m = regex.fullmatch(path)
    if m is None:
        return None
    return m.groups(default="")
