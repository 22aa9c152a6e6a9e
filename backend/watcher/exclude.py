"""
Rewatch Exclude Matcher.

Requires Python 3.11+.
"""

import re

from utils.errors import ConfigurationError


class ExcludeMatcher:
    """
    Tests paths against an optional exclude regular expression.

    The pattern matches anywhere in the path, so ``-x '\\.git'`` excludes
    every path with a ``.git`` component. Without a pattern nothing is
    excluded.
    """

    def __init__(self, pattern: str | None = None) -> None:
        self._pattern = pattern or None
        self._regex: re.Pattern[str] | None = None
        if self._pattern is not None:
            try:
                self._regex = re.compile(self._pattern)
            except re.error as e:
                raise ConfigurationError(f"bad exclude pattern {self._pattern!r}: {e}") from e

    @property
    def pattern(self) -> str | None:
        return self._pattern

    def matches(self, path: str) -> bool:
        if self._regex is None:
            return False
        return self._regex.search(path) is not None

    def __repr__(self) -> str:
        return f"ExcludeMatcher({self._pattern!r})"
