"""Ant-style path matching used for ignore paths.

``?`` matches one character, ``*`` matches zero or more characters within a
single path segment and ``**`` matches zero or more whole segments.
"""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import Iterable, List, Optional, Pattern, Sequence

__all__ = ["match_path", "find_matching_pattern", "is_ignored"]

logger = logging.getLogger(__name__)

_SEPARATOR = "/"
_DOUBLE_WILDCARD = "**"


@lru_cache(maxsize=512)
def _segment_regex(segment: str) -> Pattern[str]:
    parts: List[str] = []
    for char in segment:
        if char == "*":
            parts.append(".*")
        elif char == "?":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _tokenize(path: str) -> List[str]:
    return [segment for segment in path.split(_SEPARATOR) if segment]


def _match_segments(pattern: Sequence[str], path: Sequence[str]) -> bool:
    if not pattern:
        return not path

    head = pattern[0]
    if head == _DOUBLE_WILDCARD:
        # Collapse runs of "**" then try every possible split point.
        rest = pattern[1:]
        while rest and rest[0] == _DOUBLE_WILDCARD:
            rest = rest[1:]
        if not rest:
            return True
        return any(_match_segments(rest, path[index:]) for index in range(len(path) + 1))

    if not path:
        return False
    if _segment_regex(head).fullmatch(path[0]) is None:
        return False
    return _match_segments(pattern[1:], path[1:])


def match_path(pattern: str, path: str) -> bool:
    """Return True when ``path`` matches the Ant-style ``pattern``."""
    if pattern.startswith(_SEPARATOR) != path.startswith(_SEPARATOR):
        return False
    return _match_segments(_tokenize(pattern), _tokenize(path))


def find_matching_pattern(path: str, patterns: Iterable[str]) -> Optional[str]:
    for pattern in patterns:
        if match_path(pattern, path):
            return pattern
    return None


def is_ignored(path: str, patterns: Iterable[str]) -> bool:
    pattern = find_matching_pattern(path, patterns)
    if pattern is not None:
        logger.debug("Request uri %s is ignored by pattern %s", path, pattern)
        return True
    return False
