"""Selects which entity kinds a sync run covers"""

from __future__ import annotations

import enum

from ghmirror_backend.core.errors import FilterFlagError
from ghmirror_shared.constants import FILTER_TOKENS


class FilterFlags(enum.IntFlag):
    ISSUES = 1 << 0
    PRS = 1 << 1
    MAINTAINERS = 1 << 2
    MEMBERS = 1 << 3
    LABELS = 1 << 4
    ZENHUB = 1 << 5
    REPO_COMMENTS = 1 << 6
    EVENTS = 1 << 7


ALL_FLAGS = (
    FilterFlags.ISSUES
    | FilterFlags.PRS
    | FilterFlags.MAINTAINERS
    | FilterFlags.MEMBERS
    | FilterFlags.LABELS
    | FilterFlags.ZENHUB
    | FilterFlags.REPO_COMMENTS
    | FilterFlags.EVENTS
)

# Every kind that needs the per-repository pass; maintainers run on their own
REPO_PASS_FLAGS = ALL_FLAGS & ~FilterFlags.MAINTAINERS

_TOKENS: dict[str, FilterFlags] = {
    token: FilterFlags(1 << bit) for bit, token in enumerate(FILTER_TOKENS)
}


def conv_filter_flags(filter_text: str) -> FilterFlags:
    """Parses a comma separated token list; empty input selects everything.

    Tokens are case sensitive. The first unknown token raises FilterFlagError.
    """
    if filter_text == "":
        return ALL_FLAGS

    result = FilterFlags(0)
    for token in filter_text.split(","):
        flag = _TOKENS.get(token)
        if flag is None:
            raise FilterFlagError(token)
        result |= flag

    return result
