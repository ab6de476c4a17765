"""Cache-hit policy.

This module only compares values; it does not know where cache entries live
or how they were fetched.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Any

_MISSING = object()


class CacheMatch(StrEnum):
    ALL = "all"
    ANY = "any"


def compare_fields(cached: Any, cache_logic: Mapping[str, Any]) -> list[bool]:
    """Return one ``True``/``False`` per ``cache_logic`` field, in order.

    A cached value that is not a mapping never matches.
    """
    if not isinstance(cached, Mapping):
        return [False for _ in cache_logic]
    return [cached.get(key, _MISSING) == expected for key, expected in cache_logic.items()]


def is_cache_hit(
    *,
    has_entry: bool,
    cached: Any,
    cache_logic: Mapping[str, Any] | None,
    match: CacheMatch,
) -> bool:
    """Decide whether a cached value already satisfies a request.

    Policy:
    - No entry or no ``cache_logic``: never a hit.
    - ``ALL``: every compared field must match.
    - ``ANY``: one matching field is enough, even if others differ.

    Fields compare with Python ``==``: a cached ``7`` does not match ``"7"``.
    Endpoints that build ``cache_logic`` from string route params should
    convert them to the type the API returns.
    """
    if not has_entry or not cache_logic:
        return False
    matches = compare_fields(cached, cache_logic)
    if match == CacheMatch.ANY:
        return any(matches)
    return all(matches)
