"""Helper functions for API clients.

Provides the cache check/store pattern shared by detail lookups.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from anikodik.cache import DetailCache

T = TypeVar("T")


def cached_api_call(
    cache: DetailCache | None,
    key: str,
    fetch_fn: Callable[[], T],
    parse_fn: Callable[[dict[str, Any]], T],
    serialize_fn: Callable[[T], dict[str, Any]],
) -> T:
    """Execute an API call with cache check/store pattern.

    This helper encapsulates the common pattern of:
    1. Check cache for a fresh entry
    2. If hit, record stats and return cached result
    3. If miss (or stale), make API call
    4. Store result in cache
    5. Return result

    Errors raised by `fetch_fn` propagate and nothing is cached.

    Args:
        cache: DetailCache instance (or None if caching disabled).
        key: Cache key (e.g., anime ID).
        fetch_fn: Function that makes the API call and returns the model.
        parse_fn: Function that parses a cached dict back into the model.
        serialize_fn: Function that serializes the model to a dict for caching.

    Returns:
        The fetched or cached result of type T.

    Example:
        ```python
        anime = cached_api_call(
            cache=self._cache,
            key=anime_id,
            fetch_fn=lambda: self._fetch_detail(anime_id),
            parse_fn=Anime.model_validate,
            serialize_fn=lambda a: a.model_dump(mode="json"),
        )
        ```
    """
    from anikodik.statistics import FetchStatistics

    stats = FetchStatistics.get_current()

    if cache:
        cached = cache.get(key)
        if cached is not None:
            try:
                result = parse_fn(cached)
            except ValueError:
                # Entry written by an older model version; refetch it
                cache.delete(key)
            else:
                if stats:
                    stats.record_cache_hit()
                return result

    if stats:
        stats.record_cache_miss()

    result = fetch_fn()

    if cache:
        cache.put(key, serialize_fn(result))

    return result
