"""Merge freshly fetched pages into an accumulated list."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from anikodik.catalog.identity import identity_key
from anikodik.models import Anime

logger = logging.getLogger(__name__)


def _first_by_key(items: Iterable[Anime], key_fn: Callable[[Anime], str]) -> dict[str, Anime]:
    """Map each key to its first occurrence, keeping first-seen order."""
    unique: dict[str, Anime] = {}
    for anime in items:
        unique.setdefault(key_fn(anime), anime)
    return unique


def merge_anime_lists(existing: list[Anime], incoming: list[Anime]) -> list[Anime]:
    """Append the new entries of a page to an accumulated list.

    Duplicates inside `incoming` are resolved first-wins; entries whose
    identity key is already in `existing` are dropped. `existing` keeps its
    order and new entries are appended in the order they were first seen.

    Args:
        existing: Already accumulated entries, unique by identity key.
        incoming: A freshly fetched page.

    Returns:
        A new list; neither input is modified.
    """
    existing_keys = {identity_key(anime) for anime in existing}
    fresh = [
        anime
        for key, anime in _first_by_key(incoming, identity_key).items()
        if key not in existing_keys
    ]
    logger.debug(
        "Merged page: %d existing, %d received, %d new",
        len(existing),
        len(incoming),
        len(fresh),
    )
    return [*existing, *fresh]


def merge_by_id(*groups: Iterable[Anime]) -> list[Anime]:
    """Concatenate result groups, keeping the first entry per id."""
    unique: dict[str, Anime] = {}
    for group in groups:
        for anime in group:
            unique.setdefault(anime.id, anime)
    return list(unique.values())
