"""Title-based identity keys.

The catalog issues different opaque ids for the same title across endpoints,
so cross-page and cross-query equality is decided by normalized titles.
"""

from __future__ import annotations

import re

from anikodik.models import Anime

_WHITESPACE = re.compile(r"\s+")


def normalize_title(text: str | None) -> str:
    """Lower-case a title, trim it and collapse inner whitespace."""
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def identity_key(anime: Anime) -> str:
    """Build the dedup key for an entry.

    The key is the normalized title, joined with the normalized original
    title when that is present and different. Entries without any title
    are keyed by id so they are never merged away.

    Examples:
        "Naruto" / "NARUTO"        -> "naruto"
        "Наруто" / "Naruto"        -> "наруто|naruto"
        "" / None (id "serial-1")  -> "id-serial-1"
    """
    title = normalize_title(anime.title)
    title_orig = normalize_title(anime.title_orig)

    key = f"{title}|{title_orig}" if title_orig and title_orig != title else title
    return key or f"id-{anime.id}"
