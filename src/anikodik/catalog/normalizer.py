"""Normalize raw catalog records into `Anime` models.

Kodik records carry most metadata twice: some fields at the top level and a
richer copy under ``material_data``. Each canonical field is resolved through
an ordered chain of source keys, falling back to a fixed default. A value
counts as missing when it is absent, None, an empty string, zero or an empty
list, so a blank top-level value never hides a populated nested one.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any

from anikodik.models import NO_GENRE, Anime
from anikodik.utils import coerce_float, coerce_int

logger = logging.getLogger(__name__)

MATERIAL_KEY = "material_data"


@dataclass(frozen=True)
class FallbackChain:
    """Ordered source keys for one canonical field.

    Attributes:
        top: Keys tried on the record itself, in order.
        nested: Keys tried on the record's ``material_data``, in order.
    """

    top: tuple[str, ...] = ()
    nested: tuple[str, ...] = ()


FIELD_CHAINS: dict[str, FallbackChain] = {
    "title": FallbackChain(("title",), ("title",)),
    "title_orig": FallbackChain(("title_orig",), ("title_orig",)),
    "poster": FallbackChain(("poster_url", "poster"), ("poster_url",)),
    "genres": FallbackChain(("genres",), ("genres", "anime_genres")),
    "rating": FallbackChain(("rating",), ("shikimori_rating",)),
    "status": FallbackChain(("status",), ("anime_status",)),
    "description": FallbackChain(("description",), ("description", "anime_description")),
    "year": FallbackChain(("year",), ("year",)),
    "episode_count": FallbackChain(("episodes_count",), ("episodes_count", "episodes_total")),
    "duration": FallbackChain(("duration",), ("duration",)),
    "studios": FallbackChain((), ("studios", "anime_studios")),
    "countries": FallbackChain((), ("countries",)),
    "source_link": FallbackChain(("link",), ()),
    "shikimori_id": FallbackChain(("shikimori_id",), ("shikimori_id",)),
    "kinopoisk_id": FallbackChain(("kinopoisk_id",), ("kinopoisk_id",)),
    "imdb_id": FallbackChain(("imdb_id",), ("imdb_id",)),
    "worldart_id": FallbackChain(("worldart_link",), ("worldart_link",)),
    "type": FallbackChain(("type",), ("type",)),
}


def _is_missing(value: Any) -> bool:
    """Check whether a raw value should fall through to the next source."""
    if value is None:
        return True
    if isinstance(value, bool):
        return False
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (int, float)):
        return value == 0
    if isinstance(value, (list, tuple, dict)):
        return len(value) == 0
    return False


def resolve(record: dict[str, Any], chain: FallbackChain) -> Any:
    """Get the first present value along a fallback chain.

    Args:
        record: Raw catalog record.
        chain: Source keys to try.

    Returns:
        The first non-missing value, or None.
    """
    for key in chain.top:
        value = record.get(key)
        if not _is_missing(value):
            return value

    material = record.get(MATERIAL_KEY)
    if isinstance(material, dict):
        for key in chain.nested:
            value = material.get(key)
            if not _is_missing(value):
                return value

    return None


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return default


def _as_optional_text(value: Any) -> str | None:
    return _as_text(value) or None


def _as_text_list(value: Any) -> list[str]:
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [text for text in (_as_text(item) for item in value) if text]


def _record_digest(record: dict[str, Any]) -> str:
    """Stable identifier for a record with neither id nor link."""
    payload = json.dumps(record, sort_keys=True, ensure_ascii=False, default=str)
    return "record-" + hashlib.md5(payload.encode("utf-8")).hexdigest()[:16]


def resolve_id(record: dict[str, Any]) -> str:
    """Get the record's identifier.

    Uses ``id``, then ``link``. Records lacking both get a digest of their
    content so every normalized entity has a non-empty id.
    """
    for key in ("id", "link"):
        text = _as_text(record.get(key))
        if text:
            return text
    return _record_digest(record)


def normalize_record(record: Any) -> Anime:
    """Build a fully defaulted `Anime` from one raw catalog record.

    Never raises: malformed numbers become 0, missing text becomes "" and a
    missing genre list becomes the no-genre sentinel. Seasons are left empty;
    detail lookups add them with `build_seasons`.

    Args:
        record: Raw record as returned by the catalog API.

    Returns:
        The canonical entity.
    """
    if not isinstance(record, dict):
        logger.debug("Normalizing non-dict record of type %s", type(record).__name__)
        record = {}

    def field(name: str) -> Any:
        return resolve(record, FIELD_CHAINS[name])

    genres = _as_text_list(field("genres")) or [NO_GENRE]

    return Anime(
        id=resolve_id(record),
        title=_as_text(field("title")),
        title_orig=_as_optional_text(field("title_orig")),
        poster=_as_optional_text(field("poster")),
        genres=genres,
        rating=coerce_float(field("rating")),
        status=_as_text(field("status")) or "released",
        description=_as_text(field("description")),
        year=_as_text(field("year")),
        episode_count=coerce_int(field("episode_count")),
        duration=_as_text(field("duration")),
        studios=", ".join(_as_text_list(field("studios"))),
        countries=", ".join(_as_text_list(field("countries"))),
        source_link=_as_text(field("source_link")),
        shikimori_id=_as_optional_text(field("shikimori_id")),
        kinopoisk_id=_as_optional_text(field("kinopoisk_id")),
        imdb_id=_as_optional_text(field("imdb_id")),
        worldart_id=_as_optional_text(field("worldart_id")),
        type=_as_text(field("type")) or "anime",
    )


def normalize_records(records: list[Any]) -> list[Anime]:
    """Normalize a page of raw records, preserving order."""
    return [normalize_record(record) for record in records]
