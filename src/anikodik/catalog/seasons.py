"""Build ordered season/episode trees from detail records.

Detail records describe seasons as a sparse map keyed by season number, each
holding a map of episodes keyed by episode number:

    {
        "link": "//kodik.info/serial/1/abc/720p",
        "seasons": {
            "1": {
                "title": "...",
                "episodes": {
                    "1": "//kodik.info/seria/1/abc/720p",
                    "2": {"link": "...", "title": "...", "screenshots": [...]}
                }
            }
        }
    }

The builder never raises. Whenever the record has a link, the result holds
at least one season and every season holds at least one episode.
"""

from __future__ import annotations

import logging
from typing import Any

from anikodik.models import Episode, Season

logger = logging.getLogger(__name__)


def _parse_number(key: Any) -> int | None:
    """Parse a map key as a season/episode number (int >= 1)."""
    try:
        number = int(str(key).strip())
    except ValueError:
        return None
    return number if number >= 1 else None


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _screenshots(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str) and item]


def placeholder_episode(season_number: int, link: str) -> Episode:
    """Episode 1 of a season, pointing at the record's main link."""
    return Episode(id=f"{season_number}_1", number=1, title="Эпизод 1", link=link)


def _build_episode(season_number: int, number: int, data: Any, fallback_link: str) -> Episode:
    if isinstance(data, dict):
        link = _text(data.get("link"))
        title = _text(data.get("title"))
        screenshots = _screenshots(data.get("screenshots"))
    else:
        link = _text(data)
        title = ""
        screenshots = []

    return Episode(
        id=f"{season_number}_{number}",
        number=number,
        title=title or f"Эпизод {number}",
        link=link or fallback_link,
        screenshots=screenshots,
    )


def _build_season(number: int, data: Any, fallback_link: str) -> Season:
    title = ""
    episodes: dict[int, Episode] = {}

    if isinstance(data, dict):
        title = _text(data.get("title"))
        raw_episodes = data.get("episodes")
        if isinstance(raw_episodes, dict):
            for key, episode_data in raw_episodes.items():
                episode_number = _parse_number(key)
                if episode_number is None:
                    logger.debug("Skipping episode key %r in season %d", key, number)
                    continue
                episodes.setdefault(
                    episode_number,
                    _build_episode(number, episode_number, episode_data, fallback_link),
                )

    if not episodes:
        episodes[1] = placeholder_episode(number, fallback_link)

    return Season(
        id=f"season_{number}",
        number=number,
        title=title or f"Сезон {number}",
        episodes=[episodes[n] for n in sorted(episodes)],
    )


def build_seasons(record: Any) -> list[Season]:
    """Convert a detail record's season map into ordered seasons.

    Rules:
        - Season and episode numbers come from the map keys; keys that are
          not integers >= 1 are skipped.
        - An episode without its own link inherits the record's ``link``.
        - A season without episodes gets one placeholder episode.
        - A record without seasons but with a ``link`` gets one season
          containing one episode.

    Args:
        record: Raw detail record.

    Returns:
        Seasons ascending by number, each with episodes ascending by number.
    """
    if not isinstance(record, dict):
        return []

    link = _text(record.get("link"))
    seasons: dict[int, Season] = {}

    raw_seasons = record.get("seasons")
    if isinstance(raw_seasons, dict):
        for key, season_data in raw_seasons.items():
            number = _parse_number(key)
            if number is None:
                logger.debug("Skipping season key %r", key)
                continue
            seasons.setdefault(number, _build_season(number, season_data, link))

    if not seasons and link:
        seasons[1] = Season(
            id="season_1",
            number=1,
            title="Сезон 1",
            episodes=[placeholder_episode(1, link)],
        )

    return [seasons[n] for n in sorted(seasons)]
