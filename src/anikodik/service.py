"""Consumer-facing catalog operations.

`AnimeService` ties the Kodik client to the normalizer, the season builder,
the detail cache and the franchise resolver. Fetch errors from the list,
detail and video paths propagate; shelf helpers (recommendations, trending,
latest, by-genre) log and return an empty list instead.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from anikodik.api import APIError, NotFoundError, VideoUnavailableError, cached_api_call
from anikodik.catalog import (
    FranchiseResolver,
    build_seasons,
    extract_cursor,
    normalize_record,
    normalize_records,
)
from anikodik.catalog.franchise import MAX_WATCH_ORDER, QUERY_LIMIT
from anikodik.models import NO_GENRE, Anime, AnimeVideo, CatalogPage, ListParams

if TYPE_CHECKING:
    from anikodik.cache import DetailCache
    from anikodik.kodik import KodikClient

logger = logging.getLogger(__name__)

# Entries returned by recommendation and shelf helpers
SHELF_LIMIT = 10


def fix_video_url(url: str) -> str:
    """Give protocol-relative Kodik player URLs an https scheme."""
    if url and "kodik" in url and "http" not in url:
        return f"https:{url}" if url.startswith("//") else f"https://{url}"
    return url


class AnimeService:
    """Fetches normalized catalog data.

    Args:
        client: Kodik API client.
        cache: Detail cache; None disables caching.
        watch_order_limit: Maximum entries in a watch order.
        watch_order_query_limit: Results requested per watch-order query.
    """

    def __init__(
        self,
        client: KodikClient,
        cache: DetailCache | None = None,
        watch_order_limit: int = MAX_WATCH_ORDER,
        watch_order_query_limit: int = QUERY_LIMIT,
    ) -> None:
        self.client = client
        self.cache = cache
        self.resolver = FranchiseResolver(
            search=self._search_titles,
            limit=watch_order_limit,
            query_limit=watch_order_query_limit,
        )

    def fetch_page(self, params: ListParams) -> CatalogPage:
        """Fetch one page of normalized entries with its continuation cursor.

        Title searches never carry a cursor.

        Raises:
            NetworkError: If the request failed after retries.
        """
        raw = self.client.query(params)
        items = normalize_records(raw.results)
        cursor = None if params.is_search else extract_cursor(raw.next_page)
        logger.debug("Fetched %d entries (more: %s)", len(items), cursor is not None)
        return CatalogPage(items=items, next_cursor=cursor)

    def fetch_list(self, params: ListParams) -> list[Anime]:
        """Fetch one page of normalized entries."""
        return self.fetch_page(params).items

    def _search_titles(self, query: str, limit: int) -> list[Anime]:
        return self.fetch_list(ListParams(search=query, limit=limit))

    def _fetch_detail(self, anime_id: str) -> Anime:
        raw = self.client.get_by_id(anime_id)
        if raw is None:
            raise NotFoundError(f"Anime {anime_id} not found")
        anime = normalize_record(raw)
        anime.seasons = build_seasons(raw)
        return anime

    def fetch_by_id(self, anime_id: str) -> Anime:
        """Get one anime with its season/episode tree.

        A fresh cached copy is returned without a request; otherwise the
        detail record is fetched and cached.

        Raises:
            NotFoundError: If the catalog has no such anime.
            NetworkError: If the request failed after retries.
        """
        return cached_api_call(
            cache=self.cache,
            key=anime_id,
            fetch_fn=lambda: self._fetch_detail(anime_id),
            parse_fn=Anime.model_validate,
            serialize_fn=lambda anime: anime.model_dump(mode="json"),
        )

    def fetch_video(self, anime_id: str, season: int = 1, episode: int = 1) -> AnimeVideo:
        """Resolve the player URL for an episode.

        Falls back to the first season and the first episode when the
        requested ones do not exist, and to the anime's main link when the
        episode has none.

        Raises:
            VideoUnavailableError: If no playable link is known.
            NotFoundError: If the catalog has no such anime.
            NetworkError: If the request failed after retries.
        """
        anime = self.fetch_by_id(anime_id)
        if not anime.seasons:
            raise VideoUnavailableError(f"No seasons available for {anime_id}")

        current_season = anime.find_season(season) or anime.seasons[0]
        if not current_season.episodes:
            raise VideoUnavailableError(
                f"No episodes available for {anime_id} season {current_season.number}"
            )
        current_episode = current_season.find_episode(episode) or current_season.episodes[0]

        url = current_episode.link or anime.source_link
        if not url:
            raise VideoUnavailableError(f"No video URL available for {anime_id}")

        return AnimeVideo(
            url=fix_video_url(url),
            total_seasons=len(anime.seasons),
            total_episodes=len(current_season.episodes),
            current_season=current_season.number,
            current_episode=current_episode.number,
            seasons=anime.seasons,
        )

    def fetch_watch_order(self, title: str) -> list[Anime]:
        """Get the franchise of a title in watch order (may be empty)."""
        return self.resolver.resolve(title)

    def recommendations(self, anime_id: str, limit: int = SHELF_LIMIT) -> list[Anime]:
        """Get entries sharing the first genre of an anime, excluding it."""
        try:
            anime = self.fetch_by_id(anime_id)
            genre = anime.genres[0] if anime.genres else ""
            if not genre or genre == NO_GENRE:
                return []
            similar = self.fetch_list(ListParams(genre=genre, limit=limit))
        except APIError as e:
            logger.warning("Could not load recommendations for %s: %s", anime_id, e)
            return []
        return [item for item in similar if item.id != anime_id]

    def _shelf(self, name: str, params: ListParams) -> list[Anime]:
        try:
            return self.fetch_list(params)
        except APIError as e:
            logger.warning("Could not load %s: %s", name, e)
            return []

    def trending(self, limit: int = SHELF_LIMIT) -> list[Anime]:
        """Top-rated entries."""
        return self._shelf("trending", ListParams(sort="rating_desc", limit=limit))

    def latest(self, limit: int = SHELF_LIMIT) -> list[Anime]:
        """Most recent entries."""
        return self._shelf("latest", ListParams(sort="year_desc", limit=limit))

    def by_genre(self, genre: str, limit: int = SHELF_LIMIT) -> list[Anime]:
        """Entries of one genre."""
        return self._shelf(f"genre {genre!r}", ListParams(genre=genre, limit=limit))
