"""Canonical catalog entities."""

from __future__ import annotations

from pydantic import BaseModel, Field

NO_GENRE = "Без жанра"
UNTITLED = "Без названия"


class Episode(BaseModel):
    """A playable episode."""

    id: str
    number: int = Field(ge=1)
    title: str
    link: str = ""
    screenshots: list[str] = Field(default_factory=list)


class Season(BaseModel):
    """A season with its episodes in ascending order."""

    id: str
    number: int = Field(ge=1)
    title: str
    episodes: list[Episode] = Field(default_factory=list)

    def find_episode(self, number: int) -> Episode | None:
        """Get the episode with the given number, if present."""
        return next((ep for ep in self.episodes if ep.number == number), None)


class Anime(BaseModel):
    """A normalized catalog entry.

    Built fresh from the external record on every fetch. `season_number` is
    only filled in by franchise resolution and is never serialized.
    """

    id: str = Field(min_length=1)
    title: str = ""
    title_orig: str | None = None
    poster: str | None = None
    genres: list[str] = Field(default_factory=lambda: [NO_GENRE], min_length=1)
    rating: float = Field(default=0.0, ge=0)
    status: str = "released"
    description: str = ""
    year: str = ""
    episode_count: int = Field(default=0, ge=0)
    duration: str = ""
    studios: str = ""
    countries: str = ""
    source_link: str = ""
    shikimori_id: str | None = None
    kinopoisk_id: str | None = None
    imdb_id: str | None = None
    worldart_id: str | None = None
    type: str = "anime"
    seasons: list[Season] = Field(default_factory=list)
    season_number: int | None = Field(default=None, exclude=True)

    @property
    def display_title(self) -> str:
        """Get the title for display, with a placeholder for untitled records."""
        return self.title or self.title_orig or UNTITLED

    @property
    def year_number(self) -> int:
        """Release year as an int (0 when unknown)."""
        digits = self.year.strip()[:4]
        return int(digits) if digits.isdigit() else 0

    @property
    def total_episodes(self) -> int:
        """Number of episodes across all seasons."""
        return sum(len(season.episodes) for season in self.seasons)

    def find_season(self, number: int) -> Season | None:
        """Get the season with the given number, if present."""
        return next((s for s in self.seasons if s.number == number), None)


class AnimeVideo(BaseModel):
    """Resolved playback target for one episode."""

    url: str
    total_seasons: int
    total_episodes: int
    current_season: int
    current_episode: int
    seasons: list[Season] = Field(default_factory=list)


class ListParams(BaseModel):
    """Parameters for a catalog listing request."""

    page: int = Field(default=1, ge=1)
    search: str = ""
    genre: str = ""
    status: str = ""
    sort: str = ""  # "<field>_<direction>", e.g. "rating_desc"
    cursor: str | None = None
    limit: int = Field(default=50, ge=1)

    @property
    def is_search(self) -> bool:
        """Title searches are single-page; they never paginate."""
        return bool(self.search.strip())

    @property
    def has_filters(self) -> bool:
        """Whether any search/filter/sort parameter is set."""
        return bool(self.search or self.genre or self.status or self.sort)


class CatalogPage(BaseModel):
    """One page of normalized results plus the continuation cursor."""

    items: list[Anime] = Field(default_factory=list)
    next_cursor: str | None = None

    @property
    def has_more(self) -> bool:
        """True while the catalog reports a further page."""
        return self.next_cursor is not None
