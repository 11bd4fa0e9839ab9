"""Tests for the catalog service."""

from typing import Any

import pytest

from anikodik.api import NetworkError, NotFoundError, VideoUnavailableError
from anikodik.cache import DetailCache
from anikodik.kodik import KodikPage
from anikodik.models import ListParams
from anikodik.service import AnimeService, fix_video_url
from anikodik.storage import MemoryStore

DETAIL_RECORD = {
    "id": "serial-1",
    "title": "Атака титанов",
    "title_orig": "Shingeki no Kyojin",
    "link": "//kodik.info/serial/1/main/720p",
    "material_data": {"anime_genres": ["экшен", "драма"], "shikimori_rating": 8.5},
    "seasons": {
        "1": {
            "episodes": {
                "1": "//kodik.info/seria/1/a/720p",
                "2": "//kodik.info/seria/2/b/720p",
            }
        },
        "2": {"episodes": {"1": {"link": "https://kodik.info/seria/3/c/720p"}}},
    },
}


class FakeKodik:
    """Kodik client stand-in serving canned pages and details."""

    def __init__(
        self,
        pages: list[KodikPage] | None = None,
        details: dict[str, dict[str, Any]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.pages = pages or []
        self.details = details or {}
        self.error = error
        self.queries: list[ListParams] = []
        self.detail_calls: list[str] = []

    def query(self, params: ListParams) -> KodikPage:
        self.queries.append(params)
        if self.error is not None:
            raise self.error
        return self.pages.pop(0) if self.pages else KodikPage()

    def get_by_id(self, anime_id: str) -> dict[str, Any] | None:
        self.detail_calls.append(anime_id)
        if self.error is not None:
            raise self.error
        return self.details.get(anime_id)


def _page(*records: dict[str, Any], next_page: str | None = None) -> KodikPage:
    return KodikPage(results=list(records), next_page=next_page)


class TestFixVideoUrl:
    """Tests for fix_video_url."""

    def test_protocol_relative(self) -> None:
        """Test protocol-relative player links get https."""
        assert fix_video_url("//kodik.info/seria/1/a/720p") == "https://kodik.info/seria/1/a/720p"

    def test_bare_host(self) -> None:
        """Test scheme-less player links get https://."""
        assert fix_video_url("kodik.info/seria/1") == "https://kodik.info/seria/1"

    def test_unchanged(self) -> None:
        """Test absolute and non-Kodik URLs are left alone."""
        assert fix_video_url("https://kodik.info/x") == "https://kodik.info/x"
        assert fix_video_url("//example.org/x") == "//example.org/x"
        assert fix_video_url("") == ""


class TestFetchPage:
    """Tests for listing pages."""

    def test_cursor_from_next_page(self) -> None:
        """Test list pages carry the continuation token."""
        client = FakeKodik(
            [_page({"id": "serial-1"}, next_page="https://kodikapi.com/list?next=tok")]
        )
        page = AnimeService(client).fetch_page(ListParams())

        assert [a.id for a in page.items] == ["serial-1"]
        assert page.next_cursor == "tok"

    def test_search_has_no_cursor(self) -> None:
        """Test search results never continue."""
        client = FakeKodik(
            [_page({"id": "serial-1"}, next_page="https://kodikapi.com/list?next=tok")]
        )
        page = AnimeService(client).fetch_page(ListParams(search="Наруто"))
        assert page.next_cursor is None

    def test_errors_propagate(self) -> None:
        """Test list failures reach the caller."""
        with pytest.raises(NetworkError):
            AnimeService(FakeKodik(error=NetworkError("down"))).fetch_list(ListParams())


class TestFetchById:
    """Tests for detail lookups."""

    def test_builds_seasons(self) -> None:
        """Test the detail carries normalized fields and the episode tree."""
        service = AnimeService(FakeKodik(details={"serial-1": DETAIL_RECORD}))

        anime = service.fetch_by_id("serial-1")

        assert anime.title == "Атака титанов"
        assert anime.genres == ["экшен", "драма"]
        assert [s.number for s in anime.seasons] == [1, 2]
        assert anime.total_episodes == 3

    def test_not_found(self) -> None:
        """Test a missing record raises NotFoundError."""
        with pytest.raises(NotFoundError):
            AnimeService(FakeKodik()).fetch_by_id("serial-404")

    def test_cached(self) -> None:
        """Test a fresh cached detail is served without a request."""
        client = FakeKodik(details={"serial-1": DETAIL_RECORD})
        service = AnimeService(client, cache=DetailCache(MemoryStore()))

        first = service.fetch_by_id("serial-1")
        second = service.fetch_by_id("serial-1")

        assert client.detail_calls == ["serial-1"]
        assert second == first
        assert second.seasons == first.seasons


class TestFetchVideo:
    """Tests for resolving player URLs."""

    def test_requested_episode(self) -> None:
        """Test the requested season and episode are used."""
        service = AnimeService(FakeKodik(details={"serial-1": DETAIL_RECORD}))

        video = service.fetch_video("serial-1", season=1, episode=2)

        assert video.url == "https://kodik.info/seria/2/b/720p"
        assert video.current_season == 1
        assert video.current_episode == 2
        assert video.total_seasons == 2
        assert video.total_episodes == 2

    def test_falls_back_to_first(self) -> None:
        """Test unknown season/episode numbers fall back to the first ones."""
        service = AnimeService(FakeKodik(details={"serial-1": DETAIL_RECORD}))

        video = service.fetch_video("serial-1", season=9, episode=9)

        assert video.current_season == 1
        assert video.current_episode == 1
        assert video.url == "https://kodik.info/seria/1/a/720p"

    def test_link_only_record(self) -> None:
        """Test a movie with only a main link plays that link."""
        record = {"id": "movie-1", "title": "Фильм", "link": "//kodik.info/video/1/x/720p"}
        service = AnimeService(FakeKodik(details={"movie-1": record}))

        video = service.fetch_video("movie-1")

        assert video.url == "https://kodik.info/video/1/x/720p"
        assert video.total_seasons == 1

    def test_no_link(self) -> None:
        """Test a record without any link is unavailable."""
        service = AnimeService(FakeKodik(details={"movie-1": {"id": "movie-1"}}))
        with pytest.raises(VideoUnavailableError):
            service.fetch_video("movie-1")


class TestShelves:
    """Tests for recommendations and shelf helpers."""

    def test_recommendations_exclude_seed(self) -> None:
        """Test recommendations share the first genre and skip the seed."""
        client = FakeKodik(
            pages=[_page({"id": "serial-1", "title": "A"}, {"id": "serial-2", "title": "B"})],
            details={"serial-1": DETAIL_RECORD},
        )

        result = AnimeService(client).recommendations("serial-1")

        assert [a.id for a in result] == ["serial-2"]
        assert client.queries[0].genre == "экшен"

    def test_recommendations_without_genre(self) -> None:
        """Test entries without genre get no recommendations."""
        client = FakeKodik(details={"serial-1": {"id": "serial-1", "title": "X"}})

        assert AnimeService(client).recommendations("serial-1") == []
        assert client.queries == []

    def test_recommendations_swallow_errors(self) -> None:
        """Test failures give an empty shelf."""
        assert AnimeService(FakeKodik(error=NetworkError("down"))).recommendations("serial-1") == []

    def test_trending_and_latest_sorting(self) -> None:
        """Test shelves request the right sort order."""
        client = FakeKodik()
        service = AnimeService(client)

        service.trending()
        service.latest()
        service.by_genre("драма", limit=5)

        assert client.queries[0].sort == "rating_desc"
        assert client.queries[1].sort == "year_desc"
        assert client.queries[2].genre == "драма"
        assert client.queries[2].limit == 5

    def test_shelf_errors(self) -> None:
        """Test shelf failures give an empty list."""
        service = AnimeService(FakeKodik(error=NetworkError("down")))
        assert service.trending() == []
        assert service.latest() == []
        assert service.by_genre("драма") == []


class TestWatchOrder:
    """Tests for the service-level watch order."""

    def test_uses_title_search(self) -> None:
        """Test franchise sub-queries go through title search."""
        client = FakeKodik(
            pages=[
                _page(
                    {"id": "serial-2", "title": "Атака титанов [ТВ-2]", "year": 2017},
                    {"id": "serial-1", "title": "Атака титанов [ТВ-1]", "year": 2013},
                ),
            ]
        )
        service = AnimeService(client, watch_order_query_limit=20)

        result = service.fetch_watch_order("Атака титанов")

        assert [a.id for a in result] == ["serial-1", "serial-2"]
        assert client.queries[0].search == "Атака титанов"
        assert client.queries[0].limit == 20
