"""Tests for the per-user library."""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest

from anikodik.api import NetworkError, NotFoundError
from anikodik.library import (
    CommentNotFoundError,
    UserLibrary,
    is_valid_anime_id,
)
from anikodik.models import Anime
from anikodik.storage import MemoryStore, PersistenceError


class FakeClock:
    """Clock advancing one second per call."""

    def __init__(self) -> None:
        self.now = datetime(2025, 1, 25, 10, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


class ReadOnlyStore(MemoryStore):
    """Store that can be read but not written."""

    def set(self, key: str, value: str) -> None:
        raise PersistenceError("read-only")


def _library(store: MemoryStore | None = None, service: MagicMock | None = None) -> UserLibrary:
    return UserLibrary(
        store if store is not None else MemoryStore(), service=service, clock=FakeClock()
    )


def _service(missing: set[str] = frozenset(), failing: set[str] = frozenset()) -> MagicMock:
    """Service whose fetch_by_id knows every id except `missing`/`failing`."""

    def fetch(anime_id: str) -> Anime:
        if anime_id in missing:
            raise NotFoundError(anime_id)
        if anime_id in failing:
            raise NetworkError(anime_id)
        return Anime(id=anime_id, title=f"Title {anime_id}")

    service = MagicMock()
    service.fetch_by_id.side_effect = fetch
    return service


class TestValidIds:
    """Tests for id validation."""

    def test_prefixes(self) -> None:
        """Test only serial- and movie- ids are valid."""
        assert is_valid_anime_id("serial-1")
        assert is_valid_anime_id("movie-9")
        assert not is_valid_anime_id("record-abc")
        assert not is_valid_anime_id("//kodik.info/video/1")
        assert not is_valid_anime_id(42)
        assert not is_valid_anime_id(None)


class TestCollection:
    """Tests for collections."""

    def test_add_and_list(self) -> None:
        """Test added ids are listed in insertion order."""
        library = _library(service=_service())
        assert library.add_to_collection("u1", "serial-1")
        assert library.add_to_collection("u1", "movie-2")

        assert library.collection_ids("u1") == ["serial-1", "movie-2"]
        assert [a.id for a in library.get_collection("u1")] == ["serial-1", "movie-2"]

    def test_add_is_idempotent(self) -> None:
        """Test adding an id twice keeps one copy."""
        library = _library()
        library.add_to_collection("u1", "serial-1")
        library.add_to_collection("u1", "serial-1")
        assert library.collection_ids("u1") == ["serial-1"]

    def test_invalid_id_rejected(self) -> None:
        """Test ids without a known prefix are never stored."""
        store = MemoryStore()
        library = _library(store)
        assert library.add_to_collection("u1", "record-abc") is False
        assert store.keys() == []

    def test_invalid_ids_dropped_on_read(self) -> None:
        """Test stored invalid ids are removed and the list rewritten."""
        store = MemoryStore({"user_u1_collection": json.dumps(["serial-1", "junk", 5, "movie-2"])})
        library = _library(store)

        assert library.collection_ids("u1") == ["serial-1", "movie-2"]
        assert json.loads(store.get("user_u1_collection") or "") == ["serial-1", "movie-2"]

    def test_users_are_separate(self) -> None:
        """Test collections are per user."""
        library = _library()
        library.add_to_collection("u1", "serial-1")
        assert library.collection_ids("u2") == []
        assert library.is_in_collection("u1", "serial-1")
        assert not library.is_in_collection("u2", "serial-1")

    def test_remove(self) -> None:
        """Test removing an id."""
        library = _library()
        library.add_to_collection("u1", "serial-1")
        library.add_to_collection("u1", "serial-2")

        assert library.remove_from_collection("u1", "serial-1") is True
        assert library.collection_ids("u1") == ["serial-2"]

    def test_remove_without_collection(self) -> None:
        """Test removing from a user with no stored collection fails."""
        assert _library().remove_from_collection("u1", "serial-1") is False

    def test_unloadable_entries_skipped(self) -> None:
        """Test ids that fail to load are left out of the listing."""
        library = _library(service=_service(missing={"serial-2"}, failing={"serial-3"}))
        for anime_id in ("serial-1", "serial-2", "serial-3"):
            library.add_to_collection("u1", anime_id)

        assert [a.id for a in library.get_collection("u1")] == ["serial-1"]
        assert library.collection_ids("u1") == ["serial-1", "serial-2", "serial-3"]

    def test_no_store(self) -> None:
        """Test every operation degrades without a store."""
        library = UserLibrary(None, service=_service())
        assert library.add_to_collection("u1", "serial-1") is False
        assert library.collection_ids("u1") == []
        assert library.get_collection("u1") == []
        assert library.remove_from_collection("u1", "serial-1") is False

    def test_write_failure(self) -> None:
        """Test a failing store reports failure instead of raising."""
        assert _library(ReadOnlyStore()).add_to_collection("u1", "serial-1") is False


class TestHistory:
    """Tests for watch history."""

    def test_newest_first(self) -> None:
        """Test the most recent entry comes first."""
        library = _library()
        library.add_to_history("u1", "serial-1")
        library.add_to_history("u1", "serial-2", season=2, episode=5)

        entries = library.history_entries("u1")

        assert [e.id for e in entries] == ["serial-2", "serial-1"]
        assert (entries[0].season, entries[0].episode) == (2, 5)
        assert entries[0].timestamp > entries[1].timestamp

    def test_rewatch_moves_to_front(self) -> None:
        """Test watching again moves the entry to the front without duplicating it."""
        library = _library()
        library.add_to_history("u1", "serial-1")
        library.add_to_history("u1", "serial-2")
        library.add_to_history("u1", "serial-1", episode=3)

        entries = library.history_entries("u1")

        assert [e.id for e in entries] == ["serial-1", "serial-2"]
        assert entries[0].episode == 3

    def test_capped(self) -> None:
        """Test only the most recent entries are kept."""
        library = UserLibrary(MemoryStore(), history_limit=20, clock=FakeClock())
        for n in range(25):
            library.add_to_history("u1", f"serial-{n}")

        entries = library.history_entries("u1")

        assert len(entries) == 20
        assert entries[0].id == "serial-24"
        assert entries[-1].id == "serial-5"

    def test_invalid_entries_dropped(self) -> None:
        """Test malformed entries are removed on read."""
        store = MemoryStore(
            {
                "user_u1_history": json.dumps(
                    [
                        {"id": "serial-1", "timestamp": 1000},
                        {"id": "junk", "timestamp": 3000},
                        {"timestamp": 2000},
                        {"id": "serial-2", "timestamp": 2000, "season": 1, "episode": 2},
                    ]
                )
            }
        )
        library = _library(store)

        assert [e.id for e in library.history_entries("u1")] == ["serial-2", "serial-1"]
        assert len(json.loads(store.get("user_u1_history") or "")) == 2

    def test_invalid_id_rejected(self) -> None:
        """Test history refuses ids without a known prefix."""
        assert _library().add_to_history("u1", "record-1") is False

    def test_watch_history_prunes_missing(self) -> None:
        """Test anime the catalog no longer has are removed from history."""
        store = MemoryStore()
        library = _library(store, service=_service(missing={"serial-2"}, failing={"serial-3"}))
        for anime_id in ("serial-1", "serial-2", "serial-3"):
            library.add_to_history("u1", anime_id)

        anime = library.get_watch_history("u1")

        assert [a.id for a in anime] == ["serial-1"]
        assert [e.id for e in library.history_entries("u1")] == ["serial-3", "serial-1"]

    def test_no_store(self) -> None:
        """Test history degrades without a store."""
        library = UserLibrary(None)
        assert library.add_to_history("u1", "serial-1") is False
        assert library.history_entries("u1") == []
        assert library.get_watch_history("u1") == []


class TestComments:
    """Tests for comments, replies and likes."""

    def test_add_newest_first(self) -> None:
        """Test new comments are inserted at the front."""
        library = _library()
        first = library.add_comment("serial-1", "u1", "Аня", "Первый!")
        second = library.add_comment("serial-1", "u2", "Борис", "Второй")

        comments = library.get_comments("serial-1")

        assert first is not None and second is not None
        assert [c.id for c in comments] == [second.id, first.id]
        assert comments[1].content == "Первый!"
        assert comments[1].likes == 0
        assert comments[1].replies == []

    def test_ids_unique(self) -> None:
        """Test comment ids do not collide."""
        library = _library()
        ids = {library.add_comment("serial-1", "u1", "Аня", f"#{n}").id for n in range(20)}
        assert len(ids) == 20

    def test_reply(self) -> None:
        """Test replies are attached to their parent."""
        library = _library()
        parent = library.add_comment("serial-1", "u1", "Аня", "Вопрос")
        reply = library.add_reply("serial-1", parent.id, "u2", "Борис", "Ответ")

        comments = library.get_comments("serial-1")

        assert reply is not None
        assert reply.id.startswith(f"{parent.id}_reply_")
        assert [r.content for r in comments[0].replies] == ["Ответ"]

    def test_reply_to_missing_comment(self) -> None:
        """Test replying to an unknown comment raises."""
        with pytest.raises(CommentNotFoundError):
            _library().add_reply("serial-1", "nope", "u1", "Аня", "?")

    def test_like_comment_and_reply(self) -> None:
        """Test likes are counted on comments and replies and remembered per user."""
        library = _library()
        parent = library.add_comment("serial-1", "u1", "Аня", "Вопрос")
        reply = library.add_reply("serial-1", parent.id, "u2", "Борис", "Ответ")

        assert library.like_comment("serial-1", parent.id, "u3")
        assert library.like_comment("serial-1", reply.id, "u3")

        comments = library.get_comments("serial-1")
        assert comments[0].likes == 1
        assert comments[0].replies[0].likes == 1
        assert library.has_liked_comment(parent.id, "u3")
        assert not library.has_liked_comment(parent.id, "u1")

    def test_like_missing_comment(self) -> None:
        """Test liking an unknown comment fails."""
        assert _library().like_comment("serial-1", "nope", "u1") is False

    def test_malformed_comments_skipped(self) -> None:
        """Test stored comments that do not validate are ignored."""
        store = MemoryStore({"comments_serial-1": json.dumps([{"id": "x"}, "junk"])})
        assert _library(store).get_comments("serial-1") == []

    def test_no_store(self) -> None:
        """Test comments degrade without a store."""
        library = UserLibrary(None)
        assert library.add_comment("serial-1", "u1", "Аня", "Текст") is None
        assert library.get_comments("serial-1") == []

    def test_write_failure(self) -> None:
        """Test a failed save returns None."""
        assert _library(ReadOnlyStore()).add_comment("serial-1", "u1", "Аня", "Текст") is None


class TestRatings:
    """Tests for ratings."""

    def test_average(self) -> None:
        """Test the average over all users."""
        library = _library()
        library.rate_anime("u1", "serial-1", 5)
        library.rate_anime("u2", "serial-1", 2)

        summary = library.get_ratings("serial-1")

        assert summary.count == 2
        assert summary.average == 3.5

    def test_rerating_replaces(self) -> None:
        """Test a user's new rating replaces the old one."""
        library = _library()
        library.rate_anime("u1", "serial-1", 1)
        rating = library.rate_anime("u1", "serial-1", 4)

        summary = library.get_ratings("serial-1")

        assert rating is not None and rating.value == 4
        assert summary.count == 1
        assert summary.average == 4.0

    def test_unrated(self) -> None:
        """Test an unrated anime averages 0."""
        summary = _library().get_ratings("serial-1")
        assert summary.count == 0
        assert summary.average == 0.0

    def test_out_of_range(self) -> None:
        """Test ratings outside 1..5 are rejected."""
        library = _library()
        with pytest.raises(ValueError):
            library.rate_anime("u1", "serial-1", 0)
        with pytest.raises(ValueError):
            library.rate_anime("u1", "serial-1", 6)

    def test_no_store(self) -> None:
        """Test rating without a store reports failure."""
        assert UserLibrary(None).rate_anime("u1", "serial-1", 3) is None
