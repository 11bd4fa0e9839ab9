"""Per-user collection, watch history, comments and ratings.

All data lives in the local key/value store as JSON strings:

    user_<uid>_collection      ["serial-123", "movie-9"]
    user_<uid>_history         [{"id": ..., "timestamp": ..., "season": 1, "episode": 3}]
    user_<uid>_liked_comments  ["<comment id>", ...]
    comments_<anime id>        [Comment, ...]  (newest first)
    ratings_<anime id>         [Rating, ...]

Only ids with a known catalog prefix are persisted; invalid ids found on
read are dropped and the stored list is rewritten. When no store is
available, reads return empty values and writes report failure.
"""

from __future__ import annotations

import json
import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from anikodik.api import APIError, NotFoundError
from anikodik.models import Anime, Comment, HistoryEntry, Rating, RatingSummary
from anikodik.storage import KeyValueStore, PersistenceError

if TYPE_CHECKING:
    from anikodik.service import AnimeService

logger = logging.getLogger(__name__)

VALID_ID_PREFIXES = ("serial-", "movie-")

# Watch history length per user
HISTORY_LIMIT = 20

MIN_RATING = 1
MAX_RATING = 5


class LibraryError(Exception):
    """Base exception for user library errors."""

    pass


class CommentNotFoundError(LibraryError):
    """The comment being replied to does not exist."""

    pass


def is_valid_anime_id(anime_id: Any) -> bool:
    """Check whether an id may be persisted in collections and history."""
    return isinstance(anime_id, str) and anime_id.startswith(VALID_ID_PREFIXES)


class UserLibrary:
    """User data on top of a key/value store.

    Args:
        store: Backing store, or None when persistence is unavailable.
        service: Used to resolve ids into anime for collection and history.
        history_limit: Number of history entries kept per user.
        clock: Returns the current (aware) time. Defaults to UTC now.
    """

    def __init__(
        self,
        store: KeyValueStore | None,
        service: AnimeService | None = None,
        history_limit: int = HISTORY_LIMIT,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.service = service
        self.history_limit = history_limit
        self._clock = clock or (lambda: datetime.now(UTC))

    # --- store access ---

    def _read(self, key: str) -> Any:
        """Read a JSON value; missing, unreadable or unavailable yields None."""
        if self.store is None:
            return None
        try:
            raw = self.store.get(key)
        except PersistenceError as e:
            logger.warning("Could not read %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unreadable value under %s", key)
            return None

    def _read_list(self, key: str) -> list[Any]:
        value = self._read(key)
        return value if isinstance(value, list) else []

    def _write(self, key: str, value: Any) -> bool:
        """Write a JSON value. Returns False when it could not be stored."""
        if self.store is None:
            return False
        try:
            self.store.set(key, json.dumps(value, ensure_ascii=False))
        except PersistenceError as e:
            logger.warning("Could not write %s: %s", key, e)
            return False
        return True

    def _now_ms(self) -> int:
        return int(self._clock().timestamp() * 1000)

    # --- collection ---

    @staticmethod
    def _collection_key(user_id: str) -> str:
        return f"user_{user_id}_collection"

    def collection_ids(self, user_id: str) -> list[str]:
        """Get the ids in a user's collection, dropping invalid ones."""
        key = self._collection_key(user_id)
        stored = self._read_list(key)
        valid = [anime_id for anime_id in stored if is_valid_anime_id(anime_id)]
        if len(valid) != len(stored):
            logger.info("Dropping %d invalid ids from %s", len(stored) - len(valid), key)
            self._write(key, valid)
        return valid

    def get_collection(self, user_id: str) -> list[Anime]:
        """Get the anime in a user's collection; ids that fail to load are skipped."""
        return self._resolve(self.collection_ids(user_id))[0]

    def add_to_collection(self, user_id: str, anime_id: str) -> bool:
        """Add an anime to a collection.

        Returns:
            True if the id is in the collection afterwards.
        """
        if not is_valid_anime_id(anime_id):
            logger.warning("Refusing to add invalid id %r to collection", anime_id)
            return False
        if self.store is None:
            return False

        collection = self.collection_ids(user_id)
        if anime_id in collection:
            return True
        collection.append(anime_id)
        return self._write(self._collection_key(user_id), collection)

    def remove_from_collection(self, user_id: str, anime_id: str) -> bool:
        """Remove an anime from a collection.

        Returns:
            False if there was no stored collection or it could not be saved.
        """
        key = self._collection_key(user_id)
        if self._read(key) is None:
            return False
        collection = [i for i in self.collection_ids(user_id) if i != anime_id]
        return self._write(key, collection)

    def is_in_collection(self, user_id: str, anime_id: str) -> bool:
        """Check whether an anime is in a collection."""
        return anime_id in self.collection_ids(user_id)

    # --- history ---

    @staticmethod
    def _history_key(user_id: str) -> str:
        return f"user_{user_id}_history"

    def history_entries(self, user_id: str) -> list[HistoryEntry]:
        """Get a user's history, newest first, dropping invalid entries."""
        key = self._history_key(user_id)
        stored = self._read_list(key)

        entries: list[HistoryEntry] = []
        for item in stored:
            try:
                entry = HistoryEntry.model_validate(item)
            except ValidationError:
                continue
            if is_valid_anime_id(entry.id):
                entries.append(entry)

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        if len(entries) != len(stored):
            self._write(key, [e.model_dump() for e in entries])
        return entries

    def add_to_history(
        self, user_id: str, anime_id: str, season: int = 1, episode: int = 1
    ) -> bool:
        """Record that a user watched an episode.

        The anime moves to the front of the history; only the most recent
        `history_limit` entries are kept.

        Returns:
            True if the history was saved.
        """
        if not is_valid_anime_id(anime_id):
            logger.warning("Refusing to add invalid id %r to history", anime_id)
            return False
        if self.store is None:
            return False

        entries = [e for e in self.history_entries(user_id) if e.id != anime_id]
        entries.insert(
            0,
            HistoryEntry(id=anime_id, timestamp=self._now_ms(), season=season, episode=episode),
        )
        entries = entries[: self.history_limit]
        return self._write(self._history_key(user_id), [e.model_dump() for e in entries])

    def get_watch_history(self, user_id: str) -> list[Anime]:
        """Get the anime in a user's history, newest first.

        Entries whose anime no longer exists are removed from the history.
        """
        entries = self.history_entries(user_id)
        resolved, missing = self._resolve([e.id for e in entries])
        if missing:
            kept = [e.model_dump() for e in entries if e.id not in missing]
            self._write(self._history_key(user_id), kept)
        return resolved

    def _resolve(self, anime_ids: list[str]) -> tuple[list[Anime], set[str]]:
        """Fetch anime by id.

        Returns:
            Tuple of (resolved anime in input order, ids the catalog reported
            as not found). Other failures are skipped without being reported.
        """
        if self.service is None or not anime_ids:
            return [], set()

        resolved: list[Anime] = []
        missing: set[str] = set()
        for anime_id in anime_ids:
            try:
                resolved.append(self.service.fetch_by_id(anime_id))
            except NotFoundError:
                missing.add(anime_id)
            except APIError as e:
                logger.warning("Could not load %s: %s", anime_id, e)
        return resolved, missing

    # --- comments ---

    @staticmethod
    def _comments_key(anime_id: str) -> str:
        return f"comments_{anime_id}"

    @staticmethod
    def _liked_key(user_id: str) -> str:
        return f"user_{user_id}_liked_comments"

    def get_comments(self, anime_id: str) -> list[Comment]:
        """Get the comments on an anime, newest first."""
        comments: list[Comment] = []
        for item in self._read_list(self._comments_key(anime_id)):
            try:
                comments.append(Comment.model_validate(item))
            except ValidationError:
                logger.debug("Skipping malformed comment on %s", anime_id)
        return comments

    def _save_comments(self, anime_id: str, comments: list[Comment]) -> bool:
        return self._write(
            self._comments_key(anime_id), [c.model_dump(mode="json") for c in comments]
        )

    def _new_comment(
        self,
        comment_id: str,
        user_id: str,
        username: str,
        content: str,
        avatar: str | None,
    ) -> Comment:
        return Comment(
            id=comment_id,
            user_id=user_id,
            username=username,
            avatar=avatar,
            content=content,
            created_at=self._clock().isoformat(),
        )

    def add_comment(
        self,
        anime_id: str,
        user_id: str,
        username: str,
        content: str,
        avatar: str | None = None,
    ) -> Comment | None:
        """Add a top-level comment.

        Returns:
            The new comment, or None if it could not be saved.
        """
        if self.store is None:
            return None
        comment = self._new_comment(uuid.uuid4().hex, user_id, username, content, avatar)
        comments = self.get_comments(anime_id)
        comments.insert(0, comment)
        return comment if self._save_comments(anime_id, comments) else None

    def add_reply(
        self,
        anime_id: str,
        comment_id: str,
        user_id: str,
        username: str,
        content: str,
        avatar: str | None = None,
    ) -> Comment | None:
        """Reply to a top-level comment.

        Returns:
            The new reply, or None if it could not be saved.

        Raises:
            CommentNotFoundError: If `comment_id` is not a top-level comment.
        """
        if self.store is None:
            return None
        comments = self.get_comments(anime_id)
        parent = next((c for c in comments if c.id == comment_id), None)
        if parent is None:
            raise CommentNotFoundError(f"Comment {comment_id} not found on {anime_id}")

        reply = self._new_comment(
            f"{comment_id}_reply_{uuid.uuid4().hex[:12]}", user_id, username, content, avatar
        )
        parent.replies.append(reply)
        return reply if self._save_comments(anime_id, comments) else None

    def like_comment(self, anime_id: str, comment_id: str, user_id: str) -> bool:
        """Like a comment or reply and remember that the user liked it.

        Returns:
            False if the comment does not exist or could not be saved.
        """
        comments = self.get_comments(anime_id)
        target = next(
            (
                c
                for comment in comments
                for c in (comment, *comment.replies)
                if c.id == comment_id
            ),
            None,
        )
        if target is None:
            return False

        target.likes += 1
        if not self._save_comments(anime_id, comments):
            return False

        liked_key = self._liked_key(user_id)
        liked = [i for i in self._read_list(liked_key) if isinstance(i, str)]
        if comment_id not in liked:
            liked.append(comment_id)
            self._write(liked_key, liked)
        return True

    def has_liked_comment(self, comment_id: str, user_id: str) -> bool:
        """Check whether a user has liked a comment."""
        return comment_id in self._read_list(self._liked_key(user_id))

    # --- ratings ---

    @staticmethod
    def _ratings_key(anime_id: str) -> str:
        return f"ratings_{anime_id}"

    def get_ratings(self, anime_id: str) -> RatingSummary:
        """Get all ratings of an anime and their average (0 when unrated)."""
        ratings: list[Rating] = []
        for item in self._read_list(self._ratings_key(anime_id)):
            try:
                ratings.append(Rating.model_validate(item))
            except ValidationError:
                continue
        average = sum(r.value for r in ratings) / len(ratings) if ratings else 0.0
        return RatingSummary(ratings=ratings, average=average)

    def rate_anime(self, user_id: str, anime_id: str, value: int) -> Rating | None:
        """Set a user's rating for an anime, replacing any earlier one.

        Returns:
            The stored rating, or None if it could not be saved.

        Raises:
            ValueError: If `value` is outside 1..5.
        """
        if not MIN_RATING <= value <= MAX_RATING:
            raise ValueError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")
        if self.store is None:
            return None

        rating = Rating(user_id=user_id, value=value, rated_at=self._clock().isoformat())
        ratings = [r for r in self.get_ratings(anime_id).ratings if r.user_id != user_id]
        ratings.append(rating)
        saved = self._write(self._ratings_key(anime_id), [r.model_dump() for r in ratings])
        return rating if saved else None
