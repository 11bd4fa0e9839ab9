"""Per-user records kept in the local store."""

from __future__ import annotations

from pydantic import BaseModel, Field


class HistoryEntry(BaseModel):
    """One watched title; `timestamp` is milliseconds since the epoch."""

    id: str
    timestamp: int
    season: int = 1
    episode: int = 1


class Comment(BaseModel):
    """A comment on an anime, with one level of replies."""

    id: str
    user_id: str
    username: str
    avatar: str | None = None
    content: str
    created_at: str
    likes: int = 0
    replies: list[Comment] = Field(default_factory=list)


class Rating(BaseModel):
    """A user's score for a title."""

    user_id: str
    value: int = Field(ge=1, le=5)
    rated_at: str


class RatingSummary(BaseModel):
    """All ratings for a title and their mean."""

    ratings: list[Rating] = Field(default_factory=list)
    average: float = 0.0

    @property
    def count(self) -> int:
        """Number of ratings."""
        return len(self.ratings)
