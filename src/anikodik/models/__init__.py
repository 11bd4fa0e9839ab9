"""Catalog and user data models."""

from anikodik.models.anime import (
    NO_GENRE,
    UNTITLED,
    Anime,
    AnimeVideo,
    CatalogPage,
    Episode,
    ListParams,
    Season,
)
from anikodik.models.user import Comment, HistoryEntry, Rating, RatingSummary

__all__ = [
    "NO_GENRE",
    "UNTITLED",
    "Anime",
    "AnimeVideo",
    "CatalogPage",
    "Episode",
    "ListParams",
    "Season",
    "Comment",
    "HistoryEntry",
    "Rating",
    "RatingSummary",
]
