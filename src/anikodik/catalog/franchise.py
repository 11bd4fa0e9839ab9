"""Reconstruct the watch order of a franchise from title searches.

The catalog has no notion of franchises, so related entries are found by
searching for variations of the seed title and filtering the noisy results:

1. Clean the seed title and derive the shorter franchise title.
2. Search for the clean title, the franchise title and, when the seed
   carries a ``[ТВ-N]`` marker, ``"<franchise> ТВ"``.
3. Merge the results by id and keep the relevant ones.
4. Extract a season number from each title and keep one entry per season.
5. Order by season, then year, and cap the list.

Relevance and season extraction are strategies so alternate heuristics can
be swapped in without touching the pipeline.
"""

from __future__ import annotations

import logging
import math
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor

from anikodik.api import APIError
from anikodik.catalog.dedup import merge_by_id
from anikodik.catalog.identity import normalize_title
from anikodik.models import Anime

logger = logging.getLogger(__name__)

# Output cap; guards against floods when the franchise title is generic
MAX_WATCH_ORDER = 15

# Results requested per sub-query
QUERY_LIMIT = 50

# Keyword relevance: share of franchise words that must appear in a
# candidate title, and the word count at or below which all must appear
KEYWORD_MATCH_RATIO = 0.5
SMALL_TITLE_WORDS = 2

# Unresolved season number
NO_SEASON = 0

_ROMAN_NUMERALS = {
    "I": 1,
    "II": 2,
    "III": 3,
    "IV": 4,
    "V": 5,
    "VI": 6,
    "VII": 7,
    "VIII": 8,
    "IX": 9,
    "X": 10,
}
_ROMAN_ALTERNATION = "|".join(sorted(_ROMAN_NUMERALS, key=len, reverse=True))

_SEASON_MARKER = re.compile(r"\[(?:ТВ|TV)-(\d+)\]", re.IGNORECASE)
_RU_SEASON = re.compile(r"(\d+)\s*сезон", re.IGNORECASE)
_EN_SEASON = re.compile(r"season\s*(\d+)", re.IGNORECASE)
_TRAILING_ROMAN = re.compile(rf"\s({_ROMAN_ALTERNATION})\s*$")

_ANNOTATIONS = re.compile(r"\([^)]*\)|\[[^\]]*\]")
_TRAILING_SEASON_SUFFIX = re.compile(
    r"\s*(?:\d+\s*сезон|сезон\s*\d+|season\s*\d+)\s*$", re.IGNORECASE
)
_TRAILING_DIGITS = re.compile(r"\s+\d+\s*$")
_FRANCHISE_SPLIT = re.compile(r":|\s-")
_WHITESPACE = re.compile(r"\s+")


def clean_title(title: str) -> str:
    """Strip annotations and season suffixes from a title.

    Examples:
        "Boku no Hero Academia 3"        -> "Boku no Hero Academia"
        "Атака титанов [ТВ-2]"           -> "Атака титанов"
        "Overlord III (2018)"            -> "Overlord"
        "Магическая битва 2 сезон"       -> "Магическая битва"
    """
    text = _ANNOTATIONS.sub(" ", title or "")
    text = _WHITESPACE.sub(" ", text).strip()
    text = _TRAILING_SEASON_SUFFIX.sub("", text)
    text = _TRAILING_ROMAN.sub("", text)
    text = _TRAILING_DIGITS.sub("", text)
    return _WHITESPACE.sub(" ", text).strip()


def franchise_title(title: str) -> str:
    """Get the franchise part of a title: the clean title up to ':' or ' -'."""
    return _FRANCHISE_SPLIT.split(clean_title(title), maxsplit=1)[0].strip()


def season_marker(title: str) -> int | None:
    """Get N from an explicit ``[ТВ-N]`` / ``[TV-N]`` marker, if present."""
    match = _SEASON_MARKER.search(title or "")
    return int(match.group(1)) if match else None


def build_queries(title: str) -> list[str]:
    """Get the distinct, non-empty search queries for a seed title."""
    cleaned = clean_title(title)
    franchise = franchise_title(title)

    queries = [cleaned, franchise]
    if season_marker(title) is not None and franchise:
        queries.append(f"{franchise} ТВ")

    distinct: list[str] = []
    for query in queries:
        if query and query not in distinct:
            distinct.append(query)
    return distinct


class RelevanceScorer(ABC):
    """Decides whether a search result belongs to a franchise."""

    @abstractmethod
    def is_relevant(self, candidate: Anime, franchise: str) -> bool:
        """Check whether `candidate` belongs to the franchise named `franchise`."""


class KeywordRelevanceScorer(RelevanceScorer):
    """Substring match on the full franchise title or on enough of its words.

    A candidate is relevant when its lower-cased title contains the whole
    franchise title, or at least ``ceil(words * match_ratio)`` of the
    franchise's words. Titles of ``small_title_words`` words or fewer need
    every word.
    """

    def __init__(
        self,
        match_ratio: float = KEYWORD_MATCH_RATIO,
        small_title_words: int = SMALL_TITLE_WORDS,
    ) -> None:
        self.match_ratio = match_ratio
        self.small_title_words = small_title_words

    def required_words(self, word_count: int) -> int:
        """Number of franchise words a candidate must contain."""
        if word_count <= self.small_title_words:
            return word_count
        return math.ceil(word_count * self.match_ratio)

    def is_relevant(self, candidate: Anime, franchise: str) -> bool:
        haystack = (candidate.title or "").lower()
        needle = franchise.lower().strip()
        if not needle or not haystack:
            return False
        if needle in haystack:
            return True

        words = needle.split()
        matched = sum(1 for word in words if word in haystack)
        return matched >= self.required_words(len(words))


class SeasonExtractor(ABC):
    """Reads a season number out of a title."""

    @abstractmethod
    def extract(self, title: str) -> int:
        """Get the season number, or 0 when the title has none."""

    @abstractmethod
    def strip(self, title: str) -> str:
        """Remove season markers, leaving the part shared by all seasons."""


class PatternSeasonExtractor(SeasonExtractor):
    """Ordered regex patterns: [ТВ-N], "N сезон", "Season N", trailing I–X."""

    def extract(self, title: str) -> int:
        text = title or ""
        for pattern in (_SEASON_MARKER, _RU_SEASON, _EN_SEASON):
            match = pattern.search(text)
            if match:
                return int(match.group(1))

        match = _TRAILING_ROMAN.search(text)
        if match:
            return _ROMAN_NUMERALS[match.group(1)]

        return NO_SEASON

    def strip(self, title: str) -> str:
        text = _SEASON_MARKER.sub(" ", title or "")
        text = _RU_SEASON.sub(" ", text)
        text = _EN_SEASON.sub(" ", text)
        text = _TRAILING_ROMAN.sub("", text)
        return normalize_title(text)


def more_episodes_then_newer(candidate: Anime, incumbent: Anime) -> bool:
    """Check whether `candidate` should replace `incumbent` for the same season."""
    if candidate.episode_count != incumbent.episode_count:
        return candidate.episode_count > incumbent.episode_count
    return candidate.year_number > incumbent.year_number


SearchFn = Callable[[str, int], list[Anime]]


class FranchiseResolver:
    """Builds an ordered watch list for the franchise of a seed title.

    Args:
        search: Title search returning normalized entries, called as
            ``search(query, limit)``.
        scorer: Relevance strategy. Defaults to keyword matching.
        extractor: Season strategy. Defaults to regex patterns.
        prefer: Decides which of two entries for the same season is kept.
        limit: Maximum number of entries returned.
        query_limit: Results requested per sub-query.
    """

    def __init__(
        self,
        search: SearchFn,
        scorer: RelevanceScorer | None = None,
        extractor: SeasonExtractor | None = None,
        prefer: Callable[[Anime, Anime], bool] = more_episodes_then_newer,
        limit: int = MAX_WATCH_ORDER,
        query_limit: int = QUERY_LIMIT,
    ) -> None:
        self._search = search
        self.scorer = scorer or KeywordRelevanceScorer()
        self.extractor = extractor or PatternSeasonExtractor()
        self.prefer = prefer
        self.limit = limit
        self.query_limit = query_limit

    def _run_query(self, query: str) -> list[Anime]:
        """Run one sub-query; failures contribute no results."""
        try:
            return self._search(query, self.query_limit)
        except APIError as e:
            logger.warning("Watch-order query %r failed: %s", query, e)
            return []

    def fetch_candidates(self, queries: list[str]) -> list[Anime]:
        """Run all sub-queries concurrently and merge the results by id."""
        if not queries:
            return []
        with ThreadPoolExecutor(max_workers=len(queries)) as pool:
            groups = list(pool.map(self._run_query, queries))
        return merge_by_id(*groups)

    def filter_relevant(self, candidates: list[Anime], franchise: str) -> list[Anime]:
        """Keep candidates the relevance strategy accepts."""
        return [anime for anime in candidates if self.scorer.is_relevant(anime, franchise)]

    def pick_per_season(self, candidates: list[Anime]) -> list[Anime]:
        """Keep one entry per (stripped title, season) with its season number set."""
        chosen: dict[tuple[str, int], Anime] = {}
        for anime in candidates:
            season = self.extractor.extract(anime.title)
            key = (self.extractor.strip(anime.title), season)
            incumbent = chosen.get(key)
            if incumbent is None or self.prefer(anime, incumbent):
                chosen[key] = anime.model_copy(update={"season_number": season})
        return list(chosen.values())

    @staticmethod
    def order(entries: list[Anime]) -> list[Anime]:
        """Sort by season (resolved seasons first), then by year."""
        return sorted(
            entries,
            key=lambda a: (
                (a.season_number or NO_SEASON) == NO_SEASON,
                a.season_number or NO_SEASON,
                a.year_number,
            ),
        )

    def resolve(self, title: str) -> list[Anime]:
        """Get the franchise entries for a seed title in watch order.

        Args:
            title: Title of the anime being viewed.

        Returns:
            Up to `limit` entries with `season_number` set, or an empty list
            when nothing relevant was found.
        """
        franchise = franchise_title(title)
        if not franchise:
            return []

        queries = build_queries(title)
        logger.debug("Resolving watch order for %r with queries %s", title, queries)

        candidates = self.fetch_candidates(queries)
        relevant = self.filter_relevant(candidates, franchise)
        ordered = self.order(self.pick_per_season(relevant))

        logger.debug(
            "Watch order for %r: %d candidates, %d relevant, %d kept",
            title,
            len(candidates),
            len(relevant),
            min(len(ordered), self.limit),
        )
        return ordered[: self.limit]
