"""Catalog normalization, deduplication and franchise reconciliation."""

from anikodik.catalog.dedup import merge_anime_lists, merge_by_id
from anikodik.catalog.franchise import (
    FranchiseResolver,
    KeywordRelevanceScorer,
    PatternSeasonExtractor,
    RelevanceScorer,
    SeasonExtractor,
    clean_title,
    franchise_title,
    season_marker,
)
from anikodik.catalog.identity import identity_key, normalize_title
from anikodik.catalog.listing import CatalogListing
from anikodik.catalog.normalizer import normalize_record, normalize_records
from anikodik.catalog.pagination import extract_cursor
from anikodik.catalog.seasons import build_seasons

__all__ = [
    "CatalogListing",
    "FranchiseResolver",
    "KeywordRelevanceScorer",
    "PatternSeasonExtractor",
    "RelevanceScorer",
    "SeasonExtractor",
    "build_seasons",
    "clean_title",
    "extract_cursor",
    "franchise_title",
    "identity_key",
    "merge_anime_lists",
    "merge_by_id",
    "normalize_record",
    "normalize_records",
    "normalize_title",
    "season_marker",
]
