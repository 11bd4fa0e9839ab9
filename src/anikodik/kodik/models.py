"""Data models for Kodik API responses."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class KodikPage(BaseModel):
    """One page of raw records from `/list` or `/search`.

    Records are kept as plain dicts; their shape varies between endpoints
    and is resolved by the normalizer.
    """

    results: list[dict[str, Any]] = Field(default_factory=list)
    next_page: str | None = None
    total: int = 0

    @field_validator("results", mode="before")
    @classmethod
    def _results_as_list(cls, value: Any) -> list[dict[str, Any]]:
        """Treat a missing or non-list `results` value as an empty page."""
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @field_validator("next_page", mode="before")
    @classmethod
    def _next_page_as_str(cls, value: Any) -> str | None:
        return value if isinstance(value, str) and value else None

    @field_validator("total", mode="before")
    @classmethod
    def _total_as_int(cls, value: Any) -> int:
        return value if isinstance(value, int) and not isinstance(value, bool) else 0
