"""Continuation cursors for the catalog's `/list` walk."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

CURSOR_PARAM = "next"


def extract_cursor(next_page: str | None) -> str | None:
    """Get the continuation token from a page's ``next_page`` URL.

    The token is opaque and passed back unchanged with the next request.

    Args:
        next_page: The ``next_page`` URL reported by the API, if any.

    Returns:
        The token, or None when there are no more pages.
    """
    if not next_page:
        return None
    try:
        query = urlsplit(next_page).query
    except ValueError:
        return None
    values = parse_qs(query).get(CURSOR_PARAM)
    if not values or not values[0]:
        return None
    return values[0]
