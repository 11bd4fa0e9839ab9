"""User-facing error messages shared by the command-line commands."""

from __future__ import annotations

from anikodik.api import (
    APIError,
    AuthError,
    MalformedDataError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    VideoUnavailableError,
)
from anikodik.storage import PersistenceError


def get_friendly_message(error: Exception) -> str:
    """Translate an exception into a short message for the user.

    Args:
        error: The exception raised by a catalog or library operation.

    Returns:
        A one-line explanation with a hint where one helps.
    """
    if isinstance(error, AuthError):
        return "The Kodik API rejected the token. Check api_key in anikodik.ini or KODIK_API_KEY."
    if isinstance(error, RateLimitError):
        if error.retry_after:
            return f"The Kodik API is rate limiting requests. Try again in {error.retry_after}s."
        return "The Kodik API is rate limiting requests. Try again shortly."
    if isinstance(error, VideoUnavailableError):
        return f"No playable video is known for this episode ({error})."
    if isinstance(error, NotFoundError):
        return f"Nothing found: {error}"
    if isinstance(error, MalformedDataError):
        return "The Kodik API returned data that could not be read. Try again later."
    if isinstance(error, NetworkError):
        return f"Could not reach the Kodik API after several attempts ({error})."
    if isinstance(error, PersistenceError):
        return f"The local store could not be used: {error}"
    if isinstance(error, APIError):
        return f"Catalog error: {error}"
    return str(error) or type(error).__name__
