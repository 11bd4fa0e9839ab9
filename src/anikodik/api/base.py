"""Base classes for API clients.

Provides the exception hierarchy shared by every catalog backend and a base
client class holding the HTTP client, response handling and statistics hooks.
"""

from __future__ import annotations

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Self, cast

import httpx


class APIError(Exception):
    """Base exception for all API errors.

    Backend-specific errors (e.g. KodikError) inherit from both their own
    base and the matching generic class below, so callers can catch either.
    """

    pass


class NetworkError(APIError):
    """Transport failure or non-success status (retried, then surfaced)."""

    pass


class NotFoundError(APIError):
    """The external service returned no matching record."""

    pass


class VideoUnavailableError(NotFoundError):
    """No playable link is known for the requested episode."""

    pass


class AuthError(APIError):
    """Authentication error (invalid API token)."""

    pass


class RateLimitError(APIError):
    """Rate limit exceeded (429).

    Attributes:
        retry_after: Suggested wait time in seconds before retrying.
    """

    def __init__(self, retry_after: int | None = None, message: str | None = None) -> None:
        self.retry_after = retry_after
        if message is None:
            message = f"Rate limit exceeded. Retry after {retry_after}s"
        super().__init__(message)


class MalformedDataError(APIError):
    """Response body could not be decoded into the expected shape."""

    pass


def _parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given as seconds or as an HTTP date.

    Returns:
        Seconds to wait, or None when the header is missing or unparsable.
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return int(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return max(0, int((when - datetime.now(UTC)).total_seconds()))


class BaseAPIClient:
    """Base class for API clients with shared HTTP and statistics patterns.

    Subclasses must set:
        - _error_cls: The generic error class for this API (e.g., KodikNetworkError)
        - _auth_error_cls: Auth error class
        - _not_found_cls: Not-found error class
        - _rate_limit_cls: Rate-limit error class
        - _malformed_cls: Malformed-response error class
        - _error_message_key: JSON key for error message (e.g., "error")
        - _api_name: Human name for error messages (e.g., "Kodik")
    """

    _error_cls: type[APIError] = NetworkError
    _auth_error_cls: type[AuthError] = AuthError
    _not_found_cls: type[NotFoundError] = NotFoundError
    _rate_limit_cls: type[RateLimitError] = RateLimitError
    _malformed_cls: type[MalformedDataError] = MalformedDataError
    _error_message_key: str = "error"
    _api_name: str = "API"

    def __init__(self) -> None:
        self._client: httpx.Client | None = None

    def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> Self:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Handle API response and raise appropriate errors."""
        if response.status_code == 200:
            try:
                payload = response.json()
            except ValueError as e:
                raise self._malformed_cls(f"{self._api_name} returned a non-JSON body") from e
            if not isinstance(payload, dict):
                raise self._malformed_cls(f"{self._api_name} returned an unexpected payload")
            return cast(dict[str, Any], payload)

        if response.status_code in (401, 403):
            raise self._auth_error_cls("Authentication failed")

        if response.status_code == 404:
            raise self._not_found_cls("Resource not found")

        if response.status_code == 429:
            raise self._rate_limit_cls(_parse_retry_after(response.headers.get("Retry-After")))

        # Generic error
        try:
            error_data = response.json()
            message = error_data.get(self._error_message_key, "Unknown error")
        except Exception:
            message = response.text or "Unknown error"

        raise self._error_cls(f"{self._api_name} API error ({response.status_code}): {message}")

    def _record_api_call(self, api_call_type: str) -> None:
        """Record an outgoing API call in fetch statistics."""
        from anikodik.statistics import FetchStatistics

        stats = FetchStatistics.get_current()
        if stats:
            stats.record_api_call(api_call_type)

    def _record_retry(self) -> None:
        """Record a retried request in fetch statistics."""
        from anikodik.statistics import FetchStatistics

        stats = FetchStatistics.get_current()
        if stats:
            stats.record_retry()
