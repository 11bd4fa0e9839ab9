"""Kodik API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from anikodik.api import (
    APIError,
    AuthError,
    BaseAPIClient,
    MalformedDataError,
    NetworkError,
    NotFoundError,
    RateLimitError,
)
from anikodik.kodik.models import KodikPage
from anikodik.models import ListParams
from anikodik.utils import retry_with_backoff

logger = logging.getLogger(__name__)


class KodikError(APIError):
    """Base exception for Kodik API errors."""

    pass


class KodikNetworkError(KodikError, NetworkError):
    """Transport failure or unexpected HTTP status."""

    pass


class KodikAuthError(KodikError, AuthError):
    """Authentication error (missing or invalid token)."""

    pass


class KodikNotFoundError(KodikError, NotFoundError):
    """Resource not found."""

    pass


class KodikRateLimitError(KodikError, RateLimitError):
    """Rate limit exceeded."""

    def __init__(self, retry_after: int | None = None) -> None:
        super().__init__(retry_after=retry_after)


class KodikMalformedResponseError(KodikError, MalformedDataError):
    """Response body was not the JSON object the API documents."""

    pass


# Catalog types requested by listings
ANIME_TYPES = "anime-serial,anime"


class KodikClient(BaseAPIClient):
    """Client for the Kodik catalog API.

    Every request carries the API token and asks for material data. Failed
    requests are retried a fixed number of times with a fixed delay; auth and
    not-found errors are raised immediately.
    """

    BASE_URL = "https://kodikapi.com"
    DEFAULT_TIMEOUT = 30.0
    DEFAULT_MAX_ATTEMPTS = 3
    DEFAULT_RETRY_DELAY = 1.0

    _error_cls = KodikNetworkError
    _auth_error_cls = KodikAuthError
    _not_found_cls = KodikNotFoundError
    _rate_limit_cls = KodikRateLimitError
    _malformed_cls = KodikMalformedResponseError
    _error_message_key = "error"
    _api_name = "Kodik"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the Kodik client.

        Args:
            api_key: Kodik API token. If not provided, reads from config.
            base_url: API root. Defaults to the public endpoint.
            timeout: Request timeout in seconds.
            max_attempts: Total attempts per request, including the first.
            retry_delay: Seconds to wait between attempts.
            transport: Optional httpx transport (used by tests).
        """
        super().__init__()

        # Load from config if not provided
        if api_key is None:
            from anikodik.config import get_config

            cfg = get_config()
            api_key = cfg.kodik.api_key
            if base_url is None:
                base_url = cfg.kodik.base_url

        self.api_key = api_key
        if not self.api_key:
            raise KodikAuthError(
                "Kodik API key not provided. Configure api_key in anikodik.ini "
                "or set KODIK_API_KEY."
            )

        self.base_url = (base_url or self.BASE_URL).rstrip("/")
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._transport = transport
        # Created up front; watch-order sub-queries share it across threads
        self._get_client()

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self._timeout,
                headers={"Accept": "application/json"},
                params={"token": self.api_key, "with_material_data": "true"},
                transport=self._transport,
            )
        return self._client

    def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET an endpoint with retry.

        Raises:
            KodikNetworkError: If every attempt failed on transport or status.
            KodikRateLimitError: If the API kept rejecting with 429.
            KodikAuthError: If the token was rejected.
            KodikNotFoundError: If the endpoint returned 404.
            KodikMalformedResponseError: If the body was not a JSON object.
        """

        @retry_with_backoff(
            max_attempts=self._max_attempts,
            base_delay=self._retry_delay,
            retry_on=(NetworkError, RateLimitError),
            on_retry=lambda attempt, error: self._record_retry(),
        )
        def attempt() -> dict[str, Any]:
            try:
                response = self._get_client().get(endpoint, params=params)
            except httpx.RequestError as e:
                raise KodikNetworkError(f"Kodik request failed: {e}") from e
            return self._handle_response(response)

        return attempt()

    def build_query(self, params: ListParams) -> tuple[str, dict[str, Any]]:
        """Translate listing parameters into an endpoint and query string.

        Title searches go to `/search` and are never paginated. A cursor
        continues a `/list` walk as-is. Otherwise `/list` is filtered,
        sorted and offset by page.

        Args:
            params: Listing parameters.

        Returns:
            Tuple of (endpoint, query parameters). Token and material-data
            flags are added by the HTTP client.
        """
        search = params.search.strip()
        if search:
            return "/search", {"title": search, "full_match": "false", "limit": params.limit}

        if params.cursor:
            return "/list", {
                "next": params.cursor,
                "with_pagination": "true",
                "limit": params.limit,
            }

        query: dict[str, Any] = {
            "types": ANIME_TYPES,
            "limit": params.limit,
            "with_pagination": "true",
        }
        if params.page > 1:
            query["offset"] = (params.page - 1) * params.limit
        if params.genre:
            query["genres"] = params.genre
        if params.status:
            query["anime_status"] = params.status
        if params.sort:
            field, _, direction = params.sort.rpartition("_")
            if field and direction:
                query["sort"] = field
                query["order"] = direction
            else:
                query["sort"] = params.sort
        return "/list", query

    def query(self, params: ListParams) -> KodikPage:
        """Fetch one page of raw catalog records.

        Args:
            params: Listing parameters.

        Returns:
            The raw page. A missing or non-list `results` is an empty page.
        """
        endpoint, query = self.build_query(params)
        self._record_api_call("search" if endpoint == "/search" else "list")
        logger.debug("Kodik %s %s", endpoint, query)

        data = self._get(endpoint, query)
        try:
            return KodikPage.model_validate(data)
        except ValidationError as e:
            raise KodikMalformedResponseError(f"Unexpected Kodik page: {e}") from e

    def search_title(self, title: str, limit: int = 50) -> KodikPage:
        """Search the catalog by title.

        Args:
            title: Free-text title.
            limit: Maximum number of results.

        Returns:
            One page of raw records.
        """
        return self.query(ListParams(search=title, limit=limit))

    def get_by_id(self, anime_id: str) -> dict[str, Any] | None:
        """Fetch a raw detail record including its season/episode tree.

        Args:
            anime_id: Catalog identifier (e.g. "serial-12345").

        Returns:
            The first matching record, or None when the catalog has none.
        """
        self._record_api_call("detail")
        data = self._get(
            "/search",
            {"id": anime_id, "with_episodes": "true"},
        )
        try:
            page = KodikPage.model_validate(data)
        except ValidationError as e:
            raise KodikMalformedResponseError(f"Unexpected Kodik page: {e}") from e
        if not page.results:
            return None
        return page.results[0]
