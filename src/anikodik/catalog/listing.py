"""Infinite-scroll listing state."""

from __future__ import annotations

import logging
from collections.abc import Callable

from anikodik.api import APIError
from anikodik.catalog.dedup import merge_anime_lists
from anikodik.models import Anime, CatalogPage, ListParams

logger = logging.getLogger(__name__)

PageFetcher = Callable[[ListParams], CatalogPage]


class CatalogListing:
    """Accumulates catalog pages for one set of filters.

    The listing owns the continuation cursor: each page's cursor is stored
    and passed into the next request, and a reset clears it together with
    the accumulated items. Only one fetch runs at a time; a request made
    while another is in flight is ignored. Once the listing is closed,
    results that arrive are discarded.

    Attributes:
        params: Current filters. `page` and `cursor` are managed here.
        items: Accumulated entries, unique by identity key.
        cursor: Continuation token for the next page, if any.
        has_more: False once the catalog reported the last page.
        loading: True while a fetch is in flight.
        closed: True after `close()`.
        error: The error from the last failed fetch, if any.
    """

    def __init__(self, fetch_page: PageFetcher, params: ListParams | None = None) -> None:
        self._fetch_page = fetch_page
        self.params = params or ListParams()
        self.items: list[Anime] = []
        self.cursor: str | None = None
        self.page = 0
        self.has_more = True
        self.loading = False
        self.closed = False
        self.error: APIError | None = None

    @property
    def is_search(self) -> bool:
        """Title searches return a single page."""
        return self.params.is_search

    @property
    def exhausted(self) -> bool:
        """True when the listing has items and no further page exists."""
        return not self.has_more and bool(self.items)

    def _fetch(self, params: ListParams) -> CatalogPage | None:
        """Run one fetch under the loading latch.

        Returns:
            The page, or None when the listing was closed in the meantime.
        """
        self.loading = True
        try:
            page = self._fetch_page(params)
        except APIError as e:
            if self.closed:
                logger.debug("Discarding error for closed listing: %s", e)
                return None
            self.error = e
            raise
        finally:
            self.loading = False

        if self.closed:
            logger.debug("Discarding page for closed listing")
            return None
        self.error = None
        return page

    def _commit(self, page: CatalogPage, number: int) -> None:
        """Record a page's cursor and whether more pages exist."""
        self.cursor = page.next_cursor
        if not page.items or self.is_search or page.next_cursor is None:
            self.has_more = False
        if page.items:
            self.page = number

    def load_first(self) -> bool:
        """Load page 1, replacing the accumulated items.

        Also used to retry after an error.

        Returns:
            True if a page was applied.

        Raises:
            APIError: If the fetch failed; the error is kept in `error`.
        """
        if self.closed or self.loading:
            return False

        page = self._fetch(self.params.model_copy(update={"page": 1, "cursor": None}))
        if page is None:
            return False

        self.items = merge_anime_lists([], page.items)
        self.has_more = True
        self._commit(page, 1)
        return True

    def load_more(self) -> bool:
        """Load the next page and append its new entries.

        Does nothing while a fetch is in flight, after the last page, in
        search mode, or once closed.

        Returns:
            True if a page was applied.

        Raises:
            APIError: If the fetch failed; the error is kept in `error`.
        """
        if self.closed or self.loading or not self.has_more or self.is_search:
            return False
        if self.cursor is None:
            return self.load_first() if self.page == 0 else False

        number = self.page + 1
        page = self._fetch(self.params.model_copy(update={"page": number, "cursor": self.cursor}))
        if page is None:
            return False

        self.items = merge_anime_lists(self.items, page.items)
        self._commit(page, number)
        return True

    def reset(self, params: ListParams | None = None) -> bool:
        """Apply new filters: clear items and cursor, then reload page 1.

        Args:
            params: New filters. Keeps the current ones when omitted.

        Returns:
            True if the first page was applied.
        """
        if params is not None:
            self.params = params.model_copy(update={"page": 1, "cursor": None})
        self.items = []
        self.cursor = None
        self.page = 0
        self.has_more = True
        self.error = None
        return self.load_first()

    def close(self) -> None:
        """Stop accepting results."""
        self.closed = True
