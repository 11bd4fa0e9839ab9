"""Statistics tracking for catalog fetches.

Tracks API calls, retries and detail-cache hits/misses so a command can
print a short summary of how much network traffic it caused.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from rich.console import Console


@dataclass
class FetchStatistics:
    """Statistics for one command or session.

    Use by starting it, doing work, then printing:

        stats = FetchStatistics()
        stats.start()
        # ... fetch pages, details ...
        stats.stop()
        stats.print_summary(console)
    """

    # API call counts
    list_requests: int = 0
    search_requests: int = 0
    detail_requests: int = 0
    retries: int = 0

    # Detail cache
    cache_hits: int = 0
    cache_misses: int = 0

    # Overall timing
    _started_at: float = 0.0
    _ended_at: float = 0.0

    # Counters are bumped from franchise sub-query worker threads
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    # Global instance for easy access
    _instance: ClassVar[FetchStatistics | None] = None

    def start(self) -> None:
        """Start tracking and make this the current instance."""
        self._started_at = time.time()
        FetchStatistics._instance = self

    def stop(self) -> None:
        """Stop tracking."""
        self._ended_at = time.time()

    @classmethod
    def get_current(cls) -> FetchStatistics | None:
        """Get the current active statistics instance."""
        return cls._instance

    @classmethod
    def reset_current(cls) -> None:
        """Reset the current statistics instance."""
        cls._instance = None

    @property
    def total_duration(self) -> timedelta:
        """Get the total tracked duration."""
        if self._started_at == 0:
            return timedelta(0)
        end = self._ended_at if self._ended_at > 0 else time.time()
        return timedelta(seconds=end - self._started_at)

    @property
    def total_api_calls(self) -> int:
        """Get the total number of catalog API calls."""
        return self.list_requests + self.search_requests + self.detail_requests

    @property
    def cache_hit_rate(self) -> float:
        """Get the cache hit rate as a percentage."""
        total = self.cache_hits + self.cache_misses
        if total == 0:
            return 0.0
        return (self.cache_hits / total) * 100

    def record_api_call(self, call_type: str) -> None:
        """Record an API call.

        Args:
            call_type: Type of call ("list", "search" or "detail").
        """
        with self._lock:
            if call_type == "list":
                self.list_requests += 1
            elif call_type == "search":
                self.search_requests += 1
            elif call_type == "detail":
                self.detail_requests += 1

    def record_retry(self) -> None:
        """Record a retried request."""
        with self._lock:
            self.retries += 1

    def record_cache_hit(self) -> None:
        """Record a detail cache hit."""
        with self._lock:
            self.cache_hits += 1

    def record_cache_miss(self) -> None:
        """Record a detail cache miss."""
        with self._lock:
            self.cache_misses += 1

    def _format_duration(self, td: timedelta) -> str:
        """Format a timedelta for display."""
        total_seconds = td.total_seconds()
        if total_seconds < 60:
            return f"{total_seconds:.1f}s"
        minutes = int(total_seconds // 60)
        seconds = total_seconds % 60
        return f"{minutes}m {seconds:.1f}s"

    def print_summary(self, console: Console) -> None:
        """Print a summary of statistics to the console.

        Args:
            console: Rich console for output.
        """
        console.print()
        console.print("[bold]Fetch Summary[/bold]")
        console.print(f"[bold]Total time:[/bold] {self._format_duration(self.total_duration)}")

        if self.total_api_calls > 0:
            console.print(f"[bold]API calls:[/bold] {self.total_api_calls}")
            if self.list_requests > 0:
                console.print(f"  List pages: {self.list_requests}")
            if self.search_requests > 0:
                console.print(f"  Searches: {self.search_requests}")
            if self.detail_requests > 0:
                console.print(f"  Details: {self.detail_requests}")
            if self.retries > 0:
                console.print(f"  Retries: {self.retries}")

        total_cache = self.cache_hits + self.cache_misses
        if total_cache > 0:
            console.print(
                f"[bold]Cache:[/bold] {self.cache_hit_rate:.0f}% hit rate "
                f"({self.cache_hits} hits, {self.cache_misses} misses)"
            )
