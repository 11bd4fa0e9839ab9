"""Shared helpers: retry decorator and defensive value coercion."""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import Callable
from typing import Any, ParamSpec, TypeVar

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def retry_with_backoff(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    backoff_factor: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    on_retry: Callable[[int, BaseException], None] | None = None,
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Retry a function when it raises one of `retry_on`.

    The delay before attempt ``n + 1`` is ``base_delay * backoff_factor ** (n - 1)``,
    so the default factor of 1.0 gives a fixed delay. When attempts are
    exhausted the last exception propagates unchanged.

    Args:
        max_attempts: Total number of calls, including the first one.
        base_delay: Delay in seconds before the first retry.
        backoff_factor: Multiplier applied to the delay after each retry.
        retry_on: Exception types that trigger a retry.
        on_retry: Optional callback invoked as (attempt, error) before sleeping.

    Example:
        ```python
        @retry_with_backoff(max_attempts=3, base_delay=1.0, retry_on=(KodikNetworkError,))
        def _get(self, endpoint: str, params: dict) -> dict: ...
        ```
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            delay = base_delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as e:
                    if attempt == max_attempts:
                        raise
                    logger.debug(
                        "%s failed (attempt %d/%d): %s", func.__name__, attempt, max_attempts, e
                    )
                    if on_retry is not None:
                        on_retry(attempt, e)
                    time.sleep(delay)
                    delay *= backoff_factor
            raise AssertionError("unreachable")

        return wrapper

    return decorator


def coerce_int(value: Any, default: int = 0) -> int:
    """Convert a loosely typed value to a non-negative int.

    Accepts ints, floats and numeric strings ("12", "12.0"). Anything else,
    including negatives, yields `default`.
    """
    if isinstance(value, bool):
        return default
    try:
        number = int(float(value))
    except (TypeError, ValueError, OverflowError):
        return default
    return number if number >= 0 else default


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Convert a loosely typed value to a non-negative finite float."""
    if isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number or number in (float("inf"), float("-inf")) or number < 0:
        return default
    return number
