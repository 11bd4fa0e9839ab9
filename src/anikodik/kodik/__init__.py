"""Kodik catalog API integration."""

from anikodik.kodik.client import (
    KodikAuthError,
    KodikClient,
    KodikError,
    KodikMalformedResponseError,
    KodikNetworkError,
    KodikNotFoundError,
    KodikRateLimitError,
)
from anikodik.kodik.models import KodikPage

__all__ = [
    "KodikClient",
    "KodikError",
    "KodikAuthError",
    "KodikMalformedResponseError",
    "KodikNetworkError",
    "KodikNotFoundError",
    "KodikRateLimitError",
    "KodikPage",
]
