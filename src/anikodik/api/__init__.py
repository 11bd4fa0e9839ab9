"""Shared API client utilities."""

from anikodik.api.base import (
    APIError,
    AuthError,
    BaseAPIClient,
    MalformedDataError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    VideoUnavailableError,
)
from anikodik.api.helpers import cached_api_call

__all__ = [
    "APIError",
    "AuthError",
    "MalformedDataError",
    "NetworkError",
    "NotFoundError",
    "RateLimitError",
    "VideoUnavailableError",
    "BaseAPIClient",
    "cached_api_call",
]
