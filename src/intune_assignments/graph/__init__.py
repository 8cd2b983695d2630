"""Graph client utilities."""

from .client import (
    ApiVersionInput,
    GraphAPIVersion,
    GraphClientConfig,
    GraphClientFactory,
)
from .errors import (
    AuthenticationError,
    GraphAPIError,
    GraphErrorCategory,
    NotFoundError,
    PermissionError,
    RateLimitError,
)
from .rate_limiter import RateLimiter, RateLimitPolicy, rate_limiter
from .requests import SourceEndpoint

__all__ = [
    "GraphAPIError",
    "GraphErrorCategory",
    "RateLimitError",
    "AuthenticationError",
    "PermissionError",
    "NotFoundError",
    "RateLimiter",
    "RateLimitPolicy",
    "rate_limiter",
    "GraphClientFactory",
    "GraphClientConfig",
    "GraphAPIVersion",
    "ApiVersionInput",
    "SourceEndpoint",
]
