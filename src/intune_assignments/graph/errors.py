from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar


class GraphErrorCategory(str, Enum):
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    AUTHENTICATION = "authentication"
    UNKNOWN = "unknown"


READ_PERMISSIONS: tuple[str, ...] = (
    "DeviceManagementConfiguration.Read.All",
    "DeviceManagementApps.Read.All",
    "Group.Read.All",
)

_SUGGESTIONS: dict[GraphErrorCategory, str] = {
    GraphErrorCategory.AUTHENTICATION: (
        "Sign in again with an account that has access to the tenant."
    ),
    GraphErrorCategory.PERMISSION: (
        "Grant " + ", ".join(READ_PERMISSIONS) + " to the app registration."
    ),
    GraphErrorCategory.NOT_FOUND: (
        "The object was deleted or is not visible to this account."
    ),
    GraphErrorCategory.NETWORK: "Check your internet connection and try again.",
    GraphErrorCategory.VALIDATION: (
        "The endpoint rejected the query. It may require the beta API."
    ),
}


@dataclass(slots=True)
class GraphAPIError(Exception):
    """Failure talking to Microsoft Graph, classified for retry and reporting."""

    message: str
    category: GraphErrorCategory = GraphErrorCategory.UNKNOWN
    status_code: int | None = None
    code: str | None = None
    retry_after: str | None = None
    inner_error: Exception | None = None

    def __str__(self) -> str:
        return self.message

    @property
    def recovery_suggestion(self) -> str | None:
        if self.category is GraphErrorCategory.RATE_LIMIT:
            wait = f"{self.retry_after} seconds" if self.retry_after else "a few minutes"
            return f"Microsoft Graph throttled the request. Retry after {wait}."
        return _SUGGESTIONS.get(self.category)

    @property
    def is_retriable(self) -> bool:
        if self.category in (GraphErrorCategory.RATE_LIMIT, GraphErrorCategory.NETWORK):
            return True
        return self.status_code is not None and 500 <= self.status_code <= 599


class _StatusError(GraphAPIError):
    """Base for errors that always correspond to one HTTP status."""

    status: ClassVar[int]
    kind: ClassVar[GraphErrorCategory]
    default_message: ClassVar[str]

    def __init__(self, message: str | None = None) -> None:
        super().__init__(
            message=message or self.default_message,
            category=self.kind,
            status_code=self.status,
        )


class AuthenticationError(_StatusError):
    status = 401
    kind = GraphErrorCategory.AUTHENTICATION
    default_message = "Authentication failed"


class PermissionError(_StatusError):
    status = 403
    kind = GraphErrorCategory.PERMISSION
    default_message = "Insufficient permissions"


class NotFoundError(_StatusError):
    status = 404
    kind = GraphErrorCategory.NOT_FOUND
    default_message = "Resource not found"


class RateLimitError(GraphAPIError):
    def __init__(
        self, message: str = "Rate limited", retry_after: str | None = None
    ) -> None:
        super().__init__(
            message=message,
            category=GraphErrorCategory.RATE_LIMIT,
            status_code=429,
            retry_after=retry_after,
        )


__all__ = [
    "AuthenticationError",
    "GraphAPIError",
    "GraphErrorCategory",
    "NotFoundError",
    "PermissionError",
    "READ_PERMISSIONS",
    "RateLimitError",
]
