"""User-facing summaries of the failures an inventory pass can run into."""

from __future__ import annotations

import asyncio
import errno
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Iterator

import httpx

from intune_assignments.graph.errors import GraphAPIError, GraphErrorCategory


class ErrorSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(slots=True)
class ErrorDescriptor:
    headline: str
    detail: str
    severity: ErrorSeverity = ErrorSeverity.ERROR
    transient: bool = False
    suggestion: str | None = None


_GRAPH_HEADLINES: dict[GraphErrorCategory, str] = {
    GraphErrorCategory.RATE_LIMIT: "Microsoft Graph throttled the request.",
    GraphErrorCategory.NETWORK: "Network issue contacting Microsoft Graph.",
    GraphErrorCategory.AUTHENTICATION: "Authentication is required to call Microsoft Graph.",
    GraphErrorCategory.PERMISSION: "The signed-in account lacks required Graph permissions.",
    GraphErrorCategory.NOT_FOUND: "The requested Graph resource does not exist.",
    GraphErrorCategory.VALIDATION: "Microsoft Graph rejected the request.",
}

_CONNECTION_ERRNOS = frozenset(
    {
        errno.ECONNREFUSED,
        errno.ECONNRESET,
        errno.EHOSTUNREACH,
        errno.ENETDOWN,
        errno.ENETUNREACH,
        errno.ETIMEDOUT,
    }
)


def _chain(error: BaseException) -> Iterator[BaseException]:
    """Yield ``error`` and the exceptions it was raised from, outermost first."""

    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _transient(headline: str, detail: str, suggestion: str) -> ErrorDescriptor:
    return ErrorDescriptor(
        headline=headline,
        detail=detail,
        severity=ErrorSeverity.WARNING,
        transient=True,
        suggestion=suggestion,
    )


def describe_graph_error(error: GraphAPIError) -> ErrorDescriptor:
    return ErrorDescriptor(
        headline=_GRAPH_HEADLINES.get(error.category, "Microsoft Graph request failed."),
        detail=f"{error.code}: {error}" if error.code else str(error),
        severity=ErrorSeverity.WARNING if error.is_retriable else ErrorSeverity.ERROR,
        transient=error.is_retriable,
        suggestion=error.recovery_suggestion,
    )


def describe_exception(error: BaseException) -> ErrorDescriptor:
    """Classify ``error`` (or whatever it wraps) for display in the CLI summary."""

    chain = list(_chain(error))
    for link in chain:
        if isinstance(link, GraphAPIError):
            return describe_graph_error(link)

    root = chain[-1]
    match root:
        case httpx.TimeoutException():
            return _transient(
                "Temporary timeout contacting Microsoft Graph.",
                f"{type(root).__name__}: {root}",
                "Check your network connection and retry shortly.",
            )
        case asyncio.TimeoutError():
            return _transient(
                "Operation timed out before Microsoft Graph responded.",
                "TimeoutError: Operation timed out",
                "Retry the request or raise the request timeout.",
            )
        case socket.gaierror():
            return _transient(
                "DNS lookup failed while contacting Microsoft Graph.",
                f"socket.gaierror: {root}",
                "Verify internet connectivity or DNS configuration.",
            )
        case OSError(errno=code) if code in _CONNECTION_ERRNOS:
            return _transient(
                "Network connection issue encountered.",
                f"OSError[{code}]: {root.strerror}",
                "Retry once your connection is stable.",
            )
        case _:
            return ErrorDescriptor(
                headline="Operation failed.",
                detail=f"{type(error).__name__}: {error}",
            )


__all__ = [
    "ErrorDescriptor",
    "ErrorSeverity",
    "describe_exception",
    "describe_graph_error",
]
