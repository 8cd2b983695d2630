from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal
from urllib.parse import quote


GraphMethod = Literal["GET"]
BETA_VERSION = "beta"

GROUP_SELECT_FIELDS = ("id", "displayName")


@dataclass(slots=True, frozen=True)
class SourceEndpoint:
    """A Graph collection that yields managed objects of one kind."""

    path: str
    api_version: str | None = None

    def __str__(self) -> str:
        version = self.api_version or "default"
        return f"{self.path} ({version})"


@dataclass(slots=True)
class GraphRequest:
    """Structured representation of a Microsoft Graph request."""

    method: GraphMethod
    url: str
    params: dict[str, Any] | None = None
    headers: dict[str, str] | None = None
    api_version: str | None = None


def assigned_collection_request(endpoint: SourceEndpoint) -> GraphRequest:
    """List a collection with each item's assignments expanded inline."""

    return GraphRequest(
        method="GET",
        url=endpoint.path,
        params={"$expand": "assignments"},
        api_version=endpoint.api_version,
    )


def group_request(group_id: str) -> GraphRequest:
    """Fetch the identity fields of a single directory group."""

    return GraphRequest(
        method="GET",
        url=f"/groups/{quote(group_id, safe='')}",
        params={"$select": ",".join(GROUP_SELECT_FIELDS)},
    )


__all__ = [
    "BETA_VERSION",
    "GraphMethod",
    "GraphRequest",
    "SourceEndpoint",
    "assigned_collection_request",
    "group_request",
]
