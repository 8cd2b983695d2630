"""Graph-backed sources consumed by the assignment collectors and resolver."""

from __future__ import annotations

from typing import Any, AsyncIterator, Protocol

from intune_assignments.data.models import GroupIdentity
from intune_assignments.graph.client import GraphClientFactory
from intune_assignments.graph.errors import GraphAPIError, GraphErrorCategory
from intune_assignments.graph.requests import (
    SourceEndpoint,
    assigned_collection_request,
    group_request,
)


class ObjectSource(Protocol):
    """Enumerates raw managed objects with their assignments pre-expanded."""

    def fetch(self, endpoint: SourceEndpoint) -> AsyncIterator[dict[str, Any]]: ...


class GroupSource(Protocol):
    """Looks up directory groups by id."""

    async def fetch_group(self, group_id: str) -> GroupIdentity: ...


class GraphObjectSource:
    def __init__(self, client_factory: GraphClientFactory) -> None:
        self._client_factory = client_factory

    async def fetch(self, endpoint: SourceEndpoint) -> AsyncIterator[dict[str, Any]]:
        request = assigned_collection_request(endpoint)
        async for item in self._client_factory.iter_collection(
            request.method,
            request.url,
            params=request.params,
            api_version=request.api_version,
        ):
            yield item


class GraphGroupSource:
    def __init__(self, client_factory: GraphClientFactory) -> None:
        self._client_factory = client_factory

    async def fetch_group(self, group_id: str) -> GroupIdentity:
        payload = await self._client_factory.execute(group_request(group_id))
        display_name = payload.get("displayName")
        if not isinstance(display_name, str):
            raise GraphAPIError(
                message=f"Group {group_id} payload has no displayName",
                category=GraphErrorCategory.VALIDATION,
            )
        return GroupIdentity(id=str(payload.get("id") or group_id), display_name=display_name)


__all__ = ["GraphGroupSource", "GraphObjectSource", "GroupSource", "ObjectSource"]
