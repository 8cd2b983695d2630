from __future__ import annotations

from dataclasses import dataclass

from intune_assignments.graph.client import GraphClientFactory

from .aggregator import InventoryRunner
from .export import ExportService


@dataclass(slots=True)
class ServiceRegistry:
    """Objects shared by every inventory pass of one CLI session."""

    client_factory: GraphClientFactory
    export: ExportService
    runner: InventoryRunner

    async def close(self) -> None:
        await self.client_factory.close()


__all__ = ["ServiceRegistry"]
