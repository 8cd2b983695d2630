from .aggregator import AssignmentAggregator, InventoryResult, InventoryRunner
from .base import (
    CollectionErrorEvent,
    CollectionSummaryEvent,
    EventHook,
    ResolutionFailedEvent,
)
from .collectors import COLLECTOR_SPECS, CollectorSpec, ResourceCollector
from .diagnostics import RunDiagnostics
from .export import AssignmentGraph, ExportService, build_assignment_graph
from .normalizer import AssignmentNormalizer, assignment_mode
from .registry import ServiceRegistry
from .resolver import GroupResolutionError, GroupResolver

__all__ = [
    "AssignmentAggregator",
    "AssignmentGraph",
    "AssignmentNormalizer",
    "COLLECTOR_SPECS",
    "CollectionErrorEvent",
    "CollectionSummaryEvent",
    "CollectorSpec",
    "EventHook",
    "ExportService",
    "GroupResolutionError",
    "GroupResolver",
    "InventoryResult",
    "InventoryRunner",
    "ResolutionFailedEvent",
    "ResourceCollector",
    "RunDiagnostics",
    "ServiceRegistry",
    "assignment_mode",
    "build_assignment_graph",
]
