from __future__ import annotations

from intune_assignments.data.models import ResourceKind
from intune_assignments.services.base import (
    CollectionErrorEvent,
    CollectionSummaryEvent,
    ResolutionFailedEvent,
)
from intune_assignments.services.collectors import ResourceCollector
from intune_assignments.services.normalizer import AssignmentNormalizer


class RunDiagnostics:
    """Collects the out-of-band reports of one inventory pass.

    An edge list says nothing about what is missing from it; callers inspect
    this object to learn which kinds failed and how many targets were dropped.
    """

    def __init__(self) -> None:
        self.resolution_failures: list[ResolutionFailedEvent] = []
        self.collection_errors: list[CollectionErrorEvent] = []
        self.summaries: dict[ResourceKind, CollectionSummaryEvent] = {}

    def watch_normalizer(self, normalizer: AssignmentNormalizer) -> None:
        normalizer.failures.subscribe(self.resolution_failures.append)

    def watch_collector(self, collector: ResourceCollector) -> None:
        collector.errors.subscribe(self.collection_errors.append)
        collector.collected.subscribe(self._record_summary)

    def _record_summary(self, event: CollectionSummaryEvent) -> None:
        self.summaries[event.kind] = event

    @property
    def failed_kinds(self) -> list[ResourceKind]:
        kinds = {event.kind for event in self.collection_errors}
        return sorted(kinds, key=lambda kind: kind.rank)

    @property
    def dropped_targets(self) -> int:
        return len(self.resolution_failures)

    @property
    def object_count(self) -> int:
        return sum(summary.objects for summary in self.summaries.values())

    @property
    def skipped_objects(self) -> int:
        return sum(summary.skipped for summary in self.summaries.values())

    @property
    def is_complete(self) -> bool:
        return not (
            self.collection_errors or self.resolution_failures or self.skipped_objects
        )


__all__ = ["RunDiagnostics"]
