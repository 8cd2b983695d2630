from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping

from intune_assignments.config.settings import Settings
from intune_assignments.data.models import AssignmentEdge, ResourceKind
from intune_assignments.graph.sources import GroupSource, ObjectSource
from intune_assignments.services.base import CollectionErrorEvent
from intune_assignments.services.collectors import (
    COLLECTOR_SPECS,
    CollectorSpec,
    ResourceCollector,
)
from intune_assignments.services.diagnostics import RunDiagnostics
from intune_assignments.services.export import (
    GRAPH_HTML_FILE,
    GRAPH_JSON_FILE,
    ExportService,
    build_assignment_graph,
    csv_name_for,
)
from intune_assignments.services.normalizer import AssignmentNormalizer
from intune_assignments.services.resolver import GroupResolver
from intune_assignments.utils import (
    CancellationToken,
    ProgressCallback,
    ProgressTracker,
    get_logger,
)


logger = get_logger(__name__)


def _by_rank(kinds: Iterable[ResourceKind]) -> list[ResourceKind]:
    return sorted(set(kinds), key=lambda kind: kind.rank)


class AssignmentAggregator:
    """Run collectors and concatenate their edges in ``ResourceKind`` order.

    Within a kind, edges keep object enumeration order and target order. No
    de-duplication happens: every (object, target) pair is its own edge.
    """

    def __init__(
        self,
        collectors: Iterable[ResourceCollector],
        *,
        max_concurrency: int = 1,
        progress: ProgressTracker | None = None,
        cancellation_token: CancellationToken | None = None,
    ) -> None:
        self._collectors: dict[ResourceKind, ResourceCollector] = {
            collector.kind: collector for collector in collectors
        }
        self._max_concurrency = max(1, max_concurrency)
        self._progress = progress or ProgressTracker()
        self._cancellation_token = cancellation_token
        self._failed: set[ResourceKind] = set()
        for collector in self._collectors.values():
            collector.errors.subscribe(self._record_failure)

    @property
    def kinds(self) -> list[ResourceKind]:
        return _by_rank(self._collectors)

    async def aggregate(self, kind: ResourceKind) -> list[AssignmentEdge]:
        return await self.aggregate_all([kind])

    async def aggregate_all(
        self, kinds: Iterable[ResourceKind] | None = None
    ) -> list[AssignmentEdge]:
        requested = _by_rank(self._collectors if kinds is None else kinds)
        unknown = [kind for kind in requested if kind not in self._collectors]
        if unknown:
            raise ValueError(
                "No collector registered for: " + ", ".join(kind.value for kind in unknown)
            )

        self._progress.start(total=len(requested))
        if self._max_concurrency > 1 and len(requested) > 1:
            outcomes = await asyncio.gather(*(self._run(kind) for kind in requested))
        else:
            outcomes = [await self._run(kind) for kind in requested]
        self._progress.finish()

        ordered = sorted(outcomes, key=lambda outcome: outcome[0].rank)
        return [edge for _kind, edges in ordered for edge in edges]

    async def _run(self, kind: ResourceKind) -> tuple[ResourceKind, list[AssignmentEdge]]:
        if self._cancellation_token is not None:
            self._cancellation_token.raise_if_cancelled()
        logger.info("Starting collection", kind=kind.value)
        edges = await self._collectors[kind].collect()
        if kind in self._failed:
            self._progress.failed(current=kind.value)
        else:
            self._progress.succeeded(current=kind.value)
        return kind, edges

    def _record_failure(self, event: CollectionErrorEvent) -> None:
        self._failed.add(event.kind)


@dataclass(slots=True)
class InventoryResult:
    kinds: list[ResourceKind]
    edges: list[AssignmentEdge]
    diagnostics: RunDiagnostics
    paths: list[Path] = field(default_factory=list)

    def edges_for(self, kind: ResourceKind) -> list[AssignmentEdge]:
        return [edge for edge in self.edges if edge.object_kind is kind]


class InventoryRunner:
    """Build and run one inventory pass per call.

    Every pass gets a fresh resolver cache, normalizer, collector set and
    aggregator; nothing but the sources and settings carries over.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        object_source: ObjectSource,
        group_source: GroupSource,
        export_service: ExportService | None = None,
        specs: Mapping[ResourceKind, CollectorSpec] | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        self._settings = settings
        self._object_source = object_source
        self._group_source = group_source
        self._export = export_service or ExportService(settings.output_dir)
        self._specs = dict(specs or COLLECTOR_SPECS)
        self._progress_callback = progress_callback

    @property
    def export_service(self) -> ExportService:
        return self._export

    def build_aggregator(
        self,
        diagnostics: RunDiagnostics,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> AssignmentAggregator:
        concurrency = self._settings.max_concurrency
        resolver = GroupResolver(
            self._group_source,
            request_timeout=self._settings.request_timeout,
            max_concurrency=concurrency,
        )
        normalizer = AssignmentNormalizer(resolver)
        diagnostics.watch_normalizer(normalizer)

        collectors = []
        for spec in self._specs.values():
            collector = ResourceCollector(
                spec,
                self._object_source,
                normalizer,
                max_concurrency=concurrency,
                cancellation_token=cancellation_token,
            )
            diagnostics.watch_collector(collector)
            collectors.append(collector)

        return AssignmentAggregator(
            collectors,
            max_concurrency=concurrency,
            progress=ProgressTracker(self._progress_callback),
            cancellation_token=cancellation_token,
        )

    async def run(
        self,
        kinds: Iterable[ResourceKind] | None = None,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> InventoryResult:
        requested = _by_rank(self._specs if kinds is None else kinds)
        diagnostics = RunDiagnostics()
        aggregator = self.build_aggregator(
            diagnostics, cancellation_token=cancellation_token
        )
        edges = await aggregator.aggregate_all(requested)
        logger.info(
            "Inventory pass finished",
            kinds=[kind.value for kind in requested],
            objects=diagnostics.object_count,
            edges=len(edges),
            failed_kinds=[kind.value for kind in diagnostics.failed_kinds],
            dropped_targets=diagnostics.dropped_targets,
        )
        return InventoryResult(kinds=requested, edges=edges, diagnostics=diagnostics)

    async def export_kinds(
        self,
        kinds: Iterable[ResourceKind] | None = None,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> InventoryResult:
        """Run a pass and write its edges as CSV, even when the pass was partial."""

        result = await self.run(kinds, cancellation_token=cancellation_token)
        path = self._export.path_for(csv_name_for(result.kinds))
        result.paths.append(self._export.write_csv(result.edges, path))
        return result

    async def export_graph(
        self,
        *,
        cancellation_token: CancellationToken | None = None,
    ) -> InventoryResult:
        result = await self.run(cancellation_token=cancellation_token)
        graph = build_assignment_graph(result.edges)
        result.paths.append(
            self._export.write_graph_json(graph, self._export.path_for(GRAPH_JSON_FILE))
        )
        result.paths.append(
            self._export.write_graph_html(graph, self._export.path_for(GRAPH_HTML_FILE))
        )
        return result


__all__ = [
    "AssignmentAggregator",
    "InventoryResult",
    "InventoryRunner",
]
