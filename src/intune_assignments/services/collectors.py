from __future__ import annotations

import asyncio
from dataclasses import dataclass

from intune_assignments.data.models import AssignmentEdge, ManagedObject, ResourceKind
from intune_assignments.data.validation import GraphResponseValidator
from intune_assignments.graph.requests import BETA_VERSION, SourceEndpoint
from intune_assignments.graph.sources import ObjectSource
from intune_assignments.services.base import (
    CollectionErrorEvent,
    CollectionSummaryEvent,
    EventHook,
)
from intune_assignments.services.normalizer import AssignmentNormalizer
from intune_assignments.utils import CancellationToken, get_logger
from intune_assignments.utils.errors import describe_exception


logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class CollectorSpec:
    """Where to find the objects of one resource kind."""

    kind: ResourceKind
    endpoints: tuple[SourceEndpoint, ...]


def _v1(path: str) -> SourceEndpoint:
    return SourceEndpoint(path)


def _beta(path: str) -> SourceEndpoint:
    return SourceEndpoint(path, api_version=BETA_VERSION)


COLLECTOR_SPECS: dict[ResourceKind, CollectorSpec] = {
    spec.kind: spec
    for spec in (
        CollectorSpec(
            ResourceKind.CONFIGURATION_PROFILE,
            (
                _v1("/deviceManagement/deviceConfigurations"),
                _beta("/deviceManagement/configurationPolicies"),
                _beta("/deviceManagement/groupPolicyConfigurations"),
            ),
        ),
        CollectorSpec(
            ResourceKind.COMPLIANCE_POLICY,
            (_v1("/deviceManagement/deviceCompliancePolicies"),),
        ),
        CollectorSpec(
            ResourceKind.APPLICATION,
            (_v1("/deviceAppManagement/mobileApps"),),
        ),
        CollectorSpec(
            ResourceKind.REMEDIATION_SCRIPT,
            (_beta("/deviceManagement/deviceHealthScripts"),),
        ),
        CollectorSpec(
            ResourceKind.PLATFORM_SCRIPT,
            (_beta("/deviceManagement/deviceManagementScripts"),),
        ),
        CollectorSpec(
            ResourceKind.SHELL_SCRIPT,
            (_beta("/deviceManagement/deviceShellScripts"),),
        ),
        CollectorSpec(
            ResourceKind.PROTECTION_POLICY,
            (
                _v1("/deviceAppManagement/iosManagedAppProtections"),
                _v1("/deviceAppManagement/androidManagedAppProtections"),
                _v1("/deviceAppManagement/windowsInformationProtectionPolicies"),
                _v1("/deviceAppManagement/mdmWindowsInformationProtectionPolicies"),
            ),
        ),
    )
}


class ResourceCollector:
    """Enumerate every object of one kind and normalize its assignments.

    A kind that cannot be enumerated (any endpoint failing) yields no edges;
    the failure is logged and published on ``errors`` instead of raised.
    """

    def __init__(
        self,
        spec: CollectorSpec,
        source: ObjectSource,
        normalizer: AssignmentNormalizer,
        *,
        max_concurrency: int = 1,
        cancellation_token: CancellationToken | None = None,
    ) -> None:
        self._spec = spec
        self._source = source
        self._normalizer = normalizer
        self._max_concurrency = max(1, max_concurrency)
        self._cancellation_token = cancellation_token
        self._validator = GraphResponseValidator(spec.kind.value)

        self.errors: EventHook[CollectionErrorEvent] = EventHook()
        self.collected: EventHook[CollectionSummaryEvent] = EventHook()

    @property
    def kind(self) -> ResourceKind:
        return self._spec.kind

    @property
    def spec(self) -> CollectorSpec:
        return self._spec

    async def collect(self) -> list[AssignmentEdge]:
        self._validator.reset()
        try:
            objects = await self._enumerate()
            edges = await self._normalize_all(objects)
        except Exception as exc:  # noqa: BLE001 - failures stay inside the collector
            descriptor = describe_exception(exc)
            logger.error(
                "Failed to collect assignments",
                kind=self.kind.value,
                error=descriptor.detail,
            )
            self.errors.emit(
                CollectionErrorEvent(kind=self.kind, error=exc, descriptor=descriptor)
            )
            return []

        skipped = len(self._validator.issues())
        logger.info(
            "Collected assignments",
            kind=self.kind.value,
            objects=len(objects),
            edges=len(edges),
            skipped=skipped,
        )
        self.collected.emit(
            CollectionSummaryEvent(
                kind=self.kind,
                objects=len(objects),
                edges=len(edges),
                skipped=skipped,
            )
        )
        return edges

    async def _enumerate(self) -> list[ManagedObject]:
        objects: list[ManagedObject] = []
        for endpoint in self._spec.endpoints:
            self._check_cancelled()
            logger.debug("Enumerating endpoint", kind=self.kind.value, endpoint=str(endpoint))
            async for payload in self._source.fetch(endpoint):
                obj = self._validator.parse(ManagedObject, payload, kind=self.kind)
                if obj is not None:
                    objects.append(obj)
        return objects

    async def _normalize_all(self, objects: list[ManagedObject]) -> list[AssignmentEdge]:
        if self._max_concurrency == 1:
            edges: list[AssignmentEdge] = []
            for obj in objects:
                self._check_cancelled()
                edges.extend(await self._normalizer.normalize(obj))
            return edges

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def normalize_one(obj: ManagedObject) -> list[AssignmentEdge]:
            async with semaphore:
                self._check_cancelled()
                return await self._normalizer.normalize(obj)

        # gather keeps results in object order regardless of completion order
        batches = await asyncio.gather(*(normalize_one(obj) for obj in objects))
        return [edge for batch in batches for edge in batch]

    def _check_cancelled(self) -> None:
        if self._cancellation_token is not None:
            self._cancellation_token.raise_if_cancelled()


__all__ = ["COLLECTOR_SPECS", "CollectorSpec", "ResourceCollector"]
