from __future__ import annotations

from typing import Iterable

from intune_assignments.data.models import (
    AssignmentEdge,
    AssignmentMode,
    AssignmentTarget,
    ManagedObject,
    TargetKind,
)
from intune_assignments.services.base import EventHook, ResolutionFailedEvent
from intune_assignments.services.resolver import GroupResolutionError, GroupResolver
from intune_assignments.utils import get_logger, sanitize_log_message


logger = get_logger(__name__)


def assignment_mode(target: AssignmentTarget) -> AssignmentMode:
    if target.kind is TargetKind.EXCLUSION_GROUP:
        return AssignmentMode.EXCLUDED
    return AssignmentMode.INCLUDED


class AssignmentNormalizer:
    """Turn a managed object's raw targets into ``AssignmentEdge`` records.

    Targets that fail to resolve are dropped, logged and reported on
    ``failures``; the remaining targets still produce edges in input order.
    """

    def __init__(self, resolver: GroupResolver) -> None:
        self._resolver = resolver
        self.failures: EventHook[ResolutionFailedEvent] = EventHook()

    async def normalize(
        self,
        obj: ManagedObject,
        targets: Iterable[AssignmentTarget] | None = None,
    ) -> list[AssignmentEdge]:
        name = obj.label
        edges: list[AssignmentEdge] = []
        for target in obj.targets if targets is None else targets:
            try:
                identity = await self._resolver.resolve(target)
            except GroupResolutionError as exc:
                logger.warning(
                    "Dropping unresolved assignment target",
                    object_name=sanitize_log_message(name),
                    kind=obj.kind.value,
                    target_kind=target.kind.value,
                    group_id=exc.group_id,
                    error=str(exc),
                )
                self.failures.emit(
                    ResolutionFailedEvent(
                        object_name=name,
                        object_kind=obj.kind,
                        target_kind=target.kind,
                        group_id=exc.group_id,
                        error=exc,
                    )
                )
                continue
            edges.append(
                AssignmentEdge(
                    object_name=name,
                    object_kind=obj.kind,
                    group_id=identity.id,
                    group_name=identity.display_name,
                    mode=assignment_mode(target),
                )
            )
        return edges


__all__ = ["AssignmentNormalizer", "assignment_mode"]
