from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from intune_assignments.data.models import ResourceKind, TargetKind
from intune_assignments.utils import get_logger
from intune_assignments.utils.errors import ErrorDescriptor


logger = get_logger(__name__)

T_co = TypeVar("T_co", covariant=True)


class EventHook(Generic[T_co]):
    """Minimal observer used to report progress and partial failures out of band."""

    def __init__(self) -> None:
        self._subscribers: list[Callable[[T_co], None]] = []

    def subscribe(self, callback: Callable[[T_co], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            try:
                self._subscribers.remove(callback)
            except ValueError:  # pragma: no cover - best effort cleanup
                pass

        return unsubscribe

    def emit(self, payload: T_co) -> None:
        for callback in list(self._subscribers):
            try:
                callback(payload)
            except Exception:  # pragma: no cover - subscribers must not break a pass
                logger.exception("Service event callback failed")


@dataclass(slots=True)
class ResolutionFailedEvent:
    """A single assignment target was dropped because its group did not resolve."""

    object_name: str
    object_kind: ResourceKind
    target_kind: TargetKind
    group_id: str | None
    error: Exception


@dataclass(slots=True)
class CollectionErrorEvent:
    """A resource kind could not be enumerated at all."""

    kind: ResourceKind
    error: Exception
    descriptor: ErrorDescriptor


@dataclass(slots=True)
class CollectionSummaryEvent:
    kind: ResourceKind
    objects: int
    edges: int
    skipped: int = 0


__all__ = [
    "CollectionErrorEvent",
    "CollectionSummaryEvent",
    "EventHook",
    "ResolutionFailedEvent",
]
