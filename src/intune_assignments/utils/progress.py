from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable

from .logging import get_logger


logger = get_logger(__name__)


@dataclass(slots=True, frozen=True)
class ProgressUpdate:
    """How far a multi-step pass has got; ``current`` names the last step."""

    total: int | None
    completed: int
    failed: int
    current: str | None = None

    @property
    def processed(self) -> int:
        return self.completed + self.failed

    @property
    def remaining(self) -> int | None:
        return None if self.total is None else max(self.total - self.processed, 0)

    @property
    def percent_complete(self) -> float | None:
        if not self.total:
            return None
        return min(100.0, 100 * self.processed / self.total)


ProgressCallback = Callable[[ProgressUpdate], None]


class ProgressTracker:
    """Holds the latest ``ProgressUpdate`` and hands each new one to a callback."""

    def __init__(self, callback: ProgressCallback | None = None) -> None:
        self._callback = callback
        self._state = ProgressUpdate(total=None, completed=0, failed=0)

    def start(
        self, *, total: int | None = None, current: str | None = None
    ) -> ProgressUpdate:
        return self._publish(ProgressUpdate(total=total, completed=0, failed=0, current=current))

    def succeeded(self, *, count: int = 1, current: str | None = None) -> ProgressUpdate:
        state = self._state
        return self._publish(
            replace(state, completed=state.completed + count, current=current or state.current)
        )

    def failed(self, *, count: int = 1, current: str | None = None) -> ProgressUpdate:
        state = self._state
        return self._publish(
            replace(state, failed=state.failed + count, current=current or state.current)
        )

    def finish(self) -> ProgressUpdate:
        return self._publish(replace(self._state, current=None))

    def snapshot(self) -> ProgressUpdate:
        return self._state

    def _publish(self, update: ProgressUpdate) -> ProgressUpdate:
        self._state = update
        if self._callback is None:
            return update
        try:
            self._callback(update)
        except Exception:
            # A broken renderer must not abort the pass.
            logger.exception("Progress callback raised")
        return update


__all__ = ["ProgressCallback", "ProgressTracker", "ProgressUpdate"]
