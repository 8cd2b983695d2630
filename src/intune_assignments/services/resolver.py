"""Group identity resolution with a run-scoped cache."""

from __future__ import annotations

import asyncio

from intune_assignments.config.settings import (
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_REQUEST_TIMEOUT,
)
from intune_assignments.data.models import (
    ALL_DEVICES,
    ALL_USERS,
    AssignmentTarget,
    GroupIdentity,
    TargetKind,
)
from intune_assignments.graph.errors import GraphAPIError, NotFoundError
from intune_assignments.graph.sources import GroupSource
from intune_assignments.utils import get_logger


logger = get_logger(__name__)


class GroupResolutionError(Exception):
    """Raised when an assignment target cannot be mapped to a group identity."""

    def __init__(
        self,
        message: str,
        *,
        group_id: str | None = None,
        target_kind: TargetKind | None = None,
        not_found: bool = False,
    ) -> None:
        super().__init__(message)
        self.group_id = group_id
        self.target_kind = target_kind
        self.not_found = not_found


class GroupResolver:
    """Resolve assignment targets to ``GroupIdentity`` values.

    Built-in targets never touch the network. Directory groups are fetched at
    most once per resolver: successful lookups are cached, concurrent misses
    for the same id share one in-flight task, and groups reported as missing
    are remembered so a deleted group fails fast on every later reference.
    Other failures are not cached and are retried on the next reference.

    One resolver serves every collector of a single inventory pass.
    """

    def __init__(
        self,
        source: GroupSource,
        *,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self._source = source
        self._request_timeout = request_timeout
        self._semaphore = asyncio.Semaphore(max(1, max_concurrency))
        self._cache: dict[str, GroupIdentity] = {}
        self._missing: dict[str, str] = {}
        self._inflight: dict[str, asyncio.Task[GroupIdentity]] = {}
        self._fetch_count = 0

    @property
    def fetch_count(self) -> int:
        return self._fetch_count

    @property
    def cache_size(self) -> int:
        return len(self._cache)

    async def resolve(self, target: AssignmentTarget) -> GroupIdentity:
        match target.kind:
            case TargetKind.ALL_DEVICES:
                return ALL_DEVICES
            case TargetKind.ALL_USERS:
                return ALL_USERS
            case _:
                pass

        if not target.group_id:
            raise GroupResolutionError(
                f"Assignment target {target.odata_type or '<untyped>'} has no group reference",
                target_kind=target.kind,
            )
        try:
            return await self._resolve_id(target.group_id)
        except GroupResolutionError as exc:
            exc.target_kind = target.kind
            raise

    async def _resolve_id(self, group_id: str) -> GroupIdentity:
        cached = self._cache.get(group_id)
        if cached is not None:
            return cached

        missing = self._missing.get(group_id)
        if missing is not None:
            raise GroupResolutionError(missing, group_id=group_id, not_found=True)

        task = self._inflight.get(group_id)
        if task is None:
            task = asyncio.create_task(self._fetch(group_id))
            self._inflight[group_id] = task
            task.add_done_callback(self._settle)
        # Shielded so one cancelled caller does not cancel the shared lookup.
        return await asyncio.shield(task)

    async def _fetch(self, group_id: str) -> GroupIdentity:
        async with self._semaphore:
            self._fetch_count += 1
            logger.debug("Resolving group", group_id=group_id)
            try:
                identity = await asyncio.wait_for(
                    self._source.fetch_group(group_id),
                    timeout=self._request_timeout,
                )
            except asyncio.TimeoutError as exc:
                raise GroupResolutionError(
                    f"Timed out after {self._request_timeout:g}s resolving group {group_id}",
                    group_id=group_id,
                ) from exc
            except NotFoundError as exc:
                message = f"Group {group_id} was not found"
                self._missing[group_id] = message
                raise GroupResolutionError(
                    message, group_id=group_id, not_found=True
                ) from exc
            except GraphAPIError as exc:
                raise GroupResolutionError(
                    f"Failed to resolve group {group_id}: {exc}",
                    group_id=group_id,
                ) from exc
            except Exception as exc:
                logger.warning(
                    "Unexpected error resolving group",
                    group_id=group_id,
                    error_type=type(exc).__name__,
                )
                raise GroupResolutionError(
                    f"Failed to resolve group {group_id}: {type(exc).__name__}: {exc}",
                    group_id=group_id,
                ) from exc

        self._cache[group_id] = identity
        return identity

    def _settle(self, task: asyncio.Task[GroupIdentity]) -> None:
        for group_id, pending in list(self._inflight.items()):
            if pending is task:
                del self._inflight[group_id]
        # Mark the failure as seen even when every waiter was cancelled.
        if not task.cancelled():
            task.exception()


__all__ = ["GroupResolutionError", "GroupResolver"]
