from __future__ import annotations

import asyncio
import gc

import pytest

from intune_assignments.data.models import (
    ALL_DEVICES,
    ALL_USERS,
    GroupIdentity,
    TargetKind,
    parse_assignment_target,
)
from intune_assignments.graph.errors import GraphAPIError, GraphErrorCategory, PermissionError
from intune_assignments.services.resolver import GroupResolutionError, GroupResolver
from tests.factories import (
    FakeGroupSource,
    all_devices_target,
    all_users_target,
    exclusion_target,
    group_target,
)


@pytest.mark.asyncio
async def test_built_in_targets_resolve_without_fetching(
    group_source: FakeGroupSource,
) -> None:
    resolver = GroupResolver(group_source)

    assert await resolver.resolve(parse_assignment_target(all_devices_target())) == ALL_DEVICES
    assert await resolver.resolve(parse_assignment_target(all_users_target())) == ALL_USERS
    assert group_source.calls == []
    assert resolver.fetch_count == 0


@pytest.mark.asyncio
async def test_repeated_lookups_fetch_once(group_source: FakeGroupSource) -> None:
    resolver = GroupResolver(group_source)
    target = parse_assignment_target(group_target("g1"))

    results = [await resolver.resolve(target) for _ in range(5)]

    assert results == [GroupIdentity(id="g1", display_name="Finance")] * 5
    assert group_source.calls == ["g1"]
    assert resolver.fetch_count == 1
    assert resolver.cache_size == 1


@pytest.mark.asyncio
async def test_inclusion_and_exclusion_share_the_cache(group_source: FakeGroupSource) -> None:
    resolver = GroupResolver(group_source)

    await resolver.resolve(parse_assignment_target(group_target("g1")))
    await resolver.resolve(parse_assignment_target(exclusion_target("g1")))

    assert group_source.calls == ["g1"]


@pytest.mark.asyncio
async def test_concurrent_misses_collapse_to_one_fetch() -> None:
    source = FakeGroupSource({"g1": "Finance"}, delay=0.01)
    resolver = GroupResolver(source, max_concurrency=8)
    target = parse_assignment_target(group_target("g1"))

    results = await asyncio.gather(*(resolver.resolve(target) for _ in range(10)))

    assert {result.display_name for result in results} == {"Finance"}
    assert source.calls == ["g1"]
    assert resolver.fetch_count == 1


@pytest.mark.asyncio
async def test_missing_group_fails_and_is_not_refetched(
    group_source: FakeGroupSource,
) -> None:
    resolver = GroupResolver(group_source)
    target = parse_assignment_target(exclusion_target("deleted"))

    for _ in range(3):
        with pytest.raises(GroupResolutionError) as excinfo:
            await resolver.resolve(target)
        assert excinfo.value.not_found
        assert excinfo.value.group_id == "deleted"
        assert excinfo.value.target_kind is TargetKind.EXCLUSION_GROUP

    assert group_source.calls == ["deleted"]


@pytest.mark.asyncio
async def test_transient_failures_are_retried_on_next_reference(
    group_source: FakeGroupSource,
) -> None:
    group_source.errors["g2"] = GraphAPIError(
        message="Service unavailable",
        category=GraphErrorCategory.NETWORK,
    )
    resolver = GroupResolver(group_source)
    target = parse_assignment_target(group_target("g2"))

    with pytest.raises(GroupResolutionError) as excinfo:
        await resolver.resolve(target)
    assert not excinfo.value.not_found
    assert isinstance(excinfo.value.__cause__, GraphAPIError)

    del group_source.errors["g2"]
    identity = await resolver.resolve(target)

    assert identity.display_name == "Sales"
    assert group_source.calls == ["g2", "g2"]


@pytest.mark.asyncio
async def test_permission_errors_fail_resolution(group_source: FakeGroupSource) -> None:
    group_source.errors["g3"] = PermissionError()
    resolver = GroupResolver(group_source)

    with pytest.raises(GroupResolutionError):
        await resolver.resolve(parse_assignment_target(group_target("g3")))


@pytest.mark.asyncio
async def test_slow_lookups_time_out() -> None:
    source = FakeGroupSource({"g1": "Finance"}, delay=1.0)
    resolver = GroupResolver(source, request_timeout=0.01)

    with pytest.raises(GroupResolutionError, match="Timed out"):
        await resolver.resolve(parse_assignment_target(group_target("g1")))

    assert resolver.cache_size == 0


@pytest.mark.asyncio
async def test_target_without_group_reference_fails(group_source: FakeGroupSource) -> None:
    resolver = GroupResolver(group_source)
    target = parse_assignment_target({"@odata.type": "#microsoft.graph.somethingNew"})

    with pytest.raises(GroupResolutionError) as excinfo:
        await resolver.resolve(target)

    assert excinfo.value.group_id is None
    assert excinfo.value.target_kind is TargetKind.INCLUSION_GROUP
    assert group_source.calls == []


@pytest.mark.asyncio
async def test_unexpected_source_errors_fail_only_that_target(
    group_source: FakeGroupSource,
) -> None:
    resolver = GroupResolver(group_source)
    group_source.errors["g2"] = ValueError("Expecting value: line 1 column 1 (char 0)")

    with pytest.raises(GroupResolutionError) as excinfo:
        await resolver.resolve(parse_assignment_target(group_target("g2")))
    assert excinfo.value.group_id == "g2"
    assert not excinfo.value.not_found
    assert isinstance(excinfo.value.__cause__, ValueError)

    identity = await resolver.resolve(parse_assignment_target(group_target("g1")))
    assert identity.display_name == "Finance"

    del group_source.errors["g2"]
    retried = await resolver.resolve(parse_assignment_target(group_target("g2")))
    assert retried.display_name == "Sales"
    assert group_source.calls.count("g2") == 2


@pytest.mark.asyncio
async def test_failed_lookup_with_cancelled_waiters_is_not_reported_as_unretrieved() -> None:
    loop = asyncio.get_running_loop()
    reported: list[dict] = []
    previous_handler = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reported.append(context))
    source = FakeGroupSource(delay=0.05)
    source.errors["g1"] = PermissionError()
    resolver = GroupResolver(source)

    try:
        waiter = asyncio.create_task(
            resolver.resolve(parse_assignment_target(group_target("g1")))
        )
        await asyncio.sleep(0.01)
        waiter.cancel()
        with pytest.raises(asyncio.CancelledError):
            await waiter
        await asyncio.sleep(0.1)
        gc.collect()
    finally:
        loop.set_exception_handler(previous_handler)

    assert source.calls == ["g1"]
    assert reported == []
