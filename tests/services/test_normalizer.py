from __future__ import annotations

import pytest

from intune_assignments.data.models import AssignmentEdge, AssignmentMode, ResourceKind
from intune_assignments.services.base import ResolutionFailedEvent
from intune_assignments.services.normalizer import AssignmentNormalizer
from intune_assignments.services.resolver import GroupResolver
from tests.factories import (
    FakeGroupSource,
    all_devices_target,
    all_users_target,
    exclusion_target,
    group_target,
    make_managed_object,
)


def _normalizer(source: FakeGroupSource) -> AssignmentNormalizer:
    return AssignmentNormalizer(GroupResolver(source))


@pytest.mark.asyncio
async def test_baseline_profile_yields_two_edges(group_source: FakeGroupSource) -> None:
    obj = make_managed_object(
        "profile-1",
        display_name="Baseline",
        targets=[all_devices_target(), exclusion_target("g1")],
    )

    edges = await _normalizer(group_source).normalize(obj)

    assert edges == [
        AssignmentEdge(
            object_name="Baseline",
            object_kind=ResourceKind.CONFIGURATION_PROFILE,
            group_id=None,
            group_name="All Devices",
            mode=AssignmentMode.INCLUDED,
        ),
        AssignmentEdge(
            object_name="Baseline",
            object_kind=ResourceKind.CONFIGURATION_PROFILE,
            group_id="g1",
            group_name="Finance",
            mode=AssignmentMode.EXCLUDED,
        ),
    ]
    assert [edge.to_row()["AssignmentTarget"] for edge in edges] == ["", "g1"]


@pytest.mark.asyncio
async def test_only_exclusions_are_excluded(group_source: FakeGroupSource) -> None:
    obj = make_managed_object(
        "app-1",
        kind=ResourceKind.APPLICATION,
        display_name="Company Portal",
        targets=[
            all_devices_target(),
            all_users_target(),
            group_target("g1"),
            exclusion_target("g2"),
            {"@odata.type": "#microsoft.graph.futureTarget", "groupId": "g3"},
        ],
    )

    edges = await _normalizer(group_source).normalize(obj)

    assert [edge.mode for edge in edges] == [
        AssignmentMode.INCLUDED,
        AssignmentMode.INCLUDED,
        AssignmentMode.INCLUDED,
        AssignmentMode.EXCLUDED,
        AssignmentMode.INCLUDED,
    ]
    assert [edge.group_name for edge in edges] == [
        "All Devices",
        "All Users",
        "Finance",
        "Sales",
        "Engineering",
    ]


@pytest.mark.asyncio
async def test_failed_target_is_dropped_and_reported(group_source: FakeGroupSource) -> None:
    normalizer = _normalizer(group_source)
    failures: list[ResolutionFailedEvent] = []
    normalizer.failures.subscribe(failures.append)
    obj = make_managed_object(
        "policy-1",
        kind=ResourceKind.COMPLIANCE_POLICY,
        display_name="Windows compliance",
        targets=[group_target("g1"), group_target("missing"), exclusion_target("g2")],
    )

    edges = await normalizer.normalize(obj)

    assert [edge.group_id for edge in edges] == ["g1", "g2"]
    assert len(failures) == 1
    assert failures[0].group_id == "missing"
    assert failures[0].object_name == "Windows compliance"
    assert failures[0].object_kind is ResourceKind.COMPLIANCE_POLICY


@pytest.mark.asyncio
async def test_name_falls_back_to_internal_name(group_source: FakeGroupSource) -> None:
    obj = make_managed_object(
        "catalog-1",
        display_name="",
        name="Fallback1",
        targets=[all_users_target()],
    )

    edges = await _normalizer(group_source).normalize(obj)

    assert [edge.object_name for edge in edges] == ["Fallback1"]


@pytest.mark.asyncio
async def test_nameless_object_still_produces_edges(group_source: FakeGroupSource) -> None:
    obj = make_managed_object("anonymous", targets=[all_devices_target()])

    edges = await _normalizer(group_source).normalize(obj)

    assert [edge.object_name for edge in edges] == [""]


@pytest.mark.asyncio
async def test_explicit_targets_override_object_assignments(
    group_source: FakeGroupSource,
) -> None:
    obj = make_managed_object("profile-1", display_name="Baseline", targets=[])
    normalizer = _normalizer(group_source)

    assert await normalizer.normalize(obj) == []

    targets = make_managed_object(
        "donor", targets=[group_target("g2")]
    ).targets
    edges = await normalizer.normalize(obj, targets)

    assert [(edge.object_name, edge.group_name) for edge in edges] == [("Baseline", "Sales")]


@pytest.mark.asyncio
async def test_unfamiliar_filter_type_keeps_mode_and_built_ins(
    group_source: FakeGroupSource,
) -> None:
    future_filter = {"deviceAndAppManagementAssignmentFilterType": "unknownFutureValue"}
    obj = make_managed_object(
        "profile-2",
        display_name="Kiosk",
        targets=[
            {**exclusion_target("g1"), **future_filter},
            {**all_devices_target(), **future_filter},
            {**all_users_target(), "deviceAndAppManagementAssignmentFilterId": 7},
        ],
    )

    edges = await _normalizer(group_source).normalize(obj)

    assert [(edge.group_name, edge.mode) for edge in edges] == [
        ("Finance", AssignmentMode.EXCLUDED),
        ("All Devices", AssignmentMode.INCLUDED),
        ("All Users", AssignmentMode.INCLUDED),
    ]
