from __future__ import annotations

from enum import StrEnum
from typing import Any, ClassVar, Literal

from pydantic import Field, ValidationError, field_validator

from .common import GraphBaseModel


ALL_DEVICES_ODATA_TYPE = "#microsoft.graph.allDevicesAssignmentTarget"
ALL_USERS_ODATA_TYPE = "#microsoft.graph.allLicensedUsersAssignmentTarget"
EXCLUSION_GROUP_ODATA_TYPE = "#microsoft.graph.exclusionGroupAssignmentTarget"
GROUP_ODATA_TYPE = "#microsoft.graph.groupAssignmentTarget"


class TargetKind(StrEnum):
    ALL_DEVICES = "all-devices"
    ALL_USERS = "all-users"
    EXCLUSION_GROUP = "exclusion-group"
    INCLUSION_GROUP = "inclusion-group"


class AssignmentFilterType(StrEnum):
    NONE = "none"
    INCLUDE = "include"
    EXCLUDE = "exclude"


class AssignmentTarget(GraphBaseModel):
    """Targeting descriptor with an unrecognised or missing ``@odata.type``.

    Unknown target types are treated as plain group inclusions. The group
    reference stays optional here; resolving a target without one fails for
    that target alone.
    """

    target_kind: ClassVar[TargetKind] = TargetKind.INCLUSION_GROUP

    odata_type: str = Field(default="", alias="@odata.type")
    group_id: str | None = Field(default=None, alias="groupId")
    assignment_filter_id: str | None = Field(
        default=None,
        alias="deviceAndAppManagementAssignmentFilterId",
    )
    # Graph adds filter types over time; unrecognised values are kept as text.
    assignment_filter_type: AssignmentFilterType | str | None = Field(
        default=None,
        alias="deviceAndAppManagementAssignmentFilterType",
        union_mode="left_to_right",
    )

    @property
    def kind(self) -> TargetKind:
        return self.target_kind

    @property
    def is_built_in(self) -> bool:
        return self.kind in {TargetKind.ALL_DEVICES, TargetKind.ALL_USERS}


class GroupAssignmentTarget(AssignmentTarget):
    target_kind: ClassVar[TargetKind] = TargetKind.INCLUSION_GROUP

    odata_type: Literal["#microsoft.graph.groupAssignmentTarget"] = Field(
        default=GROUP_ODATA_TYPE,
        alias="@odata.type",
    )
    group_id: str = Field(alias="groupId")


class ExclusionGroupAssignmentTarget(AssignmentTarget):
    target_kind: ClassVar[TargetKind] = TargetKind.EXCLUSION_GROUP

    odata_type: Literal["#microsoft.graph.exclusionGroupAssignmentTarget"] = Field(
        default=EXCLUSION_GROUP_ODATA_TYPE,
        alias="@odata.type",
    )
    group_id: str = Field(alias="groupId")


class AllDevicesAssignmentTarget(AssignmentTarget):
    target_kind: ClassVar[TargetKind] = TargetKind.ALL_DEVICES

    odata_type: Literal["#microsoft.graph.allDevicesAssignmentTarget"] = Field(
        default=ALL_DEVICES_ODATA_TYPE,
        alias="@odata.type",
    )


class AllLicensedUsersAssignmentTarget(AssignmentTarget):
    target_kind: ClassVar[TargetKind] = TargetKind.ALL_USERS

    odata_type: Literal["#microsoft.graph.allLicensedUsersAssignmentTarget"] = Field(
        default=ALL_USERS_ODATA_TYPE,
        alias="@odata.type",
    )


def parse_assignment_target(value: Any) -> AssignmentTarget:
    """Dispatch a raw Graph target payload onto its typed variant."""

    if isinstance(value, AssignmentTarget):
        return value
    if not isinstance(value, dict):
        return AssignmentTarget()

    odata_type = value.get("@odata.type") or value.get("odata_type")

    target_model: type[AssignmentTarget]
    match odata_type:
        case "#microsoft.graph.allDevicesAssignmentTarget":
            target_model = AllDevicesAssignmentTarget
        case "#microsoft.graph.allLicensedUsersAssignmentTarget":
            target_model = AllLicensedUsersAssignmentTarget
        case "#microsoft.graph.exclusionGroupAssignmentTarget":
            target_model = ExclusionGroupAssignmentTarget
        case "#microsoft.graph.groupAssignmentTarget":
            target_model = GroupAssignmentTarget
        case _:
            target_model = AssignmentTarget

    try:
        return target_model.model_validate(value)
    except ValidationError:
        # Keep the variant (and so its kind) but only the fields that matter
        # for resolution; a missing groupId is reported when resolving.
        group_id = value.get("groupId")
        return target_model.model_construct(
            odata_type=odata_type if isinstance(odata_type, str) else "",
            group_id=group_id if isinstance(group_id, str) and group_id else None,
        )


class ObjectAssignment(GraphBaseModel):
    """One entry of a managed object's expanded ``assignments`` collection."""

    id: str | None = None
    intent: str | None = None
    target: AssignmentTarget = Field(default_factory=AssignmentTarget)

    @field_validator("target", mode="before")
    @classmethod
    def _coerce_target(cls, value: Any) -> Any:
        return parse_assignment_target(value)
