from .assignment import (
    AllDevicesAssignmentTarget,
    AllLicensedUsersAssignmentTarget,
    AssignmentFilterType,
    AssignmentTarget,
    ExclusionGroupAssignmentTarget,
    GroupAssignmentTarget,
    ObjectAssignment,
    TargetKind,
    parse_assignment_target,
)
from .common import GraphBaseModel, GraphResource
from .edge import EXPORT_COLUMNS, AssignmentEdge, AssignmentMode
from .group import ALL_DEVICES, ALL_USERS, GroupIdentity
from .managed_object import ManagedObject, ResourceKind

__all__ = [
    "ALL_DEVICES",
    "ALL_USERS",
    "AllDevicesAssignmentTarget",
    "AllLicensedUsersAssignmentTarget",
    "AssignmentEdge",
    "AssignmentFilterType",
    "AssignmentMode",
    "AssignmentTarget",
    "EXPORT_COLUMNS",
    "ExclusionGroupAssignmentTarget",
    "GraphBaseModel",
    "GraphResource",
    "GroupAssignmentTarget",
    "GroupIdentity",
    "ManagedObject",
    "ObjectAssignment",
    "ResourceKind",
    "TargetKind",
    "parse_assignment_target",
]
