from .models import (
    ALL_DEVICES,
    ALL_USERS,
    AssignmentEdge,
    AssignmentMode,
    AssignmentTarget,
    GroupIdentity,
    ManagedObject,
    ResourceKind,
    TargetKind,
)
from .validation import GraphResponseValidator, ValidationIssue

__all__ = [
    "ALL_DEVICES",
    "ALL_USERS",
    "AssignmentEdge",
    "AssignmentMode",
    "AssignmentTarget",
    "GraphResponseValidator",
    "GroupIdentity",
    "ManagedObject",
    "ResourceKind",
    "TargetKind",
    "ValidationIssue",
]
