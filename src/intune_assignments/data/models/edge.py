from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict

from .managed_object import ResourceKind


EXPORT_COLUMNS: tuple[str, ...] = (
    "Name",
    "AssignmentTarget",
    "AssignmentGroupName",
    "AssignmentType",
    "AssignmentMode",
)


class AssignmentMode(StrEnum):
    INCLUDED = "Included"
    EXCLUDED = "Excluded"


class AssignmentEdge(BaseModel):
    """One resolved object -> group relationship."""

    model_config = ConfigDict(frozen=True)

    object_name: str
    object_kind: ResourceKind
    group_id: str | None
    group_name: str
    mode: AssignmentMode

    def to_row(self) -> dict[str, str]:
        return {
            "Name": self.object_name,
            "AssignmentTarget": self.group_id or "",
            "AssignmentGroupName": self.group_name,
            "AssignmentType": self.object_kind.value,
            "AssignmentMode": self.mode.value,
        }
