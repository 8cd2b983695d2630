from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import Field, field_validator

from .assignment import AssignmentTarget, ObjectAssignment
from .common import GraphResource


class ResourceKind(StrEnum):
    """Managed object categories, in export order.

    The value doubles as the ``AssignmentType`` export label.
    """

    CONFIGURATION_PROFILE = "ConfigurationProfile"
    COMPLIANCE_POLICY = "CompliancePolicy"
    APPLICATION = "Application"
    REMEDIATION_SCRIPT = "RemediationScript"
    PLATFORM_SCRIPT = "PlatformScript"
    SHELL_SCRIPT = "ShellScript"
    PROTECTION_POLICY = "ProtectionPolicy"

    @property
    def rank(self) -> int:
        return list(ResourceKind).index(self)

    @classmethod
    def parse(cls, value: str) -> ResourceKind:
        """Look up a kind by value or member name, case-insensitively."""

        needle = value.strip().replace("-", "_").lower()
        for member in cls:
            if needle in {member.value.lower(), member.name.lower()}:
                return member
        raise ValueError(f"Unknown resource kind: {value!r}")


class ManagedObject(GraphResource):
    """A policy, profile, app or script together with its assignments."""

    kind: ResourceKind
    display_name: str | None = Field(default=None, alias="displayName")
    name: str | None = None
    assignments: list[ObjectAssignment] = Field(default_factory=list)

    @field_validator("assignments", mode="before")
    @classmethod
    def _missing_as_empty(cls, value: Any) -> Any:
        return value if value is not None else []

    @classmethod
    def from_payload(cls, payload: dict[str, Any], kind: ResourceKind) -> ManagedObject:
        return cls.model_validate({**payload, "kind": kind})

    @property
    def label(self) -> str:
        # Settings catalog policies expose ``name`` instead of ``displayName``.
        if self.display_name:
            return self.display_name
        return self.name or ""

    @property
    def targets(self) -> list[AssignmentTarget]:
        return [assignment.target for assignment in self.assignments]
