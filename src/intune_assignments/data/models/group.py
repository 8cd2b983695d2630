from __future__ import annotations

from pydantic import Field

from .common import GraphBaseModel


class GroupIdentity(GraphBaseModel):
    """Resolved identity of an assignment target.

    Built-in targets (all devices, all licensed users) carry no directory id.
    """

    id: str | None = None
    display_name: str = Field(alias="displayName")

    @property
    def is_built_in(self) -> bool:
        return self.id is None


ALL_DEVICES = GroupIdentity(id=None, display_name="All Devices")
ALL_USERS = GroupIdentity(id=None, display_name="All Users")
