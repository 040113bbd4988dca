from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, computed_field

from workspace_access.access import permissions


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    status: str
    global_flags: int
    last_login_at: datetime | None
    created_at: datetime

    @computed_field
    @property
    def global_capabilities(self) -> list[str]:
        return permissions.names(self.global_flags, permissions.GlobalCapability)


class TenantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    slug: str
    status: str
    owner_user_id: int
    created_at: datetime


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int | None
    name: str
    description: str | None
    permissions: int
    priority: int
    is_system: bool
    color: str | None

    @computed_field
    @property
    def capabilities(self) -> list[str]:
        return permissions.names(self.permissions)


class MembershipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    tenant_id: int
    role_id: int | None
    access_flags: int
    status: str
    invited_by_user_id: int | None
    joined_at: datetime | None

    @computed_field
    @property
    def override_capabilities(self) -> list[str]:
        return permissions.names(self.access_flags)


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    current_tenant_id: int | None
    expires_at: datetime
    last_activity_at: datetime
    created_at: datetime


class InvitationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    tenant_id: int
    role_id: int | None
    email: str | None
    status: str
    expires_at: datetime
