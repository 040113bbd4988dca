from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from workspace_access.access import permissions

from .identity import InvitationOut, MembershipOut, RoleOut, SessionOut, TenantOut, UserOut


def _known(value: list[str]) -> list[str]:
    permissions.from_names(value)
    return value


# ---- Auth --------------------------------------------------------------------------------


class LoginIn(BaseModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=1, max_length=1024)
    device_fingerprint: str | None = Field(default=None, max_length=255)


class RegisterIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=1024)
    name: str = Field(min_length=1, max_length=255)


class PasswordChangeIn(BaseModel):
    current_password: str = Field(min_length=1, max_length=1024)
    new_password: str = Field(min_length=8, max_length=1024)


class SelectTenantIn(BaseModel):
    tenant_id: int


class LoginOut(BaseModel):
    token: str
    user: UserOut
    session: SessionOut
    tenants: list[TenantOut]


class SessionStateOut(BaseModel):
    user: UserOut
    session: SessionOut
    tenants: list[TenantOut]


class SessionListItemOut(SessionOut):
    user_agent: str | None = None
    ip_address: str | None = None
    device_fingerprint: str | None = None
    current: bool = False


class SessionListOut(BaseModel):
    sessions: list[SessionListItemOut]


class RevokedOut(BaseModel):
    revoked: int


# ---- Authorization check -----------------------------------------------------------------


class AuthorizeIn(BaseModel):
    capabilities: list[str] = Field(default_factory=list)
    mode: Literal["all", "any"] = "all"
    target_priority: int | None = Field(default=None, ge=0)

    @field_validator("capabilities")
    @classmethod
    def _check_capabilities(cls, value: list[str]) -> list[str]:
        return _known(value)


class DecisionOut(BaseModel):
    allowed: bool
    reason: str | None = None
    mask: int = 0
    priority: int = -1
    capabilities: list[str] = Field(default_factory=list)


# ---- Tenants / roles / members -------------------------------------------------------------


class TenantCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    slug: str | None = Field(default=None, max_length=255)


class TenantCreatedOut(BaseModel):
    tenant: TenantOut
    membership: MembershipOut


class RoleCreateIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    priority: int = Field(ge=0)
    capabilities: list[str] = Field(default_factory=list)
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("capabilities")
    @classmethod
    def _check_capabilities(cls, value: list[str]) -> list[str]:
        return _known(value)

    def mask(self) -> int:
        return permissions.from_names(self.capabilities)


class RoleUpdateIn(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=100)
    priority: int | None = Field(default=None, ge=0)
    capabilities: list[str] | None = None
    description: str | None = None
    color: str | None = Field(default=None, pattern=r"^#[0-9A-Fa-f]{6}$")

    @field_validator("capabilities")
    @classmethod
    def _check_capabilities(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _known(value)

    def mask(self) -> int | None:
        return None if self.capabilities is None else permissions.from_names(self.capabilities)


class AssignRoleIn(BaseModel):
    role_id: int | None


class MemberUpdateIn(BaseModel):
    status: Literal["active", "suspended"] | None = None
    override_capabilities: list[str] | None = None

    @field_validator("override_capabilities")
    @classmethod
    def _check_capabilities(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _known(value)

    def access_flags(self) -> int | None:
        if self.override_capabilities is None:
            return None
        return permissions.from_names(self.override_capabilities)


class InvitationCreateIn(BaseModel):
    role_id: int | None = None
    email: EmailStr | None = None


class InvitationCreatedOut(BaseModel):
    token: str
    invitation: InvitationOut


class AcceptInvitationIn(BaseModel):
    token: str = Field(min_length=1, max_length=255)


__all__ = [
    "AcceptInvitationIn",
    "AssignRoleIn",
    "AuthorizeIn",
    "DecisionOut",
    "InvitationCreateIn",
    "InvitationCreatedOut",
    "LoginIn",
    "LoginOut",
    "MemberUpdateIn",
    "MembershipOut",
    "PasswordChangeIn",
    "RegisterIn",
    "RevokedOut",
    "RoleCreateIn",
    "RoleOut",
    "RoleUpdateIn",
    "SelectTenantIn",
    "SessionStateOut",
    "TenantCreateIn",
    "TenantCreatedOut",
]
