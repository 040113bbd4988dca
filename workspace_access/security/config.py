from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from workspace_access.access import permissions


class AuthConfig(BaseModel):
    authorization_header: str = "Authorization"
    bearer_prefix: str = "Bearer"


class SessionConfig(BaseModel):
    window_hours: float = Field(default=21, gt=0)
    renew_threshold_seconds: int = Field(default=0, ge=0)

    @property
    def window(self) -> timedelta:
        return timedelta(hours=self.window_hours)

    @property
    def renew_threshold(self) -> timedelta:
        return timedelta(seconds=self.renew_threshold_seconds)


class ThrottleConfig(BaseModel):
    window_minutes: float = Field(default=15, gt=0)
    max_failures_per_email: int = Field(default=5, ge=1)
    max_failures_per_origin: int = Field(default=20, ge=1)
    reset_on_success: bool = False

    @property
    def window(self) -> timedelta:
        return timedelta(minutes=self.window_minutes)


class RolesConfig(BaseModel):
    # Equal priorities make peers unable to manage each other; reject them up front.
    enforce_unique_priority: bool = True


class InvitationConfig(BaseModel):
    expires_in_days: int = Field(default=7, ge=1)


class SystemRoleSpec(BaseModel):
    name: str
    priority: int = Field(ge=0)
    preset: str | None = None
    capabilities: list[str] = Field(default_factory=list)
    description: str | None = None
    color: str | None = None

    @model_validator(mode="after")
    def _check_capabilities(self) -> SystemRoleSpec:
        if self.preset is not None and self.preset.lower() not in permissions.ROLE_PRESETS:
            raise ValueError(f"system role {self.name!r} uses unknown preset {self.preset!r}")
        permissions.from_names(self.capabilities)
        return self

    def mask(self) -> int:
        base = permissions.ROLE_PRESETS[self.preset.lower()] if self.preset else 0
        return base | permissions.from_names(self.capabilities)


class DefaultRule(BaseModel):
    auth_required: bool = True
    capabilities: list[str] = Field(default_factory=list)
    mode: Literal["all", "any"] = "all"

    @field_validator("capabilities")
    @classmethod
    def _known_capabilities(cls, value: list[str]) -> list[str]:
        permissions.from_names(value)
        return value


class RouteRule(BaseModel):
    path: str
    methods: list[str] = Field(default_factory=lambda: ["GET"])

    auth_required: bool | None = None
    capabilities: list[str] = Field(default_factory=list)
    mode: Literal["all", "any"] | None = None

    @field_validator("capabilities")
    @classmethod
    def _known_capabilities(cls, value: list[str]) -> list[str]:
        permissions.from_names(value)
        return value

    def normalized_methods(self) -> set[str]:
        return {m.upper() for m in self.methods}


class AccessPolicyModel(BaseModel):
    auth: AuthConfig = Field(default_factory=AuthConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    throttle: ThrottleConfig = Field(default_factory=ThrottleConfig)
    roles: RolesConfig = Field(default_factory=RolesConfig)
    invitations: InvitationConfig = Field(default_factory=InvitationConfig)
    system_roles: list[SystemRoleSpec] = Field(default_factory=list)
    default: DefaultRule = Field(default_factory=DefaultRule)
    routes: list[RouteRule] = Field(default_factory=list)


@dataclass(frozen=True)
class EffectiveRule:
    """
    Fully-resolved rule (defaults applied) for a particular request.
    """

    auth_required: bool
    # One entry per capability so that mode "any" can pick between them.
    capabilities: tuple[int, ...]
    mode: str


def _path_template_to_regex(path_template: str) -> re.Pattern[str]:
    # "/tenants/{tenant_id}/roles" -> r"^/tenants/[^/]+/roles$"
    regex = re.sub(r"\{[^/]+\}", r"[^/]+", path_template)
    return re.compile(rf"^{regex}$")


class AccessPolicy:
    """
    Runtime helper around the validated policy + route matching.
    """

    def __init__(self, model: AccessPolicyModel):
        self.model = model

        self._exact_rules: dict[str, list[RouteRule]] = {}
        for r in self.model.routes:
            self._exact_rules.setdefault(r.path, []).append(r)
        self._compiled_rules = [(_path_template_to_regex(r.path), r) for r in self.model.routes]

    @property
    def auth(self) -> AuthConfig:
        return self.model.auth

    @property
    def session(self) -> SessionConfig:
        return self.model.session

    @property
    def throttle(self) -> ThrottleConfig:
        return self.model.throttle

    @property
    def roles(self) -> RolesConfig:
        return self.model.roles

    @property
    def invitations(self) -> InvitationConfig:
        return self.model.invitations

    @property
    def system_roles(self) -> list[SystemRoleSpec]:
        return self.model.system_roles

    def match(self, path: str, method: str) -> EffectiveRule:
        """
        Find the best matching rule for (path, method), then apply defaults.
        """

        method = method.upper()
        default = self.model.default

        # 1) exact path match
        for candidate in self._exact_rules.get(path, []):
            if method in candidate.normalized_methods():
                return _effective(candidate, default)

        # 2) template match
        for regex, candidate in self._compiled_rules:
            if method in candidate.normalized_methods() and regex.match(path):
                return _effective(candidate, default)

        # 3) no match -> defaults
        return EffectiveRule(
            auth_required=default.auth_required,
            capabilities=_flags(default.capabilities),
            mode=default.mode,
        )


def _flags(flag_names: list[str]) -> tuple[int, ...]:
    flags: list[int] = []
    for name in flag_names:
        flag = permissions.from_names([name])
        if flag not in flags:
            flags.append(flag)
    return tuple(flags)


def _effective(rule: RouteRule, default: DefaultRule) -> EffectiveRule:
    # A rule that asks for capabilities needs an authenticated caller even if
    # it forgot to say so.
    inferred_auth_required = default.auth_required or bool(rule.capabilities)
    capabilities = rule.capabilities or default.capabilities

    return EffectiveRule(
        auth_required=inferred_auth_required if rule.auth_required is None else rule.auth_required,
        capabilities=_flags(capabilities),
        mode=rule.mode or default.mode,
    )


def load_access_policy(path: Path) -> AccessPolicy:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "access" not in raw:
        raise ValueError(f"Missing top-level 'access' key in policy: {path}")

    model = AccessPolicyModel.model_validate(raw["access"])
    return AccessPolicy(model)


def default_policy() -> AccessPolicy:
    return AccessPolicy(AccessPolicyModel())
