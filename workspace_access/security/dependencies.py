from __future__ import annotations

import logging

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from workspace_access.access.context import AccessContext
from workspace_access.access.errors import NotFound, SessionInvalid
from workspace_access.access.guard import AuthorizationGuard
from workspace_access.db.session import get_db
from workspace_access.security.auth import extract_bearer_token
from workspace_access.security.config import AccessPolicy, EffectiveRule
from workspace_access.services import AuthService, MembershipService, RoleService, TenantService
from workspace_access.services.base import build_guard
from workspace_access.settings import Settings, get_settings

logger = logging.getLogger(__name__)

Requirement = tuple[tuple[int, ...], str]


def get_access_policy(request: Request) -> AccessPolicy:
    policy = getattr(request.app.state, "access_policy", None)
    if policy is None:
        raise RuntimeError("Access policy not loaded. Did app startup run?")
    return policy


def get_access_context(request: Request) -> AccessContext:
    context = getattr(request.state, "access", None)
    if context is None:
        raise SessionInvalid("Authentication required")
    return context


def get_bearer_token(request: Request) -> str:
    token = getattr(request.state, "bearer_token", None)
    if token is None:
        raise SessionInvalid("Authentication required")
    return token


def get_request_token(request: Request, policy: AccessPolicy = Depends(get_access_policy)) -> str:
    """Bearer token read straight from the header, for routes the policy leaves public."""
    return extract_bearer_token(request, policy)


def _route_requirements(request: Request, rule: EffectiveRule) -> tuple[bool, list[Requirement]]:
    """
    Combine the matched policy rule with decorator metadata.

    Returns whether a session is needed and the capability requirements to
    check. The policy rule and the decorator are separate requirements, so
    each keeps its own mode.
    """

    endpoint = request.scope.get("endpoint")
    if endpoint is not None and getattr(endpoint, "__access_public__", False):
        return False, []

    requirements: list[Requirement] = []
    if rule.capabilities:
        requirements.append((rule.capabilities, rule.mode))

    decorator_caps = tuple(getattr(endpoint, "__access_capabilities__", ())) if endpoint is not None else ()
    if decorator_caps:
        requirements.append((decorator_caps, getattr(endpoint, "__access_mode__", "all")))

    return rule.auth_required or bool(decorator_caps), requirements


def enforce_security(
    request: Request,
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db, use_cache=False),
) -> None:
    """
    Global security dependency (PRIMARY, policy-driven).

    - Runs after routing, so it can read decorator metadata and path params.
    - Validates and renews the bearer session, then commits the renewal on its
      own DB session before the handler runs.
    - For routes under ``/tenants/{tenant_id}`` with required capabilities,
      resolves the caller's mask in that tenant and denies early.
    """

    auth_required, requirements = _route_requirements(request, policy.match(request.url.path, request.method))
    if not auth_required:
        return

    token = extract_bearer_token(request, policy)
    guard = build_guard(db, policy, secret=settings.token_secret)
    context = guard.authenticate(token)
    db.commit()

    raw_tenant_id = request.path_params.get("tenant_id")
    if raw_tenant_id is not None and requirements:
        try:
            tenant_id = int(raw_tenant_id)
        except ValueError:
            raise NotFound("Workspace") from None
        for capabilities, mode in requirements:
            context = guard.evaluate(context, tenant_id, capabilities, mode).raise_for_denial()

    request.state.access = context
    request.state.bearer_token = token
    logger.debug("Request authorized user_id=%s path=%s", context.user_id, request.url.path)


# ---- Service factories ----------------------------------------------------------------


def get_auth_service(
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> AuthService:
    return AuthService(db, policy, secret=settings.token_secret)


def get_role_service(
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> RoleService:
    return RoleService(db, policy, secret=settings.token_secret)


def get_membership_service(
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> MembershipService:
    return MembershipService(db, policy, secret=settings.token_secret)


def get_tenant_service(
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> TenantService:
    return TenantService(db, policy, secret=settings.token_secret)


def get_guard(
    policy: AccessPolicy = Depends(get_access_policy),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
) -> AuthorizationGuard:
    return build_guard(db, policy, secret=settings.token_secret)
