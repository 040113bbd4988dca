from __future__ import annotations

from fastapi import APIRouter, Depends, status

from workspace_access.access import permissions
from workspace_access.access.context import AccessContext
from workspace_access.access.guard import AuthorizationGuard
from workspace_access.schemas.api import AuthorizeIn, DecisionOut, TenantCreatedOut, TenantCreateIn
from workspace_access.schemas.identity import MembershipOut, TenantOut
from workspace_access.security.dependencies import get_access_context, get_guard, get_tenant_service
from workspace_access.services import TenantService

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=TenantCreatedOut, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: TenantCreateIn,
    context: AccessContext = Depends(get_access_context),
    service: TenantService = Depends(get_tenant_service),
) -> TenantCreatedOut:
    tenant, membership = service.create_tenant(context, name=payload.name, slug=payload.slug)
    return TenantCreatedOut(tenant=TenantOut.model_validate(tenant), membership=MembershipOut.model_validate(membership))


@router.post("/{tenant_id}/authorize", response_model=DecisionOut)
def check_authorization(
    tenant_id: int,
    payload: AuthorizeIn,
    context: AccessContext = Depends(get_access_context),
    guard: AuthorizationGuard = Depends(get_guard),
) -> DecisionOut:
    """
    Ask "may I do this here?" without doing it.

    A denial is an answer, not an error: the response is 200 with
    ``allowed=false`` and the denial code.
    """

    decision = guard.evaluate(
        context,
        tenant_id,
        [permissions.from_names([name]) for name in payload.capabilities],
        payload.mode,
        payload.target_priority,
    )
    scoped = decision.context or context
    return DecisionOut(
        allowed=decision.allowed,
        reason=decision.reason_code,
        mask=scoped.mask if decision.allowed else 0,
        priority=scoped.priority if decision.allowed else -1,
        capabilities=permissions.names(scoped.mask) if decision.allowed else [],
    )
