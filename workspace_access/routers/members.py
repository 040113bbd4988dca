from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from workspace_access.access.context import AccessContext
from workspace_access.schemas.api import AssignRoleIn, MemberUpdateIn
from workspace_access.schemas.identity import MembershipOut
from workspace_access.security.dependencies import get_access_context, get_membership_service
from workspace_access.services import MembershipService

router = APIRouter(prefix="/tenants/{tenant_id}/members", tags=["members"])


@router.get("", response_model=list[MembershipOut])
def list_members(
    tenant_id: int,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> list[MembershipOut]:
    return [MembershipOut.model_validate(m) for m in service.list_members(context, tenant_id)]


@router.put("/{membership_id}/role", response_model=MembershipOut)
def assign_role(
    tenant_id: int,
    membership_id: int,
    payload: AssignRoleIn,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> MembershipOut:
    membership = service.assign_role(context, tenant_id, membership_id, payload.role_id)
    return MembershipOut.model_validate(membership)


@router.patch("/{membership_id}", response_model=MembershipOut)
def update_member(
    tenant_id: int,
    membership_id: int,
    payload: MemberUpdateIn,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> MembershipOut:
    membership = service.update_member(
        context,
        tenant_id,
        membership_id,
        status=payload.status,
        access_flags=payload.access_flags(),
    )
    return MembershipOut.model_validate(membership)


@router.delete("/{membership_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    tenant_id: int,
    membership_id: int,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> Response:
    service.remove_member(context, tenant_id, membership_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
