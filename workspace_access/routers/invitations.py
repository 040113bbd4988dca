from __future__ import annotations

from fastapi import APIRouter, Depends, status

from workspace_access.access.context import AccessContext
from workspace_access.schemas.api import AcceptInvitationIn, InvitationCreatedOut, InvitationCreateIn
from workspace_access.schemas.identity import InvitationOut, MembershipOut
from workspace_access.security.dependencies import get_access_context, get_membership_service
from workspace_access.services import MembershipService

router = APIRouter(tags=["invitations"])


@router.post(
    "/tenants/{tenant_id}/invitations",
    response_model=InvitationCreatedOut,
    status_code=status.HTTP_201_CREATED,
)
def create_invitation(
    tenant_id: int,
    payload: InvitationCreateIn,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> InvitationCreatedOut:
    invitation, token = service.create_invitation(context, tenant_id, role_id=payload.role_id, email=payload.email)
    return InvitationCreatedOut(token=token, invitation=InvitationOut.model_validate(invitation))


@router.post("/invitations/accept", response_model=MembershipOut)
def accept_invitation(
    payload: AcceptInvitationIn,
    context: AccessContext = Depends(get_access_context),
    service: MembershipService = Depends(get_membership_service),
) -> MembershipOut:
    return MembershipOut.model_validate(service.accept_invitation(context, payload.token))
