from __future__ import annotations

from fastapi import APIRouter, Depends

from workspace_access.access.context import AccessContext
from workspace_access.schemas.api import RevokedOut
from workspace_access.security.dependencies import get_access_context, get_auth_service
from workspace_access.services import AuthService

router = APIRouter(prefix="/platform", tags=["platform"])


@router.post("/users/{user_id}/sessions/revoke", response_model=RevokedOut)
def revoke_user_sessions(
    user_id: int,
    context: AccessContext = Depends(get_access_context),
    service: AuthService = Depends(get_auth_service),
) -> RevokedOut:
    return RevokedOut(revoked=service.revoke_user_sessions(context, user_id))
