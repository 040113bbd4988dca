from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from workspace_access.access.context import AccessContext
from workspace_access.access.permissions import Capability
from workspace_access.schemas.api import RoleCreateIn, RoleUpdateIn
from workspace_access.schemas.identity import RoleOut
from workspace_access.security.decorators import require_capabilities
from workspace_access.security.dependencies import get_access_context, get_role_service
from workspace_access.services import RoleService

router = APIRouter(prefix="/tenants/{tenant_id}/roles", tags=["roles"])


@router.get("", response_model=list[RoleOut])
def list_roles(
    tenant_id: int,
    context: AccessContext = Depends(get_access_context),
    service: RoleService = Depends(get_role_service),
) -> list[RoleOut]:
    return [RoleOut.model_validate(r) for r in service.list_roles(context, tenant_id)]


@router.get("/assignable", response_model=list[RoleOut])
@require_capabilities(Capability.MANAGE_MEMBERS)
def list_assignable_roles(
    tenant_id: int,
    context: AccessContext = Depends(get_access_context),
    service: RoleService = Depends(get_role_service),
) -> list[RoleOut]:
    # Guarded in code rather than in the YAML policy.
    return [RoleOut.model_validate(r) for r in service.assignable_roles(context, tenant_id)]


@router.post("", response_model=RoleOut, status_code=status.HTTP_201_CREATED)
def create_role(
    tenant_id: int,
    payload: RoleCreateIn,
    context: AccessContext = Depends(get_access_context),
    service: RoleService = Depends(get_role_service),
) -> RoleOut:
    role = service.create_role(
        context,
        tenant_id,
        name=payload.name,
        permissions_mask=payload.mask(),
        priority=payload.priority,
        description=payload.description,
        color=payload.color,
    )
    return RoleOut.model_validate(role)


@router.patch("/{role_id}", response_model=RoleOut)
def update_role(
    tenant_id: int,
    role_id: int,
    payload: RoleUpdateIn,
    context: AccessContext = Depends(get_access_context),
    service: RoleService = Depends(get_role_service),
) -> RoleOut:
    # Only fields present in the body are touched; an explicit null clears description/color.
    optional = {k: getattr(payload, k) for k in ("description", "color") if k in payload.model_fields_set}
    role = service.update_role(
        context,
        tenant_id,
        role_id,
        name=payload.name,
        permissions_mask=payload.mask(),
        priority=payload.priority,
        **optional,
    )
    return RoleOut.model_validate(role)


@router.delete("/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_role(
    tenant_id: int,
    role_id: int,
    context: AccessContext = Depends(get_access_context),
    service: RoleService = Depends(get_role_service),
) -> Response:
    service.delete_role(context, tenant_id, role_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
