from __future__ import annotations

import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from workspace_access.access import hierarchy, permissions
from workspace_access.access.context import AccessContext
from workspace_access.access.errors import Conflict, InsufficientCapability, NotFound, RolePriorityConflict
from workspace_access.access.permissions import Capability
from workspace_access.models import Role

from .base import Actor, ServiceBase

logger = logging.getLogger(__name__)

_UNSET = object()


def visible_roles_stmt(tenant_id: int):
    """System roles plus the tenant's own roles, most senior first."""
    return (
        select(Role)
        .where(or_(Role.tenant_id == tenant_id, Role.tenant_id.is_(None)))
        .order_by(Role.priority.desc(), Role.id)
    )


def find_visible_role(db: Session, tenant_id: int, role_id: int) -> Role:
    role = db.scalars(
        select(Role).where(
            Role.id == role_id,
            or_(Role.tenant_id == tenant_id, Role.tenant_id.is_(None)),
        )
    ).first()
    if role is None:
        raise NotFound("Role")
    return role


class RoleService(ServiceBase):
    """
    Tenant role management.

    Every mutation needs ``MANAGE_ROLES`` in the tenant and a priority strictly
    above both the role's current and its requested priority. A role may only
    carry capabilities its author holds.
    """

    def list_roles(self, actor: Actor, tenant_id: int) -> list[Role]:
        self.require_tenant(actor, tenant_id, Capability.VIEW_MEMBERS)
        return list(self.db.scalars(visible_roles_stmt(tenant_id)).all())

    def assignable_roles(self, actor: Actor, tenant_id: int) -> list[Role]:
        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_MEMBERS)
        roles = self.db.scalars(visible_roles_stmt(tenant_id)).all()
        return hierarchy.assignable_roles(context.priority, roles)

    def create_role(
        self,
        actor: Actor,
        tenant_id: int,
        *,
        name: str,
        permissions_mask: int,
        priority: int,
        description: str | None = None,
        color: str | None = None,
    ) -> Role:
        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_ROLES)
        if priority < 0:
            raise ValueError("priority must be a non-negative integer")
        hierarchy.ensure_can_create(context.priority, priority)
        self._check_grantable(context, permissions_mask)
        self._check_name_free(tenant_id, name)
        self._check_priority_free(tenant_id, priority)

        now = self.clock()
        role = Role(
            tenant_id=tenant_id,
            name=name.strip(),
            description=description,
            permissions=permissions_mask,
            priority=priority,
            is_system=False,
            color=color,
            created_at=now,
            updated_at=now,
        )
        self.db.add(role)
        self.db.flush()
        self.db.commit()

        logger.info(
            "Role created role_id=%s tenant_id=%s priority=%s by user_id=%s",
            role.id,
            tenant_id,
            priority,
            context.user_id,
        )
        return role

    def update_role(
        self,
        actor: Actor,
        tenant_id: int,
        role_id: int,
        *,
        name: str | None = None,
        permissions_mask: int | None = None,
        priority: int | None = None,
        description: object = _UNSET,
        color: object = _UNSET,
    ) -> Role:
        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_ROLES)
        role = find_visible_role(self.db, tenant_id, role_id)
        if priority is not None and priority < 0:
            raise ValueError("priority must be a non-negative integer")
        hierarchy.ensure_can_edit(context.priority, role, priority)

        if permissions_mask is not None:
            self._check_grantable(context, permissions_mask)
        if name is not None and name.strip() != role.name:
            self._check_name_free(tenant_id, name, exclude_id=role.id)
        if priority is not None and priority != role.priority:
            self._check_priority_free(tenant_id, priority, exclude_id=role.id)

        if name is not None:
            role.name = name.strip()
        if permissions_mask is not None:
            role.permissions = permissions_mask
        if priority is not None:
            role.priority = priority
        if description is not _UNSET:
            role.description = description
        if color is not _UNSET:
            role.color = color
        role.updated_at = self.clock()
        self.db.flush()
        self.db.commit()

        logger.info("Role updated role_id=%s tenant_id=%s by user_id=%s", role.id, tenant_id, context.user_id)
        return role

    def delete_role(self, actor: Actor, tenant_id: int, role_id: int) -> None:
        """
        Soft delete. Memberships still pointing at the role resolve to zero
        role capability from the next check on.
        """

        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_ROLES)
        role = find_visible_role(self.db, tenant_id, role_id)
        hierarchy.ensure_can_delete(context.priority, role)

        role.deleted_at = self.clock()
        self.db.flush()
        self.db.commit()
        logger.info("Role deleted role_id=%s tenant_id=%s by user_id=%s", role.id, tenant_id, context.user_id)

    # ---- Checks -------------------------------------------------------------------------

    def _check_grantable(self, context: AccessContext, mask: int) -> None:
        permissions.ensure_mask(mask)
        extra = permissions.revoke(mask, context.mask)
        if extra:
            logger.warning(
                "Role escalation refused user_id=%s tenant_id=%s extra=%s",
                context.user_id,
                context.tenant_id,
                permissions.names(extra),
            )
            raise InsufficientCapability()

    def _check_name_free(self, tenant_id: int, name: str, exclude_id: int | None = None) -> None:
        stmt = select(Role).where(
            Role.name == name.strip(),
            or_(Role.tenant_id == tenant_id, Role.tenant_id.is_(None)),
        )
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if self.db.scalars(stmt).first() is not None:
            raise Conflict("A role with that name already exists")

    def _check_priority_free(self, tenant_id: int, priority: int, exclude_id: int | None = None) -> None:
        if not self.policy.roles.enforce_unique_priority:
            return
        # System roles are shared templates; only the tenant's own roles compete.
        stmt = select(Role).where(Role.priority == priority, Role.tenant_id == tenant_id)
        if exclude_id is not None:
            stmt = stmt.where(Role.id != exclude_id)
        if self.db.scalars(stmt).first() is not None:
            raise RolePriorityConflict()
