from __future__ import annotations

import logging
import re
import unicodedata

from sqlalchemy import select

from workspace_access.access import permissions
from workspace_access.access.errors import Conflict
from workspace_access.access.permissions import GlobalCapability
from workspace_access.models import Membership, Role, Tenant

from .base import Actor, ServiceBase

logger = logging.getLogger(__name__)


def normalize_slug(value: str) -> str:
    if not value:
        return ""

    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii")
    value = value.lower()
    value = re.sub(r"[^a-z0-9]+", "-", value).strip("-")

    return value


class TenantService(ServiceBase):
    def create_tenant(self, actor: Actor, *, name: str, slug: str | None = None) -> tuple[Tenant, Membership]:
        """
        Create a workspace and make the caller its owner.

        Needs ``CREATE_TENANT`` (or ``SYSTEM_ADMIN``) in the caller's global
        flags. The owner membership is bound to the most senior system role.
        """

        context = self.require_platform(
            actor,
            (GlobalCapability.CREATE_TENANT, GlobalCapability.SYSTEM_ADMIN),
            mode="any",
        )

        slug = normalize_slug(slug or name)
        if not slug:
            raise ValueError("workspace name must contain at least one letter or digit")
        taken = self.db.scalars(
            select(Tenant).where(Tenant.slug == slug).execution_options(include_deleted=True)
        ).first()
        if taken is not None:
            raise Conflict("Workspace slug is already taken")

        owner_role = self.db.scalars(
            select(Role)
            .where(Role.is_system.is_(True), Role.tenant_id.is_(None))
            .order_by(Role.priority.desc())
        ).first()
        if owner_role is None:
            raise RuntimeError("No system roles provisioned. Did init_db run?")

        now = self.clock()
        tenant = Tenant(
            name=name.strip(),
            slug=slug,
            status="trial",
            owner_user_id=context.user_id,
            created_at=now,
        )
        self.db.add(tenant)
        self.db.flush()

        membership = Membership(
            user_id=context.user_id,
            tenant_id=tenant.id,
            role_id=owner_role.id,
            access_flags=permissions.DEFAULT_MEMBER_FLAGS,
            status="active",
            joined_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(membership)
        self.db.flush()
        self.db.commit()

        logger.info("Tenant created tenant_id=%s slug=%s owner_user_id=%s", tenant.id, slug, context.user_id)
        return tenant, membership
