"""
Effective capability resolution for (user, tenant).

The effective mask is recomputed from committed rows on every call; there is
no cache to invalidate. A membership that is missing, soft-deleted or not
``active`` resolves to an empty mask.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from workspace_access.models import Membership, Role, Tenant, User

from .hierarchy import NO_ROLE_PRIORITY

logger = logging.getLogger(__name__)


def effective_mask(membership: Membership | None, role: Role | None) -> int:
    """
    ``role.permissions | membership.access_flags`` for an active membership.

    The override is additive only: it can add capabilities on top of the
    role but never take any away.
    """

    if membership is None or membership.deleted_at is not None or membership.status != "active":
        return 0
    role_mask = role.permissions if role is not None and role.deleted_at is None else 0
    return int(role_mask) | int(membership.access_flags or 0)


@dataclass(frozen=True)
class ResolvedMembership:
    membership: Membership | None
    role: Role | None
    mask: int
    priority: int

    @property
    def is_active(self) -> bool:
        return self.membership is not None and self.membership.status == "active"


class MembershipResolver:
    def __init__(self, db: Session) -> None:
        self._db = db

    def membership_for(self, user_id: int, tenant_id: int) -> Membership | None:
        return self._db.scalars(
            select(Membership).where(
                Membership.user_id == user_id,
                Membership.tenant_id == tenant_id,
            )
        ).first()

    def role_for(self, membership: Membership | None) -> Role | None:
        if membership is None or membership.role_id is None:
            return None
        return self._db.scalars(select(Role).where(Role.id == membership.role_id)).first()

    def resolve(self, user_id: int, tenant_id: int) -> ResolvedMembership:
        membership = self.membership_for(user_id, tenant_id)
        role = self.role_for(membership)
        mask = effective_mask(membership, role)

        # Seniority only counts while the membership grants anything at all.
        active = membership is not None and membership.status == "active"
        priority = role.priority if active and role is not None else NO_ROLE_PRIORITY

        logger.debug(
            "Resolved membership user_id=%s tenant_id=%s status=%s role_id=%s mask=%#x",
            user_id,
            tenant_id,
            getattr(membership, "status", None),
            getattr(role, "id", None),
            mask,
        )
        return ResolvedMembership(membership=membership, role=role, mask=mask, priority=priority)

    def effective_mask_for(self, user_id: int, tenant_id: int) -> int:
        return self.resolve(user_id, tenant_id).mask

    def global_mask(self, user_id: int) -> int:
        """Platform-wide flags; never combined with a tenant mask."""
        user = self._db.scalars(select(User).where(User.id == user_id)).first()
        if user is None or user.status != "active":
            return 0
        return int(user.global_flags or 0)

    def active_tenants(self, user_id: int) -> list[Tenant]:
        stmt = (
            select(Tenant)
            .join(Membership, Membership.tenant_id == Tenant.id)
            .where(Membership.user_id == user_id, Membership.status == "active")
            .order_by(Tenant.id)
        )
        return list(self._db.scalars(stmt).all())
