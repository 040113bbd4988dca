"""
Membership management and invitations.

A member is managed through the priority of the role they currently hold,
whatever their status: suspending someone does not make them easier to
manage. Overrides handed out by an actor must be a subset of the actor's own
effective mask.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from workspace_access.access import hierarchy, permissions
from workspace_access.access.clock import Clock, utcnow
from workspace_access.access.context import AccessContext
from workspace_access.access.errors import (
    Conflict,
    InsufficientCapability,
    InvitationExpiredOrUsed,
    NotFound,
)
from workspace_access.access.hierarchy import NO_ROLE_PRIORITY
from workspace_access.access.permissions import Capability
from workspace_access.access.throttle import normalize_email
from workspace_access.access.tokens import generate_token, hash_token
from workspace_access.models import Invitation, Membership, User
from workspace_access.security.config import AccessPolicy

from .base import Actor, ServiceBase
from .role_service import find_visible_role

logger = logging.getLogger(__name__)

# Statuses an actor may set directly; "pending" and "left" come from invitations and removal.
SETTABLE_MEMBER_STATUSES = ("active", "suspended")


class MembershipService(ServiceBase):
    def __init__(self, db: Session, policy: AccessPolicy, *, secret: str, clock: Clock = utcnow) -> None:
        super().__init__(db, policy, secret=secret, clock=clock)
        self._secret = secret

    # ---- Queries ------------------------------------------------------------------------

    def list_members(self, actor: Actor, tenant_id: int) -> list[Membership]:
        self.require_tenant(actor, tenant_id, Capability.VIEW_MEMBERS)
        stmt = select(Membership).where(Membership.tenant_id == tenant_id).order_by(Membership.id)
        return list(self.db.scalars(stmt).all())

    def _membership(self, tenant_id: int, membership_id: int) -> Membership:
        membership = self.db.scalars(
            select(Membership).where(Membership.id == membership_id, Membership.tenant_id == tenant_id)
        ).first()
        if membership is None:
            raise NotFound("Membership")
        return membership

    def member_priority(self, membership: Membership) -> int:
        role = self.guard.resolver.role_for(membership)
        return role.priority if role is not None else NO_ROLE_PRIORITY

    # ---- Mutations ----------------------------------------------------------------------

    def assign_role(self, actor: Actor, tenant_id: int, membership_id: int, role_id: int | None) -> Membership:
        """
        Give a member a different role (or none).

        Both the member's current role and the new role must sit strictly
        below the actor.
        """

        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_MEMBERS)
        membership = self._membership(tenant_id, membership_id)
        hierarchy.ensure_can_manage_member(context.priority, self.member_priority(membership))

        if role_id is not None:
            role = find_visible_role(self.db, tenant_id, role_id)
            hierarchy.ensure_can_assign(context.priority, role)

        membership.role_id = role_id
        membership.updated_at = self.clock()
        self.db.flush()
        self.db.commit()

        logger.info(
            "Role assigned membership_id=%s tenant_id=%s role_id=%s by user_id=%s",
            membership.id,
            tenant_id,
            role_id,
            context.user_id,
        )
        return membership

    def update_member(
        self,
        actor: Actor,
        tenant_id: int,
        membership_id: int,
        *,
        status: str | None = None,
        access_flags: int | None = None,
    ) -> Membership:
        context = self.require_tenant(actor, tenant_id, Capability.MANAGE_MEMBERS)
        membership = self._membership(tenant_id, membership_id)
        hierarchy.ensure_can_manage_member(context.priority, self.member_priority(membership))

        if status is not None and status not in SETTABLE_MEMBER_STATUSES:
            raise ValueError(f"status must be one of {SETTABLE_MEMBER_STATUSES}, got {status!r}")
        if access_flags is not None:
            _check_within(context, access_flags)

        if status is not None:
            membership.status = status
            if status == "active" and membership.joined_at is None:
                membership.joined_at = self.clock()
        if access_flags is not None:
            membership.access_flags = access_flags
        membership.updated_at = self.clock()
        self.db.flush()
        self.db.commit()

        logger.info(
            "Member updated membership_id=%s tenant_id=%s status=%s by user_id=%s",
            membership.id,
            tenant_id,
            membership.status,
            context.user_id,
        )
        return membership

    def remove_member(self, actor: Actor, tenant_id: int, membership_id: int) -> None:
        context = self.require_tenant(actor, tenant_id, Capability.REMOVE_MEMBERS)
        membership = self._membership(tenant_id, membership_id)
        hierarchy.ensure_can_manage_member(context.priority, self.member_priority(membership))

        now = self.clock()
        membership.status = "left"
        membership.deleted_at = now
        membership.updated_at = now
        self.db.flush()
        self.db.commit()
        logger.info(
            "Member removed membership_id=%s tenant_id=%s by user_id=%s",
            membership.id,
            tenant_id,
            context.user_id,
        )

    # ---- Invitations --------------------------------------------------------------------

    def create_invitation(
        self,
        actor: Actor,
        tenant_id: int,
        *,
        role_id: int | None = None,
        email: str | None = None,
    ) -> tuple[Invitation, str]:
        """Returns the invitation and its raw token; only the hash is stored."""

        context = self.require_tenant(actor, tenant_id, Capability.INVITE_MEMBERS)
        if role_id is not None:
            role = find_visible_role(self.db, tenant_id, role_id)
            hierarchy.ensure_can_assign(context.priority, role)

        raw_token = generate_token()
        now = self.clock()
        invitation = Invitation(
            tenant_id=tenant_id,
            role_id=role_id,
            inviter_id=context.user_id,
            email=normalize_email(email) if email else None,
            token_hash=hash_token(raw_token, self._secret),
            status="pending",
            expires_at=now + timedelta(days=self.policy.invitations.expires_in_days),
            created_at=now,
        )
        self.db.add(invitation)
        self.db.flush()
        self.db.commit()

        logger.info(
            "Invitation created invitation_id=%s tenant_id=%s by user_id=%s",
            invitation.id,
            tenant_id,
            context.user_id,
        )
        return invitation, raw_token

    def accept_invitation(self, actor: Actor, raw_token: str) -> Membership:
        context = self.authenticate(actor)
        invitation = self.db.scalars(
            select(Invitation).where(Invitation.token_hash == hash_token(raw_token, self._secret))
        ).first()
        if invitation is None:
            raise NotFound("Invitation")
        if invitation.status != "pending":
            raise InvitationExpiredOrUsed()

        now = self.clock()
        if now > invitation.expires_at:
            invitation.status = "expired"
            self.db.commit()
            raise InvitationExpiredOrUsed()

        user = self.db.scalars(select(User).where(User.id == context.user_id)).one()
        if invitation.email and invitation.email != user.email:
            logger.warning(
                "Invitation addressed to another email invitation_id=%s user_id=%s",
                invitation.id,
                user.id,
            )
            raise NotFound("Invitation")

        membership = self.guard.resolver.membership_for(user.id, invitation.tenant_id)
        # Only a pending membership can be completed by an invitation.
        if membership is not None and membership.status != "pending":
            raise Conflict("Already a member of this workspace")

        role_id = None
        if invitation.role_id is not None:
            role_id = self._live_role_id(invitation.tenant_id, invitation.role_id)

        if membership is None:
            membership = Membership(
                user_id=user.id,
                tenant_id=invitation.tenant_id,
                access_flags=permissions.DEFAULT_MEMBER_FLAGS,
                invited_by_user_id=invitation.inviter_id,
                created_at=now,
            )
            self.db.add(membership)
        membership.role_id = role_id
        membership.status = "active"
        membership.joined_at = now
        membership.updated_at = now

        invitation.status = "accepted"
        invitation.used_at = now
        self.db.flush()
        self.db.commit()

        logger.info(
            "Invitation accepted invitation_id=%s tenant_id=%s user_id=%s",
            invitation.id,
            invitation.tenant_id,
            user.id,
        )
        return membership

    def _live_role_id(self, tenant_id: int, role_id: int) -> int | None:
        try:
            return find_visible_role(self.db, tenant_id, role_id).id
        except NotFound:
            # Role was deleted after the invitation went out.
            return None


def _check_within(context: AccessContext, access_flags: int) -> None:
    permissions.ensure_mask(access_flags)
    extra = permissions.revoke(access_flags, context.mask)
    if extra:
        logger.warning(
            "Override escalation refused user_id=%s tenant_id=%s extra=%s",
            context.user_id,
            context.tenant_id,
            permissions.names(extra),
        )
        raise InsufficientCapability()
