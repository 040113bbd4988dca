"""
Tests for member management and invitations.
"""
from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import TEST_SECRET
from workspace_access.access import permissions
from workspace_access.access.errors import (
    Conflict,
    InsufficientCapability,
    InvitationExpiredOrUsed,
    NotFound,
    PriorityViolation,
)
from workspace_access.access.permissions import Capability
from workspace_access.access.resolver import MembershipResolver
from workspace_access.models import Invitation, Membership
from workspace_access.services import MembershipService


@pytest.fixture
def members(db_session, policy, clock):
    return MembershipService(db_session, policy, secret=TEST_SECRET, clock=clock)


def test_assign_role_below_actor(members, org, make_role, login_as):
    tenant = org["tenant"]
    host = make_role(tenant, "Host", 30, int(Capability.VIEW_DASHBOARD))

    membership = members.assign_role(login_as(org["users"]["lead"]), tenant.id, org["memberships"]["staff"].id, host.id)

    assert membership.role_id == host.id


def test_assign_role_at_or_above_actor_is_refused(members, org, login_as):
    token = login_as(org["users"]["lead"])
    tenant_id = org["tenant"].id

    with pytest.raises(PriorityViolation):
        members.assign_role(token, tenant_id, org["memberships"]["staff"].id, org["roles"]["lead"].id)
    with pytest.raises(PriorityViolation):
        members.assign_role(token, tenant_id, org["memberships"]["staff"].id, org["roles"]["owner"].id)


def test_cannot_reassign_a_senior_or_peer_member(members, org, login_as):
    token = login_as(org["users"]["lead"])
    tenant_id = org["tenant"].id

    with pytest.raises(PriorityViolation):
        members.assign_role(token, tenant_id, org["memberships"]["owner"].id, org["roles"]["staff"].id)
    # Own membership counts as a peer.
    with pytest.raises(PriorityViolation):
        members.assign_role(token, tenant_id, org["memberships"]["lead"].id, org["roles"]["staff"].id)


def test_assign_requires_manage_members(members, org, login_as):
    with pytest.raises(InsufficientCapability):
        members.assign_role(
            login_as(org["users"]["staff"]),
            org["tenant"].id,
            org["memberships"]["staff"].id,
            org["roles"]["staff"].id,
        )


def test_membership_of_other_tenant_is_not_found(db_session, members, org, owner, make_user, make_member, login_as):
    from workspace_access.models import Tenant

    elsewhere = Tenant(name="Elsewhere", slug="elsewhere", owner_user_id=owner.id)
    db_session.add(elsewhere)
    db_session.flush()
    foreign = make_member(make_user("far@example.com"), elsewhere)
    db_session.commit()

    with pytest.raises(NotFound):
        members.assign_role(login_as(org["users"]["owner"]), org["tenant"].id, foreign.id, None)


def test_suspending_a_member_zeroes_their_mask(db_session, members, org, login_as):
    staff = org["users"]["staff"]

    members.update_member(login_as(org["users"]["lead"]), org["tenant"].id, org["memberships"]["staff"].id, status="suspended")

    assert MembershipResolver(db_session).effective_mask_for(staff.id, org["tenant"].id) == 0


def test_suspended_senior_is_still_protected(db_session, members, org, login_as):
    org["memberships"]["owner"].status = "suspended"
    db_session.commit()

    with pytest.raises(PriorityViolation):
        members.update_member(login_as(org["users"]["lead"]), org["tenant"].id, org["memberships"]["owner"].id, status="active")


def test_override_must_be_within_actor_mask(members, org, login_as):
    token = login_as(org["users"]["lead"])
    tenant_id = org["tenant"].id
    staff_membership = org["memberships"]["staff"]

    updated = members.update_member(token, tenant_id, staff_membership.id, access_flags=int(Capability.VIEW_ORDERS))
    assert updated.access_flags == int(Capability.VIEW_ORDERS)

    with pytest.raises(InsufficientCapability):
        members.update_member(token, tenant_id, staff_membership.id, access_flags=int(Capability.DELETE_TENANT))


def test_remove_member_soft_deletes(db_session, members, org, login_as):
    staff_membership = org["memberships"]["staff"]

    members.remove_member(login_as(org["users"]["lead"]), org["tenant"].id, staff_membership.id)

    assert db_session.scalars(select(Membership).where(Membership.id == staff_membership.id)).first() is None
    kept = db_session.scalars(
        select(Membership).where(Membership.id == staff_membership.id).execution_options(include_deleted=True)
    ).one()
    assert kept.status == "left"
    assert MembershipResolver(db_session).effective_mask_for(org["users"]["staff"].id, org["tenant"].id) == 0


def test_list_members_excludes_removed(members, org, login_as):
    token = login_as(org["users"]["owner"])
    tenant_id = org["tenant"].id
    members.remove_member(token, tenant_id, org["memberships"]["staff"].id)

    listed = members.list_members(token, tenant_id)

    assert {m.id for m in listed} == {org["memberships"]["owner"].id, org["memberships"]["lead"].id}


def test_invitation_round_trip(db_session, members, org, make_user, login_as):
    tenant_id = org["tenant"].id
    invitation, raw = members.create_invitation(
        login_as(org["users"]["lead"]),
        tenant_id,
        role_id=org["roles"]["staff"].id,
        email="Newbie@Example.com",
    )
    assert invitation.token_hash != raw
    assert invitation.email == "newbie@example.com"

    newbie = make_user("newbie@example.com")
    membership = members.accept_invitation(login_as(newbie), raw)

    assert membership.status == "active"
    assert membership.role_id == org["roles"]["staff"].id
    assert membership.access_flags == permissions.DEFAULT_MEMBER_FLAGS
    assert membership.invited_by_user_id == org["users"]["lead"].id
    db_session.refresh(invitation)
    assert invitation.status == "accepted"
    assert invitation.used_at is not None


def test_invitation_cannot_be_used_twice(members, org, make_user, login_as):
    _, raw = members.create_invitation(login_as(org["users"]["lead"]), org["tenant"].id)
    members.accept_invitation(login_as(make_user("first@example.com")), raw)

    with pytest.raises(InvitationExpiredOrUsed):
        members.accept_invitation(login_as(make_user("second@example.com")), raw)


def test_expired_invitation(db_session, clock, members, org, make_user, login_as):
    invitation, raw = members.create_invitation(login_as(org["users"]["lead"]), org["tenant"].id)
    clock.advance(days=8)

    with pytest.raises(InvitationExpiredOrUsed):
        members.accept_invitation(login_as(make_user("late@example.com")), raw)
    db_session.refresh(invitation)
    assert invitation.status == "expired"


def test_invitation_role_must_be_below_inviter(members, org, login_as):
    with pytest.raises(PriorityViolation):
        members.create_invitation(login_as(org["users"]["lead"]), org["tenant"].id, role_id=org["roles"]["owner"].id)


def test_invitation_addressed_to_someone_else(members, org, make_user, login_as):
    _, raw = members.create_invitation(login_as(org["users"]["lead"]), org["tenant"].id, email="intended@example.com")

    with pytest.raises(NotFound):
        members.accept_invitation(login_as(make_user("other@example.com")), raw)


def test_existing_member_cannot_accept(members, org, login_as):
    _, raw = members.create_invitation(login_as(org["users"]["owner"]), org["tenant"].id)

    with pytest.raises(Conflict):
        members.accept_invitation(login_as(org["users"]["staff"]), raw)


def test_unknown_invitation_token(db_session, members, org, login_as):
    with pytest.raises(NotFound):
        members.accept_invitation(login_as(org["users"]["staff"]), "made-up")
    assert db_session.scalars(select(Invitation)).all() == []
