"""
Tests for tenant role management under the priority rules.
"""
from __future__ import annotations

import pytest
from sqlalchemy import select

from conftest import TEST_SECRET
from workspace_access.access import permissions
from workspace_access.access.errors import (
    Conflict,
    InsufficientCapability,
    NotFound,
    PriorityViolation,
    RolePriorityConflict,
    SystemRoleImmutable,
)
from workspace_access.access.permissions import Capability
from workspace_access.access.resolver import MembershipResolver
from workspace_access.models import Role
from workspace_access.security.config import AccessPolicy, AccessPolicyModel, RolesConfig
from workspace_access.services import RoleService


@pytest.fixture
def roles(db_session, policy, clock):
    return RoleService(db_session, policy, secret=TEST_SECRET, clock=clock)


DASHBOARD = int(Capability.VIEW_DASHBOARD)


def test_lead_cannot_create_a_peer_role_but_can_create_a_junior_one(roles, org, login_as):
    token = login_as(org["users"]["lead"])
    tenant_id = org["tenant"].id

    with pytest.raises(PriorityViolation):
        roles.create_role(token, tenant_id, name="Co-lead", permissions_mask=DASHBOARD, priority=50)

    role = roles.create_role(token, tenant_id, name="Host", permissions_mask=DASHBOARD, priority=40)
    assert role.id is not None
    assert role.tenant_id == tenant_id
    assert role.is_system is False


def test_create_requires_manage_roles(roles, org, login_as):
    token = login_as(org["users"]["staff"])

    with pytest.raises(InsufficientCapability):
        roles.create_role(token, org["tenant"].id, name="Mine", permissions_mask=DASHBOARD, priority=5)


def test_role_cannot_carry_capabilities_the_author_lacks(roles, org, login_as):
    token = login_as(org["users"]["lead"])

    with pytest.raises(InsufficientCapability):
        roles.create_role(
            token,
            org["tenant"].id,
            name="Sneaky",
            permissions_mask=permissions.combine(Capability.VIEW_DASHBOARD, Capability.DELETE_TENANT),
            priority=10,
        )


def test_duplicate_priority_is_a_conflict(roles, org, login_as):
    token = login_as(org["users"]["owner"])

    with pytest.raises(RolePriorityConflict):
        roles.create_role(token, org["tenant"].id, name="Another staff", permissions_mask=DASHBOARD, priority=20)


def test_duplicate_priority_allowed_when_policy_says_so(db_session, clock, org, login_as):
    lenient = AccessPolicy(AccessPolicyModel(roles=RolesConfig(enforce_unique_priority=False)))
    service = RoleService(db_session, lenient, secret=TEST_SECRET, clock=clock)
    token = login_as(org["users"]["owner"])

    role = service.create_role(token, org["tenant"].id, name="Another staff", permissions_mask=DASHBOARD, priority=20)

    assert role.priority == 20


def test_duplicate_name_is_a_conflict(roles, org, login_as):
    token = login_as(org["users"]["owner"])

    with pytest.raises(Conflict):
        roles.create_role(token, org["tenant"].id, name="Staff", permissions_mask=DASHBOARD, priority=25)


def test_update_cannot_lift_a_role_to_or_above_the_actor(roles, org, login_as):
    token = login_as(org["users"]["lead"])
    staff_role = org["roles"]["staff"]

    with pytest.raises(PriorityViolation):
        roles.update_role(token, org["tenant"].id, staff_role.id, priority=60)

    updated = roles.update_role(
        token,
        org["tenant"].id,
        staff_role.id,
        priority=30,
        permissions_mask=permissions.combine(Capability.VIEW_DASHBOARD, Capability.VIEW_ORDERS),
        description="Front of house",
    )
    assert updated.priority == 30
    assert permissions.has(updated.permissions, Capability.VIEW_ORDERS)
    assert updated.description == "Front of house"


def test_update_of_senior_role_is_refused(roles, org, login_as):
    token = login_as(org["users"]["lead"])

    with pytest.raises(PriorityViolation):
        roles.update_role(token, org["tenant"].id, org["roles"]["owner"].id, name="Boss")


def test_system_roles_are_immutable(roles, org, system_roles, login_as):
    token = login_as(org["users"]["owner"])
    viewer = system_roles["Viewer"]

    with pytest.raises(SystemRoleImmutable):
        roles.update_role(token, org["tenant"].id, viewer.id, name="Watcher")
    with pytest.raises(SystemRoleImmutable):
        roles.delete_role(token, org["tenant"].id, viewer.id)


def test_roles_of_other_tenants_are_not_found(db_session, roles, org, owner, make_role, login_as):
    from workspace_access.models import Tenant

    elsewhere = Tenant(name="Elsewhere", slug="elsewhere", owner_user_id=owner.id)
    db_session.add(elsewhere)
    db_session.flush()
    foreign = make_role(elsewhere, "Foreign", 5, DASHBOARD)
    db_session.commit()

    with pytest.raises(NotFound):
        roles.delete_role(login_as(org["users"]["owner"]), org["tenant"].id, foreign.id)


def test_delete_is_soft_and_strips_role_capability(db_session, roles, org, login_as):
    token = login_as(org["users"]["lead"])
    staff = org["users"]["staff"]
    staff_role = org["roles"]["staff"]

    roles.delete_role(token, org["tenant"].id, staff_role.id)

    assert db_session.scalars(select(Role).where(Role.id == staff_role.id)).first() is None
    kept = db_session.scalars(
        select(Role).where(Role.id == staff_role.id).execution_options(include_deleted=True)
    ).one()
    assert kept.deleted_at is not None
    assert MembershipResolver(db_session).effective_mask_for(staff.id, org["tenant"].id) == 0


def test_list_and_assignable_roles(roles, org, system_roles, login_as):
    token = login_as(org["users"]["lead"])
    tenant_id = org["tenant"].id

    listed = roles.list_roles(token, tenant_id)
    assert {r.name for r in listed} >= {"Proprietor", "Lead", "Staff", "Owner", "Viewer"}
    assert [r.priority for r in listed] == sorted((r.priority for r in listed), reverse=True)

    assignable = roles.assignable_roles(token, tenant_id)
    assert all(r.priority < 50 for r in assignable)
    assert {r.name for r in assignable} == {"Staff", "Viewer"}
