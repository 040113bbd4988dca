"""
Pytest fixtures for the test suite.

Tests use an in-memory SQLite engine and a session joined to an outer
transaction that is rolled back after each test. Services call
``session.commit()``; with ``join_transaction_mode="create_savepoint"`` that
only releases a savepoint, so tests do not affect each other.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine, event, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from workspace_access.access import permissions
from workspace_access.access.passwords import hash_password
from workspace_access.access.sessions import SessionManager
from workspace_access.models import Membership, Role, Tenant, User
from workspace_access.security.config import load_access_policy


TEST_DB_URL = "sqlite:///:memory:"
TEST_SECRET = "test-token-secret"
TEST_PASSWORD = "correct horse battery"
POLICY_PATH = Path(__file__).resolve().parents[1] / "config" / "access_policy.yaml"


class FakeClock:
    """Controllable naive-UTC clock; call it like ``utcnow``."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    """Create a fresh in-memory SQLite engine for each test."""
    test_engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    # pysqlite needs explicit BEGIN handling for SAVEPOINT to behave.
    @event.listens_for(test_engine, "connect")
    def _no_implicit_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return test_engine


@pytest.fixture
def tables(engine):
    """Create all ORM tables on the test engine."""
    import workspace_access.models  # noqa: F401
    from workspace_access.db.base import Base

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture
def db_session(tables):
    """
    Provide a Session bound to the test DB; roll back after each test.
    """
    connection = tables.connect()
    transaction = connection.begin()
    TestSession = sessionmaker(
        bind=connection,
        autocommit=False,
        autoflush=False,
        class_=Session,
        join_transaction_mode="create_savepoint",
    )
    session = TestSession()
    yield session
    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 1, 1, 8, 0, 0))


@pytest.fixture(scope="session")
def policy():
    """The policy shipped in config/, so the real YAML is exercised."""
    return load_access_policy(POLICY_PATH)


@pytest.fixture(scope="session")
def password_hash():
    # bcrypt is deliberately slow; hash once for the whole run.
    return hash_password(TEST_PASSWORD)


@pytest.fixture
def system_roles(db_session, policy):
    from workspace_access.db.init_db import seed_system_roles

    seed_system_roles(db_session, policy)
    db_session.commit()

    roles = db_session.scalars(select(Role).where(Role.is_system.is_(True))).all()
    return {r.name: r for r in roles}


@pytest.fixture
def make_user(db_session, password_hash):
    def _make(email: str, *, status: str = "active", global_flags: int = 0, name: str | None = None):
        user = User(
            email=email,
            name=name or email.split("@")[0],
            password_hash=password_hash,
            status=status,
            global_flags=global_flags,
        )
        db_session.add(user)
        db_session.flush()
        return user

    return _make


@pytest.fixture
def owner(make_user):
    return make_user("owner@example.com", global_flags=int(permissions.GlobalCapability.CREATE_TENANT))


@pytest.fixture
def tenant(db_session, owner):
    t = Tenant(name="Burger Place", slug="burger-place", status="active", owner_user_id=owner.id)
    db_session.add(t)
    db_session.flush()
    return t


@pytest.fixture
def make_role(db_session):
    def _make(tenant, name: str, priority: int, mask: int):
        role = Role(tenant_id=tenant.id, name=name, priority=priority, permissions=mask, is_system=False)
        db_session.add(role)
        db_session.flush()
        return role

    return _make


@pytest.fixture
def make_member(db_session):
    def _make(user, tenant, role=None, *, status: str = "active", access_flags: int = 0):
        membership = Membership(
            user_id=user.id,
            tenant_id=tenant.id,
            role_id=role.id if role is not None else None,
            status=status,
            access_flags=access_flags,
        )
        db_session.add(membership)
        db_session.flush()
        return membership

    return _make


@pytest.fixture
def session_manager(db_session, clock):
    return SessionManager(db_session, secret=TEST_SECRET, clock=clock)


@pytest.fixture
def login_as(session_manager, db_session):
    """Open a session for ``user`` and return its raw bearer token."""

    def _login(user) -> str:
        _, token = session_manager.create(user)
        db_session.commit()
        return token

    return _login


@pytest.fixture
def org(db_session, tenant, owner, make_user, make_role, make_member):
    """
    A small workspace:

    - owner (priority 100, every capability)
    - lead (priority 50, manages roles and members)
    - staff (priority 20, dashboard only)
    """

    owner_role = make_role(tenant, "Proprietor", 100, permissions.OWNER)
    lead_mask = permissions.combine(
        permissions.Capability.VIEW_DASHBOARD,
        permissions.Capability.VIEW_MEMBERS,
        permissions.Capability.INVITE_MEMBERS,
        permissions.Capability.MANAGE_MEMBERS,
        permissions.Capability.REMOVE_MEMBERS,
        permissions.Capability.MANAGE_ROLES,
        permissions.Capability.VIEW_ORDERS,
    )
    lead_role = make_role(tenant, "Lead", 50, lead_mask)
    staff_role = make_role(tenant, "Staff", 20, int(permissions.Capability.VIEW_DASHBOARD))

    lead = make_user("lead@example.com")
    staff = make_user("staff@example.com")

    memberships = {
        "owner": make_member(owner, tenant, owner_role),
        "lead": make_member(lead, tenant, lead_role),
        "staff": make_member(staff, tenant, staff_role),
    }
    db_session.commit()

    return {
        "tenant": tenant,
        "users": {"owner": owner, "lead": lead, "staff": staff},
        "roles": {"owner": owner_role, "lead": lead_role, "staff": staff_role},
        "memberships": memberships,
    }
