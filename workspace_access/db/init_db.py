from __future__ import annotations

import logging

from sqlalchemy import Engine, select
from sqlalchemy.orm import Session

import workspace_access.models  # noqa: F401  (register tables on Base.metadata)
from workspace_access.db.base import Base
from workspace_access.db.session import SessionLocal, engine as default_engine
from workspace_access.models import Role
from workspace_access.security.config import AccessPolicy

logger = logging.getLogger(__name__)


def init_db(policy: AccessPolicy, bind: Engine | None = None) -> None:
    """
    Create tables + provision the system roles named in the policy.
    """

    bind = bind or default_engine
    Base.metadata.create_all(bind=bind)

    with SessionLocal(bind=bind) as db:
        seed_system_roles(db, policy)
        db.commit()


def seed_system_roles(db: Session, policy: AccessPolicy) -> list[Role]:
    """
    Insert system roles that do not exist yet (matched by name).

    Existing system roles are left untouched: they are immutable once provisioned.
    """

    existing = {
        r.name: r
        for r in db.scalars(select(Role).where(Role.is_system.is_(True), Role.tenant_id.is_(None))).all()
    }

    created: list[Role] = []
    for spec in policy.system_roles:
        if spec.name in existing:
            continue
        role = Role(
            tenant_id=None,
            name=spec.name,
            description=spec.description,
            permissions=spec.mask(),
            priority=spec.priority,
            is_system=True,
            color=spec.color,
        )
        db.add(role)
        created.append(role)

    db.flush()
    if created:
        logger.info("Seeded system roles: %s", ", ".join(r.name for r in created))
    return created
