"""
Role seniority rules.

Priorities are non-negative integers, higher = more senior. An actor may only
create, edit, delete or hand out roles that sit strictly below their own
priority; equal seniority cannot manage a peer. System roles (no owning
tenant) are immutable regardless of priority.

Every violation raises; nothing is clamped or partially applied.
"""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, TypeVar

from .errors import PriorityViolation, SystemRoleImmutable

logger = logging.getLogger(__name__)

# Priority of an actor whose membership carries no role: below every real role.
NO_ROLE_PRIORITY = -1


class RoleLike(Protocol):
    priority: int
    is_system: bool


R = TypeVar("R", bound=RoleLike)


def can_manage_role(acting_priority: int, target_priority: int) -> bool:
    return target_priority < acting_priority


def assignable_roles(acting_priority: int, roles: Iterable[R]) -> list[R]:
    """Roles the actor may grant, most senior first."""
    allowed = [r for r in roles if can_manage_role(acting_priority, r.priority)]
    return sorted(allowed, key=lambda r: r.priority, reverse=True)


def _deny(action: str, acting_priority: int, target_priority: int) -> PriorityViolation:
    # Priorities go to the log only; the caller gets the generic message.
    logger.warning(
        "Priority violation action=%s acting_priority=%s target_priority=%s",
        action,
        acting_priority,
        target_priority,
    )
    return PriorityViolation()


def ensure_can_create(acting_priority: int, new_priority: int) -> None:
    if not can_manage_role(acting_priority, new_priority):
        raise _deny("create", acting_priority, new_priority)


def ensure_can_edit(acting_priority: int, role: RoleLike, new_priority: int | None = None) -> None:
    if role.is_system:
        raise SystemRoleImmutable()
    if not can_manage_role(acting_priority, role.priority):
        raise _deny("edit", acting_priority, role.priority)
    if new_priority is not None and not can_manage_role(acting_priority, new_priority):
        raise _deny("reprioritize", acting_priority, new_priority)


def ensure_can_delete(acting_priority: int, role: RoleLike) -> None:
    if role.is_system:
        raise SystemRoleImmutable()
    if not can_manage_role(acting_priority, role.priority):
        raise _deny("delete", acting_priority, role.priority)


def ensure_can_assign(acting_priority: int, role: RoleLike) -> None:
    if not can_manage_role(acting_priority, role.priority):
        raise _deny("assign", acting_priority, role.priority)


def ensure_can_manage_member(acting_priority: int, member_priority: int) -> None:
    """Members are managed through their current role's priority."""
    if not can_manage_role(acting_priority, member_priority):
        raise _deny("manage_member", acting_priority, member_priority)
