"""
Single authorization entry point.

    "Can the holder of session S, in tenant T, perform capabilities C?"

Steps:
1. Validate the session (its failure kind is carried into the decision).
2. Resolve the effective mask for (session user, tenant).
3. Evaluate ``has_all`` / ``has_any`` over the required capabilities.
4. For role and member management, also require the actor's priority to be
   strictly above the *target's* priority.

The result is always a ``Decision`` with the precise denial reason, never a
bare boolean.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Literal

from sqlalchemy.orm import Session

from . import permissions
from .context import AccessContext
from .errors import AccessError, InsufficientCapability, MembershipInactive, PriorityViolation
from .hierarchy import can_manage_role
from .resolver import MembershipResolver
from .sessions import SessionManager

logger = logging.getLogger(__name__)

Mode = Literal["all", "any"]
MODES = ("all", "any")


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: AccessError | None = None
    context: AccessContext | None = None

    @classmethod
    def allow(cls, context: AccessContext) -> Decision:
        return cls(allowed=True, context=context)

    @classmethod
    def deny(cls, reason: AccessError, context: AccessContext | None = None) -> Decision:
        return cls(allowed=False, reason=reason, context=context)

    @property
    def reason_code(self) -> str | None:
        return self.reason.code if self.reason is not None else None

    def raise_for_denial(self) -> AccessContext:
        """Return the context when allowed, otherwise raise the denial reason."""
        if not self.allowed:
            raise self.reason or InsufficientCapability()
        assert self.context is not None
        return self.context


def _normalize(capabilities: int | Iterable[int]) -> list[int]:
    if isinstance(capabilities, int):
        return [int(capabilities)] if capabilities else []
    return [int(c) for c in capabilities]


def check_mask(mask: int, capabilities: int | Iterable[int], mode: Mode = "all") -> bool:
    if mode not in MODES:
        raise ValueError(f"mode must be one of {MODES}, got {mode!r}")
    required = _normalize(capabilities)
    if not required:
        return True
    if mode == "all":
        return permissions.has_all(mask, required)
    return permissions.has_any(mask, required)


class AuthorizationGuard:
    def __init__(
        self,
        db: Session,
        sessions: SessionManager,
        resolver: MembershipResolver | None = None,
    ) -> None:
        self._db = db
        self.sessions = sessions
        self.resolver = resolver or MembershipResolver(db)

    def authenticate(self, token: str, *, renew: bool = True) -> AccessContext:
        """Validate (and renew) the session; raises session/account errors."""
        session, user = self.sessions.validate(token, renew=renew)
        return AccessContext(
            user_id=user.id,
            session_id=session.id,
            global_mask=int(user.global_flags or 0),
            tenant_id=session.current_tenant_id,
        )

    def evaluate(
        self,
        context: AccessContext,
        tenant_id: int,
        capabilities: int | Iterable[int] = (),
        mode: Mode = "all",
        target_priority: int | None = None,
    ) -> Decision:
        """Tenant-scoped decision for an already authenticated context."""

        resolved = self.resolver.resolve(context.user_id, tenant_id)
        scoped = context.for_tenant(tenant_id, resolved.mask, resolved.priority)

        if not resolved.is_active:
            logger.warning(
                "Access denied (membership_inactive): user_id=%s tenant_id=%s",
                context.user_id,
                tenant_id,
            )
            return Decision.deny(MembershipInactive(), scoped)

        if not check_mask(resolved.mask, capabilities, mode):
            missing = permissions.revoke(permissions.combine(*_normalize(capabilities)), resolved.mask)
            logger.warning(
                "Access denied (insufficient_capability): user_id=%s tenant_id=%s mode=%s missing=%s",
                context.user_id,
                tenant_id,
                mode,
                permissions.names(missing),
            )
            return Decision.deny(InsufficientCapability(), scoped)

        if target_priority is not None and not can_manage_role(resolved.priority, target_priority):
            logger.warning(
                "Access denied (priority_violation): user_id=%s tenant_id=%s acting=%s target=%s",
                context.user_id,
                tenant_id,
                resolved.priority,
                target_priority,
            )
            return Decision.deny(PriorityViolation(), scoped)

        return Decision.allow(scoped)

    def authorize(
        self,
        token: str,
        tenant_id: int,
        capabilities: int | Iterable[int] = (),
        mode: Mode = "all",
        target_priority: int | None = None,
    ) -> Decision:
        try:
            context = self.authenticate(token)
        except AccessError as exc:
            return Decision.deny(exc)
        return self.evaluate(context, tenant_id, capabilities, mode, target_priority)

    def authorize_platform(
        self,
        token: str,
        capabilities: int | Iterable[int],
        mode: Mode = "all",
    ) -> Decision:
        """Platform-scoped check against the user's global mask only."""
        try:
            context = self.authenticate(token)
        except AccessError as exc:
            return Decision.deny(exc)
        return self.evaluate_platform(context, capabilities, mode)

    def evaluate_platform(
        self,
        context: AccessContext,
        capabilities: int | Iterable[int],
        mode: Mode = "all",
    ) -> Decision:
        mask = self.resolver.global_mask(context.user_id)
        if not check_mask(mask, capabilities, mode):
            logger.warning("Access denied (platform_capability): user_id=%s", context.user_id)
            return Decision.deny(InsufficientCapability(), context)
        return Decision.allow(context)

    def require(
        self,
        token: str,
        tenant_id: int,
        capabilities: int | Iterable[int] = (),
        mode: Mode = "all",
        target_priority: int | None = None,
    ) -> AccessContext:
        return self.authorize(token, tenant_id, capabilities, mode, target_priority).raise_for_denial()
