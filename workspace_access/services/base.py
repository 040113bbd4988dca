"""
Shared wiring for the boundary services.

Each service is built per unit of work around one SQLAlchemy ``Session``.
Checks run first and raise before anything is written; a mutation that
passes every check is flushed and committed as a whole.
"""

from __future__ import annotations

from typing import Iterable, Union

from sqlalchemy.orm import Session

from workspace_access.access.clock import Clock, utcnow
from workspace_access.access.context import AccessContext
from workspace_access.access.guard import AuthorizationGuard, Mode
from workspace_access.access.sessions import SessionManager
from workspace_access.access.throttle import LoginThrottle
from workspace_access.security.config import AccessPolicy

# Either a context already validated by the transport layer or a raw bearer token.
Actor = Union[AccessContext, str]


def build_session_manager(db: Session, policy: AccessPolicy, *, secret: str, clock: Clock = utcnow) -> SessionManager:
    return SessionManager(
        db,
        secret=secret,
        window=policy.session.window,
        renew_threshold=policy.session.renew_threshold,
        clock=clock,
    )


def build_throttle(db: Session, policy: AccessPolicy, *, clock: Clock = utcnow) -> LoginThrottle:
    return LoginThrottle(
        db,
        window=policy.throttle.window,
        max_failures_per_email=policy.throttle.max_failures_per_email,
        max_failures_per_origin=policy.throttle.max_failures_per_origin,
        reset_on_success=policy.throttle.reset_on_success,
        clock=clock,
    )


def build_guard(db: Session, policy: AccessPolicy, *, secret: str, clock: Clock = utcnow) -> AuthorizationGuard:
    return AuthorizationGuard(db, build_session_manager(db, policy, secret=secret, clock=clock))


class ServiceBase:
    def __init__(self, db: Session, policy: AccessPolicy, *, secret: str, clock: Clock = utcnow) -> None:
        self.db = db
        self.policy = policy
        self.clock = clock
        self.guard = build_guard(db, policy, secret=secret, clock=clock)

    @property
    def sessions(self) -> SessionManager:
        return self.guard.sessions

    def authenticate(self, actor: Actor) -> AccessContext:
        if isinstance(actor, AccessContext):
            return actor
        return self.guard.authenticate(actor)

    def require_tenant(
        self,
        actor: Actor,
        tenant_id: int,
        capabilities: int | Iterable[int] = (),
        mode: Mode = "all",
    ) -> AccessContext:
        """Authenticate, then resolve the actor's mask and priority in ``tenant_id`` or raise."""
        context = self.authenticate(actor)
        return self.guard.evaluate(context, tenant_id, capabilities, mode).raise_for_denial()

    def require_platform(self, actor: Actor, capabilities: int | Iterable[int], mode: Mode = "all") -> AccessContext:
        context = self.authenticate(actor)
        return self.guard.evaluate_platform(context, capabilities, mode).raise_for_denial()
