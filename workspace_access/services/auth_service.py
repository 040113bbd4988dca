"""
Login, registration and session boundary operations.

Login order matters: the throttle is consulted before the password is
checked, so a blocked caller learns nothing about the credentials. Unknown
emails and wrong passwords fail identically, including the bcrypt cost.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from functools import lru_cache

from sqlalchemy import select
from sqlalchemy.orm import Session

from workspace_access.access import permissions
from workspace_access.access.clock import Clock, utcnow
from workspace_access.access.errors import (
    AccountSuspended,
    Conflict,
    InvalidCredentials,
    InvalidOperation,
    MembershipInactive,
    NotFound,
    RateLimited,
    SessionInvalid,
)
from workspace_access.access.passwords import hash_password, verify_password
from workspace_access.access.throttle import normalize_email
from workspace_access.models import Tenant, User, UserSession
from workspace_access.security.config import AccessPolicy

from .base import Actor, ServiceBase, build_throttle

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def _dummy_hash() -> str:
    return hash_password("workspace-access-timing-equalizer")


@dataclass
class LoginResult:
    user: User
    session: UserSession
    token: str
    tenants: list[Tenant] = field(default_factory=list)


@dataclass
class SessionState:
    user: User
    session: UserSession
    tenants: list[Tenant] = field(default_factory=list)


class AuthService(ServiceBase):
    def __init__(self, db: Session, policy: AccessPolicy, *, secret: str, clock: Clock = utcnow) -> None:
        super().__init__(db, policy, secret=secret, clock=clock)
        self.throttle = build_throttle(db, policy, clock=self.clock)

    # ---- Login / registration ---------------------------------------------------------

    def login(
        self,
        email: str,
        password: str,
        *,
        ip_address: str,
        user_agent: str | None = None,
        device_fingerprint: str | None = None,
    ) -> LoginResult:
        email = normalize_email(email)

        if self.throttle.is_blocked(email, ip_address):
            self.throttle.record_attempt(email, ip_address, False, user_agent=user_agent)
            self.db.commit()
            raise RateLimited()

        user = self.db.scalars(select(User).where(User.email == email)).first()
        if user is None:
            verify_password(password, _dummy_hash())
            raise self._failed_attempt(email, ip_address, user_agent, "unknown_email")
        if not verify_password(password, user.password_hash):
            raise self._failed_attempt(email, ip_address, user_agent, "bad_password")

        if user.status == "suspended":
            self.throttle.record_attempt(email, ip_address, False, user_agent=user_agent)
            self.db.commit()
            logger.warning("Login refused for suspended user_id=%s", user.id)
            raise AccountSuspended()

        self.throttle.record_attempt(email, ip_address, True, user_agent=user_agent)
        user.last_login_at = self.clock()
        session, token = self.sessions.create(
            user,
            device_fingerprint=device_fingerprint,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        self.db.commit()

        logger.info("Login succeeded user_id=%s session_id=%s", user.id, session.id)
        return LoginResult(
            user=user,
            session=session,
            token=token,
            tenants=self.guard.resolver.active_tenants(user.id),
        )

    def _failed_attempt(self, email: str, ip_address: str, user_agent: str | None, why: str) -> InvalidCredentials:
        self.throttle.record_attempt(email, ip_address, False, user_agent=user_agent)
        self.db.commit()
        logger.info("Login failed reason=%s ip=%s", why, ip_address)
        return InvalidCredentials()

    def register(
        self,
        email: str,
        password: str,
        name: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
        device_fingerprint: str | None = None,
    ) -> LoginResult:
        email = normalize_email(email)
        existing = self.db.scalars(
            select(User).where(User.email == email).execution_options(include_deleted=True)
        ).first()
        if existing is not None:
            raise Conflict("Email is already registered")

        now = self.clock()
        user = User(
            email=email,
            name=name.strip(),
            password_hash=hash_password(password),
            status="active",
            global_flags=permissions.DEFAULT_GLOBAL_FLAGS,
            last_login_at=now,
            created_at=now,
            updated_at=now,
        )
        self.db.add(user)
        self.db.flush()

        session, token = self.sessions.create(
            user,
            device_fingerprint=device_fingerprint,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        self.db.commit()

        logger.info("User registered user_id=%s", user.id)
        return LoginResult(user=user, session=session, token=token, tenants=[])

    # ---- Session ----------------------------------------------------------------------

    def validate_session(self, token: str) -> SessionState:
        session, user = self.sessions.validate(token)
        self.db.commit()
        return SessionState(user=user, session=session, tenants=self.guard.resolver.active_tenants(user.id))

    def logout(self, token: str) -> bool:
        """
        Revoke the session behind ``token``.

        Logging out an already revoked or expired session is a no-op; an
        unknown token is still ``SessionInvalid``.
        """

        session = self.sessions.find(token)
        if session is None:
            raise SessionInvalid()
        revoked = self.sessions.revoke(session, "logout")
        self.db.commit()
        return revoked

    def logout_all(self, actor: Actor) -> int:
        """Revoke every other session of the caller; the current one stays."""
        context = self.authenticate(actor)
        count = self.sessions.revoke_all_for_user(context.user_id, "logout", except_session_id=context.session_id)
        self.db.commit()
        return count

    def list_sessions(self, actor: Actor) -> tuple[int, list[UserSession]]:
        """The caller's live sessions, newest first, plus the id of the current one."""
        context = self.authenticate(actor)
        self.db.commit()
        return context.session_id, self.sessions.active_sessions(context.user_id)

    def revoke_session(self, actor: Actor, session_id: int) -> bool:
        """
        Sign out one of the caller's other devices.

        The current session is refused (that is what ``logout`` is for); a
        session belonging to someone else is reported as not found.
        """

        context = self.authenticate(actor)
        if session_id == context.session_id:
            raise InvalidOperation("Cannot revoke the current session. Use /auth/logout instead.")

        session = self.db.scalars(
            select(UserSession).where(UserSession.id == session_id, UserSession.user_id == context.user_id)
        ).first()
        if session is None:
            raise NotFound("Session")

        revoked = self.sessions.revoke(session, "logout")
        self.db.commit()
        logger.info("Session revoked by owner user_id=%s session_id=%s", context.user_id, session_id)
        return revoked

    def change_password(self, actor: Actor, current_password: str, new_password: str) -> int:
        context = self.authenticate(actor)
        user = self.db.scalars(select(User).where(User.id == context.user_id)).one()
        if not verify_password(current_password, user.password_hash):
            logger.info("Password change refused (bad current password) user_id=%s", user.id)
            raise InvalidCredentials()

        user.password_hash = hash_password(new_password)
        user.updated_at = self.clock()
        count = self.sessions.revoke_all_for_user(
            user.id,
            "credential_change",
            except_session_id=context.session_id,
        )
        self.db.commit()
        logger.info("Password changed user_id=%s revoked_sessions=%s", user.id, count)
        return count

    def select_tenant(self, actor: Actor, tenant_id: int) -> UserSession:
        """Switch the session's current tenant; requires an active membership there."""

        context = self.authenticate(actor)
        resolved = self.guard.resolver.resolve(context.user_id, tenant_id)
        if not resolved.is_active:
            logger.warning(
                "Tenant switch refused (membership_inactive): user_id=%s tenant_id=%s",
                context.user_id,
                tenant_id,
            )
            raise MembershipInactive()

        session = self.db.get(UserSession, context.session_id)
        self.sessions.switch_tenant(session, tenant_id)
        self.db.commit()
        return session

    # ---- Platform administration --------------------------------------------------------

    def revoke_user_sessions(self, actor: Actor, user_id: int) -> int:
        context = self.require_platform(actor, permissions.GlobalCapability.SYSTEM_ADMIN)
        if self.db.scalars(select(User).where(User.id == user_id)).first() is None:
            raise NotFound("User")

        count = self.sessions.revoke_all_for_user(user_id, "admin_action")
        self.db.commit()
        logger.warning(
            "Sessions revoked by platform admin admin_user_id=%s user_id=%s count=%s",
            context.user_id,
            user_id,
            count,
        )
        return count
