"""
Session lifecycle: create, validate with sliding expiry, revoke.

State machine per session::

    active --(valid use)--> active        expires_at = now + window
    active --(now > expires_at)--> expired   detected lazily on validate
    active --(revoke, reason)--> revoked     terminal, idempotent

Revocation is checked before expiry so a revoked session never validates,
even while its expiry is still in the future. Renewal and revocation are
single UPDATE statements keyed by session id; concurrent renewals are
last-write-wins, which can only shorten the window, never grant access.
"""

from __future__ import annotations

import logging
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from workspace_access.models import User, UserSession
from workspace_access.models.auth import REVOCATION_REASONS

from .clock import Clock, utcnow
from .errors import AccountSuspended, SessionExpired, SessionInvalid, SessionRevoked
from .tokens import generate_token, hash_token

logger = logging.getLogger(__name__)

DEFAULT_SLIDING_WINDOW = timedelta(hours=21)


class SessionManager:
    def __init__(
        self,
        db: Session,
        *,
        secret: str,
        window: timedelta = DEFAULT_SLIDING_WINDOW,
        renew_threshold: timedelta = timedelta(0),
        clock: Clock = utcnow,
    ) -> None:
        if not secret:
            raise ValueError("session token secret must not be empty")
        self._db = db
        self._secret = secret
        self.window = window
        self.renew_threshold = renew_threshold
        self._clock = clock

    # ---- Creation ---------------------------------------------------------------------

    def create(
        self,
        user: User,
        tenant_id: int | None = None,
        *,
        device_fingerprint: str | None = None,
        user_agent: str | None = None,
        ip_address: str | None = None,
    ) -> tuple[UserSession, str]:
        """
        Persist a new session and return it with the raw token.

        The raw token is only ever available here; the store keeps its hash.
        """

        raw_token = generate_token()
        now = self._clock()
        session = UserSession(
            token_hash=hash_token(raw_token, self._secret),
            user_id=user.id,
            current_tenant_id=tenant_id,
            device_fingerprint=device_fingerprint,
            user_agent=user_agent,
            ip_address=ip_address,
            expires_at=now + self.window,
            last_activity_at=now,
            created_at=now,
        )
        self._db.add(session)
        self._db.flush()
        logger.info("Session created session_id=%s user_id=%s", session.id, user.id)
        return session, raw_token

    # ---- Validation -------------------------------------------------------------------

    def find(self, raw_token: str) -> UserSession | None:
        """Plain lookup by token hash, whatever the session's state."""

        if not raw_token:
            return None
        token_hash = hash_token(raw_token, self._secret)
        # populate_existing: bulk revocations may have left a loaded instance stale.
        stmt = (
            select(UserSession)
            .where(UserSession.token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        return self._db.scalars(stmt).first()

    def lookup(self, raw_token: str) -> UserSession:
        """Find the session for ``raw_token`` and check revocation, then expiry."""

        session = self.find(raw_token)
        if session is None:
            raise SessionInvalid()
        if session.revoked_at is not None:
            raise SessionRevoked()
        if self._clock() > session.expires_at:
            raise SessionExpired()
        return session

    def validate(self, raw_token: str, *, renew: bool = True) -> tuple[UserSession, User]:
        session = self.lookup(raw_token)

        user = self._db.scalars(select(User).where(User.id == session.user_id)).first()
        if user is None:
            logger.warning("Session owner missing session_id=%s user_id=%s", session.id, session.user_id)
            raise SessionInvalid()
        if user.status == "suspended":
            raise AccountSuspended()

        if renew:
            self.renew(session)
        return session, user

    def renew(self, session: UserSession) -> UserSession:
        """Slide ``expires_at`` to now + window and stamp activity."""

        now = self._clock()
        if self.renew_threshold and now - session.last_activity_at < self.renew_threshold:
            return session

        result = self._db.execute(
            update(UserSession)
            .where(UserSession.id == session.id, UserSession.revoked_at.is_(None))
            .values(expires_at=now + self.window, last_activity_at=now)
        )
        self._db.flush()
        if result.rowcount:
            self._db.refresh(session)
        return session

    # ---- Revocation -------------------------------------------------------------------

    def revoke(self, session: UserSession, reason: str) -> bool:
        """
        Mark ``session`` revoked. Returns False when it already was (no-op).
        """

        _check_reason(reason)
        result = self._db.execute(
            update(UserSession)
            .where(UserSession.id == session.id, UserSession.revoked_at.is_(None))
            .values(revoked_at=self._clock(), revocation_reason=reason)
        )
        self._db.flush()
        revoked = bool(result.rowcount)
        if revoked:
            # A bulk UPDATE does not always reach an instance flushed in this unit of work.
            self._db.refresh(session)
            logger.info("Session revoked session_id=%s reason=%s", session.id, reason)
        return revoked

    def revoke_all_for_user(self, user_id: int, reason: str, *, except_session_id: int | None = None) -> int:
        _check_reason(reason)
        stmt = (
            update(UserSession)
            .where(UserSession.user_id == user_id, UserSession.revoked_at.is_(None))
            .values(revoked_at=self._clock(), revocation_reason=reason)
        )
        if except_session_id is not None:
            stmt = stmt.where(UserSession.id != except_session_id)

        result = self._db.execute(stmt)
        self._db.flush()
        logger.info("Sessions revoked user_id=%s count=%s reason=%s", user_id, result.rowcount, reason)
        return int(result.rowcount or 0)

    # ---- Queries / metadata -----------------------------------------------------------

    def active_sessions(self, user_id: int) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.revoked_at.is_(None),
                UserSession.expires_at >= self._clock(),
            )
            .order_by(UserSession.created_at.desc(), UserSession.id.desc())
        )
        return list(self._db.scalars(stmt).all())

    def switch_tenant(self, session: UserSession, tenant_id: int | None) -> UserSession:
        """Metadata only: expiry is left untouched."""
        session.current_tenant_id = tenant_id
        self._db.flush()
        return session


def _check_reason(reason: str) -> None:
    if reason not in REVOCATION_REASONS:
        raise ValueError(f"unknown revocation reason {reason!r}; expected one of {REVOCATION_REASONS}")
