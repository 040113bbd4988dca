"""
Brute-force throttle for the login path.

Every attempt is appended to ``login_attempts``. Admission counts the failed
attempts inside a trailing window, per email and per origin address, and
compares each count against its own threshold. Attempts are never deleted;
old ones simply age out of the window.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from workspace_access.models import LoginAttempt

from .clock import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = timedelta(minutes=15)
DEFAULT_MAX_FAILURES_PER_EMAIL = 5
DEFAULT_MAX_FAILURES_PER_ORIGIN = 20


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class LoginThrottle:
    def __init__(
        self,
        db: Session,
        *,
        window: timedelta = DEFAULT_WINDOW,
        max_failures_per_email: int = DEFAULT_MAX_FAILURES_PER_EMAIL,
        max_failures_per_origin: int = DEFAULT_MAX_FAILURES_PER_ORIGIN,
        reset_on_success: bool = False,
        clock: Clock = utcnow,
    ) -> None:
        self._db = db
        self.window = window
        self.max_failures_per_email = max_failures_per_email
        self.max_failures_per_origin = max_failures_per_origin
        self.reset_on_success = reset_on_success
        self._clock = clock

    def record_attempt(
        self,
        email: str,
        ip_address: str,
        success: bool,
        *,
        user_agent: str | None = None,
    ) -> LoginAttempt:
        attempt = LoginAttempt(
            email=normalize_email(email),
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            attempted_at=self._clock(),
        )
        self._db.add(attempt)
        self._db.flush()
        return attempt

    def _last_success_for_email(self, email: str, since: datetime) -> datetime | None:
        return self._db.scalar(
            select(func.max(LoginAttempt.attempted_at)).where(
                LoginAttempt.email == email,
                LoginAttempt.success.is_(True),
                LoginAttempt.attempted_at >= since,
            )
        )

    def failures_for_email(self, email: str, window: timedelta | None = None) -> int:
        email = normalize_email(email)
        since = self._clock() - (window if window is not None else self.window)
        stmt = select(func.count(LoginAttempt.id)).where(
            LoginAttempt.email == email,
            LoginAttempt.success.is_(False),
            LoginAttempt.attempted_at >= since,
        )

        if self.reset_on_success:
            # A success clears the email counter: only later failures count.
            last_success = self._last_success_for_email(email, since)
            if last_success is not None:
                stmt = stmt.where(LoginAttempt.attempted_at > last_success)

        return int(self._db.scalar(stmt) or 0)

    def failures_for_origin(self, ip_address: str, window: timedelta | None = None) -> int:
        since = self._clock() - (window if window is not None else self.window)
        return int(
            self._db.scalar(
                select(func.count(LoginAttempt.id)).where(
                    LoginAttempt.ip_address == ip_address,
                    LoginAttempt.success.is_(False),
                    LoginAttempt.attempted_at >= since,
                )
            )
            or 0
        )

    def is_blocked(self, email: str, ip_address: str, window: timedelta | None = None) -> bool:
        """
        True when either the email or the origin has too many recent failures.

        Which of the two tripped is logged, never returned, so callers cannot
        leak it to the client.
        """

        by_email = self.failures_for_email(email, window)
        if by_email >= self.max_failures_per_email:
            logger.warning("Login throttled by email failures=%s ip=%s", by_email, ip_address)
            return True

        by_origin = self.failures_for_origin(ip_address, window)
        if by_origin >= self.max_failures_per_origin:
            logger.warning("Login throttled by origin failures=%s ip=%s", by_origin, ip_address)
            return True

        return False
