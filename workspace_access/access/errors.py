"""
Denial taxonomy for the authorization and session core.

Every error carries a stable ``code``, a user-facing ``message`` and the HTTP
status the transport layer should use. Capability and priority denials share
one generic message so an unauthorized caller cannot map the permission model.
Credential and throttle failures share one message to resist enumeration.
"""

from __future__ import annotations

from typing import Any

GENERIC_ACCESS_MESSAGE = "Insufficient access"
GENERIC_CREDENTIALS_MESSAGE = "Invalid email or password"


class AccessError(Exception):
    code = "ACCESS_ERROR"
    message = "Access denied"
    status_code = 403

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None) -> None:
        if message is not None:
            self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_response(self) -> dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


# ---- Login ---------------------------------------------------------------------------


class InvalidCredentials(AccessError):
    code = "INVALID_CREDENTIALS"
    message = GENERIC_CREDENTIALS_MESSAGE
    status_code = 401


class RateLimited(AccessError):
    code = "RATE_LIMITED"
    message = GENERIC_CREDENTIALS_MESSAGE
    status_code = 429


class AccountSuspended(AccessError):
    code = "ACCOUNT_SUSPENDED"
    message = "Account has been suspended"
    status_code = 403


# ---- Session -------------------------------------------------------------------------


class SessionInvalid(AccessError):
    code = "SESSION_INVALID"
    message = "Session not found or malformed"
    status_code = 401


class SessionExpired(AccessError):
    code = "SESSION_EXPIRED"
    message = "Session has expired"
    status_code = 401


class SessionRevoked(AccessError):
    code = "SESSION_REVOKED"
    message = "Session was revoked"
    status_code = 401


# ---- Tenant access -------------------------------------------------------------------


class MembershipInactive(AccessError):
    code = "MEMBERSHIP_INACTIVE"
    message = "You are not an active member of this workspace"
    status_code = 403


class InsufficientCapability(AccessError):
    code = "INSUFFICIENT_CAPABILITY"
    message = GENERIC_ACCESS_MESSAGE
    status_code = 403


class PriorityViolation(AccessError):
    code = "PRIORITY_VIOLATION"
    message = GENERIC_ACCESS_MESSAGE
    status_code = 403


class RolePriorityConflict(PriorityViolation):
    code = "ROLE_PRIORITY_CONFLICT"
    message = "Another role in this workspace already uses that priority"
    status_code = 409


class SystemRoleImmutable(AccessError):
    code = "SYSTEM_ROLE_IMMUTABLE"
    message = "System roles cannot be modified or deleted"
    status_code = 403


class InvitationExpiredOrUsed(AccessError):
    code = "INVITATION_EXPIRED_OR_USED"
    message = "Invalid or expired invitation"
    status_code = 410


# ---- Generic -------------------------------------------------------------------------


class NotFound(AccessError):
    code = "NOT_FOUND"
    message = "Not found"
    status_code = 404

    def __init__(self, resource: str = "Resource", **kwargs: Any) -> None:
        super().__init__(f"{resource} not found", **kwargs)


class Conflict(AccessError):
    code = "CONFLICT"
    message = "Conflict"
    status_code = 409


class InvalidOperation(AccessError):
    code = "INVALID_OPERATION"
    message = "Operation not allowed"
    status_code = 400
