from .auth import Invitation, LoginAttempt, UserSession
from .identity import Membership, Role, Tenant, User

__all__ = [
    "Invitation",
    "LoginAttempt",
    "Membership",
    "Role",
    "Tenant",
    "User",
    "UserSession",
]
