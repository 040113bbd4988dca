from .auth_service import AuthService, LoginResult
from .membership_service import MembershipService
from .role_service import RoleService
from .tenant_service import TenantService

__all__ = [
    "AuthService",
    "LoginResult",
    "MembershipService",
    "RoleService",
    "TenantService",
]
