# Auth module for Dexter Settlement API
# Provides role-based access control and authentication decorators

from auth.roles import (
    UserType,
    Permission,
    ROLE_PERMISSIONS,
    get_permissions_for_role,
    has_permission,
    has_any_permission,
)

from auth.dependencies import Caller, get_current_caller

from auth.decorators import (
    AuthError,
    require_user_type,
    require_permission,
    require_admin,
)

__all__ = [
    # Roles
    "UserType",
    "Permission",
    "ROLE_PERMISSIONS",
    "get_permissions_for_role",
    "has_permission",
    "has_any_permission",

    # Identity
    "Caller",
    "get_current_caller",

    # Decorators
    "AuthError",
    "require_user_type",
    "require_permission",
    "require_admin",
]
