"""Permission helpers for library visibility."""

from .access_control import (
    USER_TAGS_PARAMETER,
    PermissionClause,
    UserAccess,
    is_admin_role,
    normalize_role,
    resolve_user_access,
    user_permission_predicates,
)

__all__ = [
    "PermissionClause",
    "USER_TAGS_PARAMETER",
    "UserAccess",
    "is_admin_role",
    "normalize_role",
    "resolve_user_access",
    "user_permission_predicates",
]
