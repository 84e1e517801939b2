"""Authorization primitives for the workflow engine."""

from .permissions import (
    ROLE_PERMISSIONS,
    Permission,
    Role,
    can_bypass_location_filter,
    coerce_role,
    get_role_permissions,
    has_all_permissions,
    has_any_permission,
    has_permission,
    is_admin,
    is_front_desk_manager,
    is_technician,
)

__all__ = [
    "ROLE_PERMISSIONS",
    "Permission",
    "Role",
    "can_bypass_location_filter",
    "coerce_role",
    "get_role_permissions",
    "has_all_permissions",
    "has_any_permission",
    "has_permission",
    "is_admin",
    "is_front_desk_manager",
    "is_technician",
]
