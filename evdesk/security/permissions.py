"""Static role → permission table for the shop floor."""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Iterable, Mapping


class Role(str, Enum):
    """Actor categories known to the workflow engine."""

    ADMIN = "admin"
    FRONT_DESK_MANAGER = "front_desk_manager"
    # Legacy alias of FRONT_DESK_MANAGER, kept with the identical permission set.
    MANAGER = "manager"
    FLOOR_MANAGER = "floor_manager"
    TECHNICIAN = "technician"


class Permission(str, Enum):
    """Atomic capabilities granted to roles."""

    # Tickets
    VIEW_ALL_TICKETS = "view_all_tickets"
    VIEW_ASSIGNED_TICKETS = "view_assigned_tickets"
    CREATE_TICKETS = "create_tickets"
    EDIT_TICKETS = "edit_tickets"
    DELETE_TICKETS = "delete_tickets"
    ASSIGN_TECHNICIANS = "assign_technicians"
    REASSIGN_TICKETS = "reassign_tickets"
    UPDATE_TICKET_STATUS = "update_ticket_status"
    ADD_NOTES = "add_notes"
    VIEW_TECHNICIAN_WORKLOAD = "view_technician_workload"
    MANAGE_ASSIGNMENTS = "manage_assignments"

    # Batteries
    VIEW_BATTERIES = "view_batteries"
    CREATE_BATTERY_RECORD = "create_battery_record"
    UPDATE_BATTERY_STATUS = "update_battery_status"
    DELETE_BATTERY_RECORD = "delete_battery_record"

    # Customers
    VIEW_CUSTOMERS = "view_customers"
    CREATE_CUSTOMER = "create_customer"
    UPDATE_CUSTOMER = "update_customer"
    DELETE_CUSTOMER = "delete_customer"

    # Reporting
    VIEW_ANALYTICS = "view_analytics"
    VIEW_FINANCIAL_REPORTS = "view_financial_reports"
    EXPORT_DATA = "export_data"

    # Users
    VIEW_USERS = "view_users"
    CREATE_USER = "create_user"
    UPDATE_USER_ROLES = "update_user_roles"
    DELETE_USER = "delete_user"
    MANAGE_USERS = "manage_users"

    # System
    MANAGE_SETTINGS = "manage_settings"
    VIEW_SYSTEM_LOGS = "view_system_logs"

    # Locations
    VIEW_ALL_LOCATIONS = "view_all_locations"
    MANAGE_LOCATIONS = "manage_locations"

    # Attachments
    UPLOAD_ATTACHMENTS = "upload_attachments"
    DELETE_ATTACHMENTS = "delete_attachments"


_ADMIN_PERMISSIONS = frozenset(Permission) - {
    Permission.VIEW_ASSIGNED_TICKETS,
    Permission.REASSIGN_TICKETS,
    Permission.VIEW_TECHNICIAN_WORKLOAD,
    Permission.MANAGE_ASSIGNMENTS,
}

_FRONT_DESK_PERMISSIONS = frozenset(
    {
        Permission.VIEW_ALL_TICKETS,
        Permission.CREATE_TICKETS,
        Permission.EDIT_TICKETS,
        Permission.ASSIGN_TECHNICIANS,
        Permission.UPDATE_TICKET_STATUS,
        Permission.ADD_NOTES,
        Permission.VIEW_BATTERIES,
        Permission.CREATE_BATTERY_RECORD,
        Permission.UPDATE_BATTERY_STATUS,
        Permission.VIEW_CUSTOMERS,
        Permission.CREATE_CUSTOMER,
        Permission.UPDATE_CUSTOMER,
        Permission.VIEW_ANALYTICS,
        Permission.VIEW_ALL_LOCATIONS,
        Permission.UPLOAD_ATTACHMENTS,
    }
)

_FLOOR_MANAGER_PERMISSIONS = frozenset(
    {
        Permission.VIEW_ALL_TICKETS,
        Permission.ASSIGN_TECHNICIANS,
        Permission.REASSIGN_TICKETS,
        Permission.UPDATE_TICKET_STATUS,
        Permission.ADD_NOTES,
        Permission.VIEW_TECHNICIAN_WORKLOAD,
        Permission.MANAGE_ASSIGNMENTS,
        Permission.VIEW_CUSTOMERS,
        Permission.VIEW_BATTERIES,
        Permission.UPLOAD_ATTACHMENTS,
    }
)

_TECHNICIAN_PERMISSIONS = frozenset(
    {
        Permission.VIEW_ASSIGNED_TICKETS,
        Permission.UPDATE_TICKET_STATUS,
        Permission.ADD_NOTES,
        Permission.VIEW_BATTERIES,
        Permission.UPDATE_BATTERY_STATUS,
        Permission.VIEW_CUSTOMERS,
        Permission.UPLOAD_ATTACHMENTS,
    }
)

ROLE_PERMISSIONS: Mapping[Role, frozenset[Permission]] = MappingProxyType(
    {
        Role.ADMIN: _ADMIN_PERMISSIONS,
        Role.FRONT_DESK_MANAGER: _FRONT_DESK_PERMISSIONS,
        Role.MANAGER: _FRONT_DESK_PERMISSIONS,
        Role.FLOOR_MANAGER: _FLOOR_MANAGER_PERMISSIONS,
        Role.TECHNICIAN: _TECHNICIAN_PERMISSIONS,
    }
)


def coerce_role(role: Role | str | None) -> Role | None:
    """Return the matching ``Role`` or ``None`` for anything unrecognised."""

    if isinstance(role, Role):
        return role
    if not isinstance(role, str):
        return None
    try:
        return Role(role)
    except ValueError:
        return None


def get_role_permissions(role: Role | str | None) -> frozenset[Permission]:
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_PERMISSIONS[resolved]


def has_permission(role: Role | str | None, permission: Permission) -> bool:
    """Return whether ``role`` holds ``permission``. Unknown roles hold nothing."""

    return permission in get_role_permissions(role)


def has_any_permission(role: Role | str | None, permissions: Iterable[Permission]) -> bool:
    granted = get_role_permissions(role)
    return any(permission in granted for permission in permissions)


def has_all_permissions(role: Role | str | None, permissions: Iterable[Permission]) -> bool:
    if coerce_role(role) is None:
        return False
    granted = get_role_permissions(role)
    return all(permission in granted for permission in permissions)


def is_admin(role: Role | str | None) -> bool:
    return coerce_role(role) is Role.ADMIN


def is_front_desk_manager(role: Role | str | None) -> bool:
    return coerce_role(role) in (Role.FRONT_DESK_MANAGER, Role.MANAGER)


def is_technician(role: Role | str | None) -> bool:
    return coerce_role(role) is Role.TECHNICIAN


def can_bypass_location_filter(role: Role | str | None) -> bool:
    """Admins and front desk managers see every location; everyone else is scoped."""

    return is_admin(role) or is_front_desk_manager(role)
