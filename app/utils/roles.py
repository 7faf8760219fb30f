# app/utils/roles.py
"""
Role policy and input normalization.

Roles, task priorities and task statuses each have exactly one canonical
enumeration. Legacy spellings seen in older clients are mapped onto it here,
at the input boundary, so the rest of the code only ever compares canonical
values.
"""

import enum
from typing import Union

from app.models.task import TaskPriority, TaskStatus


class Role(str, enum.Enum):
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    DEPARTMENT = "DEPARTMENT"
    FIELD = "FIELD"


LEGACY_ROLE_MAP = {
    "DEPARTMENT_HEAD": Role.DEPARTMENT,
    "FIELD_WORKER": Role.FIELD,
}

LEGACY_PRIORITY_MAP = {
    "CRITICAL": TaskPriority.URGENT,
}

LEGACY_STATUS_MAP = {
    "TODO": TaskStatus.PENDING,
    "NEW": TaskStatus.PENDING,
    "DONE": TaskStatus.COMPLETED,
    "FINISHED": TaskStatus.COMPLETED,
}

ROLE_DISPLAY_NAMES = {
    Role.ADMIN: "Administrator",
    Role.MANAGER: "Manager",
    Role.DEPARTMENT: "Department Head",
    Role.FIELD: "Field Worker",
}


def _key(value) -> str:
    if isinstance(value, enum.Enum):
        value = value.value
    return str(value or "").strip().upper()


def normalize_role(role: Union[str, Role, None]) -> Role:
    """Map any role spelling to a canonical Role; unknown roles fall back to FIELD"""
    key = _key(role)
    if key in LEGACY_ROLE_MAP:
        return LEGACY_ROLE_MAP[key]
    try:
        return Role(key)
    except ValueError:
        return Role.FIELD


def normalize_priority(priority: Union[str, TaskPriority]) -> TaskPriority:
    key = _key(priority)
    if key in LEGACY_PRIORITY_MAP:
        return LEGACY_PRIORITY_MAP[key]
    try:
        return TaskPriority(key)
    except ValueError:
        raise ValueError(f"Unknown task priority: {priority}")


def normalize_status(status: Union[str, TaskStatus]) -> TaskStatus:
    key = _key(status)
    if key in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[key]
    try:
        return TaskStatus(key)
    except ValueError:
        raise ValueError(f"Unknown task status: {status}")


def is_admin(role) -> bool:
    return normalize_role(role) == Role.ADMIN


def is_manager(role) -> bool:
    return normalize_role(role) in (Role.ADMIN, Role.MANAGER)


def is_department(role) -> bool:
    return normalize_role(role) == Role.DEPARTMENT


def is_field(role) -> bool:
    return normalize_role(role) == Role.FIELD


def can_manage_users(role) -> bool:
    return is_manager(role)


def can_manage_projects(role) -> bool:
    return is_manager(role) or is_department(role)


def can_manage_tasks(role) -> bool:
    return is_manager(role) or is_department(role)


def can_view_analytics(role) -> bool:
    return is_manager(role) or is_department(role)


def role_display_name(role) -> str:
    return ROLE_DISPLAY_NAMES[normalize_role(role)]


def available_roles():
    """Roles selectable when creating users (ADMIN is never handed out through forms)"""
    return [
        {"value": role.value, "label": role_display_name(role)}
        for role in (Role.MANAGER, Role.DEPARTMENT, Role.FIELD)
    ]
