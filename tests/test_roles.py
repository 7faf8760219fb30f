import pytest

from app.models import TaskPriority, TaskStatus
from app.utils.roles import (
    Role,
    available_roles,
    can_manage_users,
    can_view_analytics,
    normalize_priority,
    normalize_role,
    normalize_status,
    role_display_name,
)


@pytest.mark.parametrize("raw, expected", [
    ("ADMIN", Role.ADMIN),
    ("manager", Role.MANAGER),
    ("DEPARTMENT_HEAD", Role.DEPARTMENT),
    ("FIELD_WORKER", Role.FIELD),
    (" department ", Role.DEPARTMENT),
    ("something-else", Role.FIELD),
    (None, Role.FIELD),
])
def test_normalize_role(raw, expected):
    assert normalize_role(raw) == expected


def test_legacy_priority_and_status_aliases():
    assert normalize_priority("CRITICAL") == TaskPriority.URGENT
    assert normalize_priority("high") == TaskPriority.HIGH
    assert normalize_status("TODO") == TaskStatus.PENDING
    assert normalize_status("DONE") == TaskStatus.COMPLETED
    assert normalize_status("in_progress") == TaskStatus.IN_PROGRESS


def test_unknown_priority_raises():
    with pytest.raises(ValueError):
        normalize_priority("WHENEVER")


def test_permission_helpers_accept_legacy_spellings():
    assert can_manage_users("ADMIN")
    assert not can_manage_users("DEPARTMENT_HEAD")
    assert can_view_analytics("DEPARTMENT_HEAD")
    assert not can_view_analytics("FIELD_WORKER")


def test_available_roles_excludes_admin():
    values = [r["value"] for r in available_roles()]
    assert "ADMIN" not in values
    assert role_display_name("DEPARTMENT_HEAD") == "Department Head"
