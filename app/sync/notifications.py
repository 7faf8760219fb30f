# app/sync/notifications.py
"""
Turns consecutive dashboard snapshots into change events and toast payloads.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SIGNIFICANT_PROJECT_FIELDS = ("status", "assigneeId", "priority", "estimatedEndDate")

TOAST_TYPES = {
    "created": "success",
    "updated": "info",
    "assigned": "info",
    "deleted": "error",
}

EVENT_LABELS = {
    "project": {
        "created": "Project created",
        "updated": "Project updated",
        "deleted": "Project deleted",
        "assigned": "Project assigned",
    },
    "task": {
        "created": "Task created",
        "updated": "Task updated",
        "deleted": "Task deleted",
        "assigned": "Task assigned to you",
    },
}

TOAST_DURATION_MS = 4000


@dataclass
class SyncEvent:
    type: str  # 'project' or 'task'
    action: str  # 'created', 'updated', 'deleted', 'assigned'
    title: str
    id: Any
    user_id: Optional[int] = None
    department_id: Optional[int] = None


def _by_id(items) -> Dict[Any, Dict]:
    return {item.get("id"): item for item in items or []}


def is_project_relevant(project: Dict, user_id: Optional[int], department_id: Optional[int]) -> bool:
    if project.get("departments"):
        return any(dept.get("id") == department_id for dept in project["departments"])
    if project.get("departmentId") is not None:
        return project["departmentId"] == department_id
    if project.get("createdBy") is not None:
        return project["createdBy"] == user_id
    return True


def is_task_relevant(task: Dict, user_id: Optional[int], department_id: Optional[int]) -> bool:
    if task.get("assigneeId") is not None and task.get("assigneeId") == user_id:
        return True
    return task.get("departmentId") is not None and task.get("departmentId") == department_id


def has_significant_change(current: Dict, previous: Dict) -> bool:
    return any(current.get(field) != previous.get(field) for field in SIGNIFICANT_PROJECT_FIELDS)


def diff_snapshots(
    previous: Optional[Dict],
    current: Optional[Dict],
    user_id: Optional[int] = None,
    department_id: Optional[int] = None
) -> List[SyncEvent]:
    """
    Compare two snapshots by entity id.

    Reports created and significantly updated projects, created tasks, tasks
    newly assigned to ``user_id`` and task status changes, each filtered by
    relevance to the user. The first snapshot has nothing to compare against
    and yields no events.
    """
    if not previous or not current:
        return []

    events = []

    def emit(kind, action, item, title_key):
        events.append(SyncEvent(
            type=kind,
            action=action,
            title=item.get(title_key) or "",
            id=item.get("id"),
            user_id=user_id,
            department_id=department_id,
        ))

    if current.get("projects") is not None and previous.get("projects") is not None:
        before = _by_id(previous["projects"])
        for project in current["projects"]:
            old = before.get(project.get("id"))
            if not is_project_relevant(project, user_id, department_id):
                continue
            if old is None:
                emit("project", "created", project, "name")
            elif has_significant_change(project, old):
                emit("project", "updated", project, "name")

    if current.get("tasks") is not None and previous.get("tasks") is not None:
        before = _by_id(previous["tasks"])
        for task in current["tasks"]:
            old = before.get(task.get("id"))
            if old is None:
                if is_task_relevant(task, user_id, department_id):
                    emit("task", "created", task, "title")
                continue
            if task.get("assigneeId") != old.get("assigneeId") and task.get("assigneeId") == user_id:
                emit("task", "assigned", task, "title")
            if task.get("status") != old.get("status") and is_task_relevant(task, user_id, department_id):
                emit("task", "updated", task, "title")

    return events


def build_toast(event: SyncEvent) -> Dict:
    label = EVENT_LABELS.get(event.type, {}).get(event.action, "Update")
    return {
        "type": "toast",
        "toast_type": TOAST_TYPES.get(event.action, "info"),
        "message": f"{label}: {event.title}",
        "duration": TOAST_DURATION_MS,
        "event": asdict(event),
    }


class SyncNotifier:
    """
    Keeps the last snapshot and reports each change exactly once.

    Plug ``handle`` into ``RealTimeSync.subscribe``; every detected event is
    turned into a toast payload and passed to ``on_notification``.
    """

    def __init__(
        self,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        on_notification: Optional[Callable[[Dict], None]] = None
    ):
        self.user_id = user_id
        self.department_id = department_id
        self.on_notification = on_notification
        self.previous: Optional[Dict] = None

    def handle(self, snapshot: Dict) -> List[Dict]:
        events = diff_snapshots(self.previous, snapshot, self.user_id, self.department_id)
        self.previous = snapshot

        toasts = [build_toast(event) for event in events]
        for toast in toasts:
            logger.debug("Sync notification: %s", toast["message"])
            if self.on_notification is not None:
                self.on_notification(toast)
        return toasts
