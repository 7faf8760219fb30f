# app/routers/activity.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload, selectinload

from app.database import get_db
from app.models import Notification, Project, Task
from app.utils.auth import AuthContext, get_auth_context
from app.utils.scoping import scope_projects, scope_tasks

router = APIRouter(prefix="/activity", tags=["activity"])


def _person(user):
    return {"name": user.name, "email": user.email} if user else None


def _task_activity(task: Task):
    return {
        "id": task.id,
        "type": "task",
        "action": "updated",
        "title": f'Task "{task.title}" was updated',
        "description": f"Status: {task.status.value}, Priority: {task.priority.value}",
        "user": _person(task.creator),
        "assignee": _person(task.assignee),
        "project": task.project.name if task.project else None,
        "department": task.department.name if task.department else None,
        "timestamp": task.updated_at or task.created_at,
        "relatedId": task.id,
        "relatedType": "TASK",
    }


def _project_activity(project: Project):
    return {
        "id": project.id,
        "type": "project",
        "action": "updated",
        "title": f'Project "{project.name}" was updated',
        "description": f"{len(project.tasks)} tasks, {len(project.participants)} participants",
        "user": _person(project.creator),
        "departments": [d.name for d in project.departments],
        "timestamp": project.updated_at or project.created_at,
        "relatedId": project.id,
        "relatedType": "PROJECT",
    }


def _notification_activity(notification: Notification):
    return {
        "id": notification.id,
        "type": "notification",
        "action": "received",
        "title": notification.title,
        "description": notification.message,
        "timestamp": notification.created_at,
        "relatedId": notification.related_entity_id,
        "relatedType": notification.related_entity_type.upper() if notification.related_entity_type else None,
        "isRead": notification.is_read,
    }


@router.get("")
def get_activity_feed(
    limit: int = Query(50, ge=1, le=300),
    project_id: Optional[int] = Query(None, alias="projectId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Recently touched tasks and projects plus the caller's own notifications,
    newest first. Each source contributes at most a third of ``limit``.
    """
    per_source = max(1, limit // 3)

    tasks = db.query(Task).options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.project),
        joinedload(Task.department),
    )
    if project_id is not None:
        tasks = tasks.filter(Task.project_id == project_id)
    if department_id is not None:
        tasks = tasks.filter(Task.department_id == department_id)
    tasks = scope_tasks(tasks, auth).order_by(Task.updated_at.desc(), Task.id.desc()).limit(per_source).all()

    projects = db.query(Project).options(
        joinedload(Project.creator),
        selectinload(Project.departments),
        selectinload(Project.tasks),
        selectinload(Project.participants),
    )
    projects = scope_projects(projects, db, auth).order_by(
        Project.updated_at.desc(), Project.id.desc()
    ).limit(per_source).all()

    notifications = db.query(Notification).filter(
        Notification.user_id == auth.user_id
    ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(per_source).all()

    activities = (
        [_task_activity(t) for t in tasks]
        + [_project_activity(p) for p in projects]
        + [_notification_activity(n) for n in notifications]
    )
    activities.sort(key=lambda a: a["timestamp"], reverse=True)

    for activity in activities:
        activity["timestamp"] = activity["timestamp"].isoformat()

    return {"activities": activities[:limit], "total": len(activities)}
