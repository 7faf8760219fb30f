# app/services/dashboard_snapshot.py
import hashlib
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models import (
    Department,
    Notification,
    Project,
    Task,
    TaskPriority,
    TaskStatus,
    User,
    ACTIVE_TASK_STATUSES,
)
from app.services.analytics import completion_rate
from app.services.workload_engine import sum_hours
from app.utils.auth import AuthContext
from app.utils.roles import Role
from app.utils.scoping import scope_projects, scope_tasks, scope_users

logger = logging.getLogger(__name__)

HEAVY_WORKLOAD_HOURS = 40
VOLATILE_KEYS = ("timestamp", "lastUpdated")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def compute_etag(payload: Dict) -> str:
    """Strong ETag over the payload, ignoring the per-request timestamps"""
    stable = {key: value for key, value in payload.items() if key not in VOLATILE_KEYS}
    encoded = json.dumps(stable, sort_keys=True, default=str).encode("utf-8")
    return '"%s"' % hashlib.sha256(encoded).hexdigest()


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [value.strip() for value in if_none_match.split(",")]
    return "*" in candidates or etag in candidates or f"W/{etag}" in candidates


def serialize_project(project: Project) -> Dict:
    return {
        "id": project.id,
        "name": project.name,
        "status": project.status,
        "estimatedEndDate": _iso(project.estimated_end_date),
        "createdBy": project.created_by,
        "departments": [{"id": d.id, "name": d.name} for d in project.departments],
        "taskCount": len(project.tasks),
        "updatedAt": _iso(project.updated_at),
    }


def serialize_task(task: Task) -> Dict:
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status.value,
        "priority": task.priority.value,
        "assigneeId": task.assignee_id,
        "departmentId": task.department_id,
        "projectId": task.project_id,
        "estimatedHours": task.estimated_hours,
        "endDate": _iso(task.end_date),
        "updatedAt": _iso(task.updated_at),
        "project": {"id": task.project.id, "name": task.project.name} if task.project else None,
        "assignee": {"id": task.assignee.id, "name": task.assignee.name} if task.assignee else None,
        "phaseCount": len(task.phases),
    }


class DashboardSnapshotBuilder:
    """Unified, role-scoped dashboard payload polled by the sync client"""

    def __init__(self, db: Session, auth: AuthContext):
        self.db = db
        self.auth = auth

    def _tasks(self):
        return scope_tasks(self.db.query(Task), self.auth)

    def _projects(self):
        return scope_projects(self.db.query(Project), self.db, self.auth)

    def _users(self):
        return scope_users(self.db.query(User), self.auth)

    def _department_workload(self):
        if self.auth.role == Role.FIELD:
            return []
        query = self.db.query(Department).options(
            selectinload(Department.users).selectinload(User.assigned_tasks)
        )
        if self.auth.role == Role.DEPARTMENT:
            query = query.filter(Department.id == self.auth.department_id)

        workload = []
        for department in query.order_by(Department.name).all():
            active_per_user = [
                [t for t in user.assigned_tasks if t.status in ACTIVE_TASK_STATUSES]
                for user in department.users
            ]
            workload.append({
                "id": department.id,
                "name": department.name,
                "activeUsers": len([tasks for tasks in active_per_user if tasks]),
                "totalUsers": len(department.users),
                "workloadHours": sum(sum_hours(tasks) for tasks in active_per_user),
            })
        return workload

    def _top_users(self):
        if self.auth.role == Role.FIELD:
            return []
        users = self._users().options(selectinload(User.assigned_tasks)).order_by(User.id).all()

        ranked = []
        for user in users:
            active = [t for t in user.assigned_tasks if t.status in ACTIVE_TASK_STATUSES]
            if not user.assigned_tasks:
                continue
            ranked.append({
                "id": user.id,
                "name": user.name,
                "activeTasks": len(active),
                "workloadHours": sum_hours(active),
                "urgentTasks": len([t for t in active if t.priority == TaskPriority.URGENT]),
                "highPriorityTasks": len([t for t in active if t.priority == TaskPriority.HIGH]),
            })
        ranked.sort(key=lambda item: item["workloadHours"], reverse=True)
        return ranked[:5]

    def build(self) -> Dict:
        now = datetime.utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        tomorrow = today + timedelta(days=1)
        week_ago = today - timedelta(days=7)

        tasks = self._tasks()
        projects = self._projects()
        users = self._users()

        total_projects = projects.count()
        active_projects = projects.filter(Project.status == "ACTIVE").count()
        completed_projects = projects.filter(Project.status == "COMPLETED").count()
        urgent_projects = projects.filter(
            Project.status == "ACTIVE",
            Project.tasks.any(Task.priority == TaskPriority.URGENT)
        ).count()

        total_tasks = tasks.count()
        pending_tasks = tasks.filter(Task.status == TaskStatus.PENDING).count()
        in_progress_tasks = tasks.filter(Task.status == TaskStatus.IN_PROGRESS).count()
        completed_tasks = tasks.filter(Task.status == TaskStatus.COMPLETED).count()
        overdue_tasks = tasks.filter(
            Task.status.in_(ACTIVE_TASK_STATUSES),
            Task.end_date < now
        ).count()
        todays_tasks = tasks.filter(or_(
            (Task.start_date >= today) & (Task.start_date < tomorrow),
            (Task.end_date >= today) & (Task.end_date < tomorrow),
        )).count()

        total_users = users.count()
        active_users = users.filter(
            User.assigned_tasks.any(Task.status.in_(ACTIVE_TASK_STATUSES))
        ).count()

        top_users = self._top_users()

        recent_tasks = tasks.options(
            joinedload(Task.assignee), joinedload(Task.project)
        ).filter(Task.updated_at >= week_ago).order_by(Task.updated_at.desc(), Task.id.desc()).limit(10).all()
        recent_projects = projects.options(
            joinedload(Project.creator)
        ).filter(Project.created_at >= week_ago).order_by(Project.created_at.desc(), Project.id.desc()).limit(5).all()
        recent_notifications = self.db.query(Notification).filter(
            Notification.user_id == self.auth.user_id,
            Notification.created_at >= week_ago
        ).order_by(Notification.created_at.desc(), Notification.id.desc()).limit(5).all()

        detailed_projects = projects.options(
            selectinload(Project.departments), selectinload(Project.tasks)
        ).order_by(Project.updated_at.desc(), Project.id.desc()).limit(50).all()
        detailed_tasks = tasks.options(
            joinedload(Task.assignee), joinedload(Task.project), selectinload(Task.phases)
        ).order_by(Task.updated_at.desc(), Task.id.desc()).limit(100).all()

        payload = {
            "summary": {
                "projects": {
                    "total": total_projects,
                    "active": active_projects,
                    "completed": completed_projects,
                    "completionRate": completion_rate(completed_projects, total_projects),
                },
                "tasks": {
                    "total": total_tasks,
                    "pending": pending_tasks,
                    "inProgress": in_progress_tasks,
                    "completed": completed_tasks,
                    "overdue": overdue_tasks,
                    "today": todays_tasks,
                    "completionRate": completion_rate(completed_tasks, total_tasks),
                },
                "team": {
                    "total": total_users,
                    "active": active_users,
                    "utilization": completion_rate(active_users, total_users),
                },
            },
            "critical": {
                "overdueTasks": overdue_tasks,
                "urgentProjects": urgent_projects,
                "heavilyLoadedUsers": len([u for u in top_users if u["workloadHours"] > HEAVY_WORKLOAD_HOURS]),
                "unassignedTasks": tasks.filter(Task.assignee_id.is_(None)).count(),
            },
            "workload": {
                "departments": self._department_workload(),
                "topUsers": top_users,
            },
            "recent": {
                "tasks": [
                    {
                        "id": t.id,
                        "title": t.title,
                        "status": t.status.value,
                        "priority": t.priority.value,
                        "updatedAt": _iso(t.updated_at),
                        "assignee": t.assignee.name if t.assignee else None,
                        "project": t.project.name if t.project else None,
                    }
                    for t in recent_tasks
                ],
                "projects": [
                    {
                        "id": p.id,
                        "name": p.name,
                        "status": p.status,
                        "createdAt": _iso(p.created_at),
                        "creator": p.creator.name if p.creator else None,
                    }
                    for p in recent_projects
                ],
                "notifications": [
                    {
                        "id": n.id,
                        "title": n.title,
                        "message": n.message,
                        "type": n.notification_type.value,
                        "isRead": n.is_read,
                        "createdAt": _iso(n.created_at),
                    }
                    for n in recent_notifications
                ],
            },
            "projects": [serialize_project(p) for p in detailed_projects],
            "tasks": [serialize_task(t) for t in detailed_tasks],
            "stats": {
                "totalProjects": total_projects,
                "activeProjects": active_projects,
                "completedProjects": completed_projects,
                "totalTasks": total_tasks,
                "pendingTasks": pending_tasks,
                "inProgressTasks": in_progress_tasks,
                "completedTasks": completed_tasks,
                "overdueTasks": overdue_tasks,
                "totalUsers": total_users,
                "activeUsers": active_users,
            },
            "lastUpdated": now.isoformat(),
            "timestamp": now.isoformat(),
        }

        logger.debug("Built dashboard snapshot for user %s (%s tasks)", self.auth.user_id, total_tasks)
        return payload
