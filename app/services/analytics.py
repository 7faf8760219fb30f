# app/services/analytics.py
"""
Analytics aggregator: grouped counts, completion ratios, per-user performance
and daily trend series for the dashboards. Stateless; every call queries the database afresh.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models import (
    Department,
    Project,
    ProjectParticipation,
    Task,
    TaskPriority,
    TaskStatus,
    User,
    ACTIVE_TASK_STATUSES,
    project_departments,
)
from app.services.workload_engine import round_half_up
from app.utils.auth import AuthContext
from app.utils.roles import Role
from app.utils.scoping import filter_projects_by_department, scope_projects, scope_tasks, scope_users

logger = logging.getLogger(__name__)

DEFAULT_TREND_DAYS = 30
MAX_TREND_DAYS = 365


def completion_rate(completed: int, total: int) -> int:
    return round_half_up(completed / total * 100) if total else 0


def _enum_value(value):
    return getattr(value, "value", value)


def build_daily_trend(tasks, days: int, today: Optional[datetime] = None) -> List[Dict]:
    """
    Bucket task creations and completions per calendar day, oldest first.

    Days with no activity are included with zero counts.
    """
    today = (today or datetime.utcnow()).date()
    start = today - timedelta(days=days - 1)

    buckets = {}
    for offset in range(days):
        day = start + timedelta(days=offset)
        buckets[day] = {"date": day.isoformat(), "created": 0, "completed": 0}

    for task in tasks:
        if task.created_at is not None and task.created_at.date() in buckets:
            buckets[task.created_at.date()]["created"] += 1
        if task.completed_at is not None and task.completed_at.date() in buckets:
            buckets[task.completed_at.date()]["completed"] += 1

    return [buckets[day] for day in sorted(buckets)]


class AnalyticsAggregator:
    def __init__(self, db: Session):
        self.db = db

    def _count_by(self, column, query) -> List:
        return query.with_entities(column, func.count()).group_by(column).order_by(column).all()

    def overview(self, days: int = DEFAULT_TREND_DAYS) -> Dict:
        now = datetime.utcnow()
        db = self.db

        total_users = db.query(User).count()
        total_tasks = db.query(Task).count()
        completed_tasks = db.query(Task).filter(Task.status == TaskStatus.COMPLETED).count()

        projects = db.query(Project)
        start = (now - timedelta(days=days - 1)).replace(hour=0, minute=0, second=0, microsecond=0)
        trend_tasks = db.query(Task).filter(
            or_(Task.created_at >= start, Task.completed_at >= start)
        ).all()
        logger.debug("Building analytics overview for %s days (%s trend tasks)", days, len(trend_tasks))

        return {
            "users": {
                "total": total_users,
                "active": total_users,
                "byRole": [
                    {"role": role, "count": count}
                    for role, count in self._count_by(User.role, db.query(User))
                ],
            },
            "departments": {
                "total": db.query(Department).count(),
                "withProjects": db.query(Department).filter(Department.projects.any()).count(),
            },
            "projects": {
                "total": projects.count(),
                "active": projects.filter(Project.status == "ACTIVE").count(),
                "completed": projects.filter(Project.status == "COMPLETED").count(),
                "byStatus": [
                    {"status": status, "count": count}
                    for status, count in self._count_by(Project.status, db.query(Project))
                ],
            },
            "tasks": {
                "total": total_tasks,
                "completed": completed_tasks,
                "pending": db.query(Task).filter(Task.status.in_(ACTIVE_TASK_STATUSES)).count(),
                "overdue": db.query(Task).filter(
                    Task.status.in_(ACTIVE_TASK_STATUSES),
                    Task.end_date < now
                ).count(),
                "completionRate": completion_rate(completed_tasks, total_tasks),
                "byPriority": [
                    {"priority": _enum_value(priority), "count": count}
                    for priority, count in self._count_by(Task.priority, db.query(Task))
                ],
                "byStatus": [
                    {"status": _enum_value(status), "count": count}
                    for status, count in self._count_by(Task.status, db.query(Task))
                ],
            },
            "trend": build_daily_trend(trend_tasks, days, now),
            "days": days,
        }

    def task_stats(
        self,
        auth: AuthContext,
        project_id: Optional[int] = None,
        department_id: Optional[int] = None,
        user_id: Optional[int] = None
    ) -> Dict:
        query = self.db.query(Task)
        if project_id is not None:
            query = query.filter(Task.project_id == project_id)
        if department_id is not None:
            query = query.filter(Task.department_id == department_id)
        if user_id is not None:
            query = query.filter(Task.assignee_id == user_id)
        query = scope_tasks(query, auth)

        tasks = query.all()
        now = datetime.utcnow()

        total = len(tasks)
        pending = len([t for t in tasks if t.status == TaskStatus.PENDING])
        in_progress = len([t for t in tasks if t.status == TaskStatus.IN_PROGRESS])
        completed = len([t for t in tasks if t.status == TaskStatus.COMPLETED])
        overdue = len([
            t for t in tasks
            if t.status in ACTIVE_TASK_STATUSES and t.end_date is not None and t.end_date < now
        ])

        by_status = {}
        by_priority = {}
        for task in tasks:
            by_status[task.status.value] = by_status.get(task.status.value, 0) + 1
            by_priority[task.priority.value] = by_priority.get(task.priority.value, 0) + 1

        by_user = []
        if auth.role != Role.FIELD:
            grouped = {}
            for task in tasks:
                if task.assignee_id is not None:
                    grouped.setdefault(task.assignee_id, []).append(task)
            names = dict(
                self.db.query(User.id, User.name).filter(User.id.in_(list(grouped))).all()
            ) if grouped else {}
            for assignee_id in sorted(grouped):
                assigned = grouped[assignee_id]
                estimated = [t.estimated_hours for t in assigned if t.estimated_hours is not None]
                by_user.append({
                    "userId": assignee_id,
                    "userName": names.get(assignee_id, "Unknown"),
                    "count": len(assigned),
                    "averageHours": round(sum(estimated) / len(estimated), 2) if estimated else 0,
                    "totalHours": sum(estimated),
                })

        return {
            "summary": {
                "totalTasks": total,
                "pendingTasks": pending,
                "inProgressTasks": in_progress,
                "completedTasks": completed,
                "overdueTasks": overdue,
                "highPriorityTasks": len([t for t in tasks if t.priority == TaskPriority.HIGH]),
                "urgentTasks": len([t for t in tasks if t.priority == TaskPriority.URGENT]),
                "completionRate": completion_rate(completed, total),
                "workload": pending + in_progress + overdue,
            },
            "charts": {
                "tasksByStatus": [{"status": k, "count": v} for k, v in sorted(by_status.items())],
                "tasksByPriority": [{"priority": k, "count": v} for k, v in sorted(by_priority.items())],
                "tasksByUser": by_user,
            },
            "timestamp": now.isoformat(),
        }

    def project_stats(
        self,
        auth: AuthContext,
        department_id: Optional[int] = None,
        timeframe_days: int = DEFAULT_TREND_DAYS
    ) -> Dict:
        now = datetime.utcnow()
        query = self.db.query(Project).options(selectinload(Project.tasks))
        if department_id is not None:
            query = filter_projects_by_department(query, department_id)
        query = scope_projects(query, self.db, auth)

        projects = query.all()
        total = len(projects)
        active = [p for p in projects if p.status == "ACTIVE"]
        completed = [p for p in projects if p.status == "COMPLETED"]
        delayed = [p for p in active if p.end_date is not None and p.end_date < now]

        rates = []
        for project in projects:
            if project.tasks:
                done = len([t for t in project.tasks if t.status == TaskStatus.COMPLETED])
                rates.append(done / len(project.tasks) * 100)
            else:
                rates.append(0)
        avg_completion = round_half_up(sum(rates) / total) if total else 0

        by_status = {}
        for project in projects:
            by_status[project.status] = by_status.get(project.status, 0) + 1

        by_department = []
        if auth.role == Role.ADMIN:
            visible = {p.id for p in projects}
            for department in self.db.query(Department).order_by(Department.name).all():
                count = len([p for p in department.projects if p.id in visible])
                if count > 0:
                    by_department.append({
                        "departmentId": department.id,
                        "departmentName": department.name,
                        "count": count,
                    })

        progress = []
        for project in sorted(active, key=lambda p: p.id)[:20]:
            task_total = len(project.tasks)
            done_tasks = [t for t in project.tasks if t.status == TaskStatus.COMPLETED]
            total_hours = sum(t.estimated_hours or 0 for t in project.tasks)
            completed_hours = sum(t.estimated_hours or 0 for t in done_tasks)
            progress.append({
                "id": project.id,
                "name": project.name,
                "taskProgress": completion_rate(len(done_tasks), task_total),
                "hoursProgress": round_half_up(completed_hours / total_hours * 100) if total_hours else 0,
                "totalTasks": task_total,
                "completedTasks": len(done_tasks),
                "totalHours": total_hours,
                "completedHours": completed_hours,
            })

        since = now - timedelta(days=timeframe_days)
        recent = sorted(
            (p for p in projects if p.created_at and p.created_at >= since),
            key=lambda p: p.created_at,
            reverse=True
        )[:10]

        return {
            "summary": {
                "totalProjects": total,
                "activeProjects": len(active),
                "completedProjects": len(completed),
                "delayedProjects": len(delayed),
                "onTimeProjects": len(active) - len(delayed),
                "avgCompletionRate": avg_completion,
                "successRate": completion_rate(len(completed), total),
            },
            "charts": {
                "projectsByStatus": [{"status": k, "count": v} for k, v in sorted(by_status.items())],
                "projectsByDepartment": by_department,
                "projectProgress": progress,
            },
            "recent": [
                {
                    "id": p.id,
                    "name": p.name,
                    "status": p.status,
                    "createdAt": p.created_at.isoformat(),
                    "estimatedEndDate": p.estimated_end_date.isoformat() if p.estimated_end_date else None,
                }
                for p in recent
            ],
            "timestamp": now.isoformat(),
        }

    def user_performance(
        self,
        auth: AuthContext,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        timeframe_days: int = DEFAULT_TREND_DAYS
    ) -> Dict:
        """
        Per-user completion, punctuality and load figures with team averages.

        FIELD callers only ever get themselves, department heads their own
        department; the ``user_id`` and ``department_id`` filters narrow
        further. ``timeframe_days`` bounds the recent activity counts only.
        """
        now = datetime.utcnow()
        since = now - timedelta(days=timeframe_days)

        query = self.db.query(User).options(
            joinedload(User.department),
            selectinload(User.assigned_tasks),
            selectinload(User.project_participations).joinedload(ProjectParticipation.project),
        )
        if user_id is not None:
            query = query.filter(User.id == user_id)
        if department_id is not None:
            query = query.filter(User.department_id == department_id)
        users = scope_users(query, auth).order_by(User.name, User.id).all()

        user_stats = [self._performance_entry(user, now, since) for user in users]

        team_averages = None
        if len(user_stats) > 1:
            performances = [u["performance"] for u in user_stats]

            def average(key):
                return round_half_up(sum(p[key] for p in performances) / len(performances))

            team_averages = {
                "avgCompletionRate": average("completionRate"),
                "avgOnTimeRate": average("onTimeRate"),
                "avgWorkload": average("workload"),
                "avgActiveProjects": average("activeProjects"),
                "totalTasks": sum(p["totalTasks"] for p in performances),
                "totalCompletedTasks": sum(p["completedTasks"] for p in performances),
                "totalEstimatedHours": sum(p["totalEstimatedHours"] for p in performances),
            }

        top = sorted(user_stats, key=lambda u: u["performance"]["completionRate"], reverse=True)[:5]

        return {
            "users": user_stats,
            "teamAverages": team_averages,
            "topPerformers": [
                {
                    "id": u["id"],
                    "name": u["name"],
                    "completionRate": u["performance"]["completionRate"],
                    "completedTasks": u["performance"]["completedTasks"],
                    "onTimeRate": u["performance"]["onTimeRate"],
                }
                for u in top
            ],
            "summary": {
                "totalUsers": len(user_stats),
                "activeUsers": len([u for u in user_stats if u["performance"]["recentActivity"] > 0]),
                "highPerformers": len([u for u in user_stats if u["performance"]["completionRate"] >= 80]),
                "overloadedUsers": len([u for u in user_stats if u["performance"]["workload"] > 10]),
            },
            "timestamp": now.isoformat(),
        }

    def _performance_entry(self, user: User, now: datetime, since: datetime) -> Dict:
        tasks = list(user.assigned_tasks)
        total = len(tasks)

        def with_status(status):
            return [t for t in tasks if t.status == status]

        def with_priority(priority):
            return len([t for t in tasks if t.priority == priority])

        completed = with_status(TaskStatus.COMPLETED)
        pending = len(with_status(TaskStatus.PENDING))
        in_progress = len(with_status(TaskStatus.IN_PROGRESS))
        overdue = len([
            t for t in tasks
            if t.status in ACTIVE_TASK_STATUSES and t.end_date is not None and t.end_date < now
        ])
        recent = [
            t for t in tasks
            if (t.created_at and t.created_at >= since) or (t.updated_at and t.updated_at >= since)
        ]
        active_projects = [
            p for p in user.project_participations
            if p.project is not None and p.project.status == "ACTIVE"
        ]

        return {
            "id": user.id,
            "name": user.name,
            "email": user.email,
            "role": user.role,
            "department": {"id": user.department.id, "name": user.department.name} if user.department else None,
            "performance": {
                "totalTasks": total,
                "completedTasks": len(completed),
                "pendingTasks": pending,
                "inProgressTasks": in_progress,
                "overdueTasks": overdue,
                "highPriorityTasks": with_priority(TaskPriority.HIGH),
                "urgentTasks": with_priority(TaskPriority.URGENT),
                "completionRate": completion_rate(len(completed), total),
                "onTimeRate": completion_rate(total - overdue, total) if total else 100,
                "workload": pending + in_progress + overdue,
                "totalEstimatedHours": sum(t.estimated_hours or 0 for t in tasks),
                "completedHours": sum(t.estimated_hours or 0 for t in completed),
                "recentActivity": len(recent),
                "recentCompletions": len([t for t in recent if t.status == TaskStatus.COMPLETED]),
                "activeProjects": len(active_projects),
            },
            "taskDistribution": {
                "completed": len(completed),
                "pending": pending,
                "inProgress": in_progress,
                "overdue": overdue,
            },
            "priorityDistribution": {
                "low": with_priority(TaskPriority.LOW),
                "medium": with_priority(TaskPriority.MEDIUM),
                "high": with_priority(TaskPriority.HIGH),
                "urgent": with_priority(TaskPriority.URGENT),
            },
        }

    def department_stats(self, department: Department) -> Dict:
        """Headcount and task counts across the projects linked to one department"""
        linked = select(project_departments.c.project_id).where(
            project_departments.c.department_id == department.id
        )
        tasks = self.db.query(Task).filter(Task.project_id.in_(linked))

        active = tasks.filter(Task.status.in_(ACTIVE_TASK_STATUSES)).count()
        return {
            "teamMembers": self.db.query(User).filter(User.department_id == department.id).count(),
            "activeTasks": active,
            "completedTasks": tasks.filter(Task.status == TaskStatus.COMPLETED).count(),
            "pendingTasks": active,
            "totalProjects": filter_projects_by_department(self.db.query(Project), department.id).count(),
            "department": {
                "id": department.id,
                "name": department.name,
                "description": department.description,
            },
        }
