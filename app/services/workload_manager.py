# app/services/workload_manager.py
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models import (
    Department,
    NotificationType,
    ProjectParticipation,
    Task,
    TaskStatus,
    User,
    ACTIVE_TASK_STATUSES,
)
from app.services.workload_engine import (
    RebalanceCandidate,
    RebalanceResult,
    UserWorkload,
    build_candidate,
    build_schedule,
    collaboration_member,
    compute_alerts,
    compute_workload_stats,
    department_capacity,
    filter_alerts,
    is_active,
    plan_rebalance,
    rank_available_members,
    select_reassignable_tasks,
    sum_hours,
    summarize_alerts,
    summarize_collaboration,
    summarize_schedules,
    summarize_team,
)
from app.utils.auth import AuthContext
from app.utils.notifications import create_task_notification
from app.utils.roles import Role
from app.utils.scoping import participated_project_ids, scope_users

logger = logging.getLogger(__name__)


class WorkloadManager:
    """Loads users and tasks for the workload engine and persists rebalancing moves"""

    def __init__(self, db: Session):
        self.db = db

    def _scoped_users(
        self,
        auth: AuthContext,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        include_projects: bool = False
    ) -> List[User]:
        query = self.db.query(User).options(
            joinedload(User.department),
            selectinload(User.assigned_tasks).joinedload(Task.project),
        )
        if include_projects:
            query = query.options(
                selectinload(User.project_participations).joinedload(ProjectParticipation.project)
            )

        if user_id is not None:
            query = query.filter(User.id == user_id)
        if department_id is not None:
            query = query.filter(User.department_id == department_id)

        # Role scoping overrides any requested filter
        query = scope_users(query, auth)

        return query.order_by(User.name, User.id).all()

    def _analyze(self, users: List[User], include_projects: bool = False) -> List[UserWorkload]:
        now = datetime.utcnow()
        return [
            UserWorkload(
                user=user,
                tasks=list(user.assigned_tasks),
                now=now,
                participations=list(user.project_participations) if include_projects else None,
            )
            for user in users
        ]

    def get_user_workloads(
        self,
        auth: AuthContext,
        user_id: Optional[int] = None,
        department_id: Optional[int] = None,
        include_projects: bool = False
    ) -> Dict:
        users = self._scoped_users(auth, user_id, department_id, include_projects)
        entries = self._analyze(users, include_projects)

        response = {"users": [entry.to_dict() for entry in entries]}
        if len(entries) > 1:
            response["teamSummary"] = summarize_team([entry.snapshot for entry in entries])
        return response

    def get_alerts(
        self,
        auth: AuthContext,
        department_id: Optional[int] = None,
        severity: Optional[str] = None
    ) -> Dict:
        users = self._scoped_users(auth, department_id=department_id)
        entries = self._analyze(users)

        alerts = filter_alerts(compute_alerts(entries), severity)
        return {
            "alerts": alerts,
            "summary": summarize_alerts(alerts),
        }

    def _candidates(self) -> List[RebalanceCandidate]:
        users = self.db.query(User).options(
            selectinload(User.assigned_tasks)
        ).order_by(User.name, User.id).all()

        return [
            build_candidate(user, [t for t in user.assigned_tasks if t.status in ACTIVE_TASK_STATUSES])
            for user in users
        ]

    def _reassignable_tasks(self, candidate: RebalanceCandidate) -> List[Task]:
        tasks = self.db.query(Task).filter(
            Task.assignee_id == candidate.user_id,
            Task.status == TaskStatus.PENDING
        ).order_by(Task.id).all()
        return select_reassignable_tasks(tasks)

    def _reassign(self, task: Task, source: RebalanceCandidate, target: RebalanceCandidate) -> None:
        try:
            task.assignee_id = target.user_id
            create_task_notification(
                db=self.db,
                user_id=target.user_id,
                task_title=task.title,
                notification_type=NotificationType.TASK_ASSIGNED,
                task_id=task.id,
                additional_info="Reassigned by workload rebalancing",
                commit=False
            )
            self.db.commit()
        except SQLAlchemyError:
            logger.exception("Failed to reassign task %s from user %s", task.id, source.user_id)
            self.db.rollback()
            raise

        logger.info(
            "Rebalanced task %s (%sh) from %s to %s",
            task.id, task.estimated_hours or 0, source.name, target.name
        )

    def rebalance(self) -> RebalanceResult:
        result = plan_rebalance(
            self._candidates(),
            tasks_for=self._reassignable_tasks,
            apply=self._reassign,
        )
        logger.info(
            "Rebalance finished: %s (overloaded=%s, available=%s, moved=%s)",
            result.message, result.overloaded_users, result.available_users, result.tasks_rebalanced
        )
        return result

    def get_stats(self) -> Dict:
        stats = compute_workload_stats(self._candidates())
        stats["timestamp"] = datetime.utcnow().isoformat()
        return stats

    def get_department_team(self, department_id: int) -> List[Dict]:
        """Members of one department with their utilization snapshot, by name"""
        users = self.db.query(User).options(
            joinedload(User.department),
            selectinload(User.assigned_tasks),
        ).filter(User.department_id == department_id).order_by(User.name, User.id).all()

        members = []
        for entry in self._analyze(users):
            member = entry.user_info()
            member["department"] = entry.user.department.name if entry.user.department else "Unknown"
            member["isActive"] = True
            member["workload"] = dict(entry.snapshot)
            members.append(member)
        return members

    def get_schedules(self) -> Dict:
        users = self.db.query(User).options(
            selectinload(User.assigned_tasks).joinedload(Task.project)
        ).order_by(User.name, User.id).all()

        schedules = []
        for user in users:
            active = sorted(
                (t for t in user.assigned_tasks if is_active(t)),
                key=lambda t: (t.created_at, t.id)
            )
            schedules.append(build_schedule(user, active))

        # Heaviest load first
        schedules.sort(key=lambda s: s["workloadPercentage"], reverse=True)
        return {"schedules": schedules, "summary": summarize_schedules(schedules)}

    def get_team_collaboration(
        self,
        auth: AuthContext,
        project_id: Optional[int] = None,
        department_id: Optional[int] = None
    ) -> Dict:
        query = self.db.query(User).options(
            joinedload(User.department),
            selectinload(User.assigned_tasks).joinedload(Task.project),
            selectinload(User.project_participations).joinedload(ProjectParticipation.project),
        )
        if project_id is not None:
            query = query.filter(User.project_participations.any(ProjectParticipation.project_id == project_id))
        if department_id is not None:
            query = query.filter(User.department_id == department_id)

        # Field workers see themselves and the people they share projects with
        if auth.role == Role.FIELD:
            shared = participated_project_ids(self.db, auth.user_id)
            query = query.filter(or_(
                User.id == auth.user_id,
                User.project_participations.any(ProjectParticipation.project_id.in_(shared))
            ))
        else:
            query = scope_users(query, auth)

        users = query.order_by(User.name, User.id).all()
        members = [collaboration_member(entry) for entry in self._analyze(users, include_projects=True)]

        departments = []
        if auth.role == Role.ADMIN:
            for department in self.db.query(Department).options(
                selectinload(Department.users).selectinload(User.assigned_tasks)
            ).order_by(Department.name).all():
                hours = {
                    user.id: sum_hours(t for t in user.assigned_tasks if is_active(t))
                    for user in department.users
                }
                departments.append(department_capacity(department, hours))

        return {
            "teamMembers": members,
            "summary": summarize_collaboration(members),
            "availableForAssignment": rank_available_members(members),
            "departments": departments,
            "filters": {"projectId": project_id, "departmentId": department_id},
            "timestamp": datetime.utcnow().isoformat(),
        }
