# app/utils/scoping.py
"""
Row-level visibility rules shared by the listing, statistics and dashboard
queries. FIELD users see their own work, DEPARTMENT heads see their
department, ADMIN and MANAGER see everything. A department head without a
department sees nothing.
"""

from sqlalchemy import false, select
from sqlalchemy.orm import Query, Session

from app.models import Project, ProjectParticipation, Task, User, project_departments
from app.utils.auth import AuthContext
from app.utils.roles import Role


def participated_project_ids(db: Session, user_id: int):
    return [
        row.project_id for row in
        db.query(ProjectParticipation.project_id).filter(ProjectParticipation.user_id == user_id).all()
    ]


def scope_tasks(query: Query, auth: AuthContext) -> Query:
    if auth.role == Role.FIELD:
        return query.filter(Task.assignee_id == auth.user_id)
    if auth.role == Role.DEPARTMENT:
        if auth.department_id is None:
            return query.filter(false())
        return query.filter(Task.department_id == auth.department_id)
    return query


def scope_projects(query: Query, db: Session, auth: AuthContext) -> Query:
    if auth.role == Role.FIELD:
        return query.filter(Project.id.in_(participated_project_ids(db, auth.user_id)))
    if auth.role == Role.DEPARTMENT:
        if auth.department_id is None:
            return query.filter(false())
        return filter_projects_by_department(query, auth.department_id)
    return query


def filter_projects_by_department(query: Query, department_id: int) -> Query:
    return query.filter(Project.id.in_(
        select(project_departments.c.project_id).where(
            project_departments.c.department_id == department_id
        )
    ))


def scope_users(query: Query, auth: AuthContext) -> Query:
    if auth.role == Role.FIELD:
        return query.filter(User.id == auth.user_id)
    if auth.role == Role.DEPARTMENT:
        if auth.department_id is None:
            return query.filter(false())
        return query.filter(User.department_id == auth.department_id)
    return query
