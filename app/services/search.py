# app/services/search.py
"""
Global search over projects, tasks, users and departments, filtered by the
caller's visibility. With ``type="all"`` every kind gets a quarter of the
limit and the hits are merged into a ``combined`` list ranked by relevance.
"""

import logging
from datetime import datetime
from typing import Dict, List

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from app.models import Department, Project, Task, User
from app.utils.auth import AuthContext
from app.utils.roles import Role
from app.utils.scoping import scope_projects, scope_tasks, scope_users

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2

# Ties on relevance are broken by kind
TYPE_PRIORITY = {"task": 4, "project": 3, "user": 2, "department": 1}


def relevance_score(item: Dict, query: str) -> int:
    needle = query.lower()
    title = (item.get("name") or item.get("title") or "").lower()
    description = (item.get("description") or "").lower()

    score = 0
    if title == needle:
        score += 100
    if needle in title:
        score += 50
    if needle in description:
        score += 25

    position = title.find(needle)
    if position == 0:
        score += 25
    elif position > 0:
        score += 10
    return score


def rank_results(items: List[Dict], query: str, limit: int) -> List[Dict]:
    scored = [dict(item, relevanceScore=relevance_score(item, query)) for item in items]
    scored.sort(key=lambda i: (-i["relevanceScore"], -TYPE_PRIORITY.get(i["type"], 0)))
    return scored[:limit]


def _iso(value):
    return value.isoformat() if value else None


class SearchService:
    def __init__(self, db: Session, auth: AuthContext):
        self.db = db
        self.auth = auth

    def _contains(self, query: str, *columns):
        pattern = f"%{query}%"
        return or_(*[column.ilike(pattern) for column in columns])

    def projects(self, query: str, limit: int) -> List[Dict]:
        rows = self.db.query(Project).options(
            joinedload(Project.creator),
            selectinload(Project.departments),
            selectinload(Project.tasks),
            selectinload(Project.participants),
        ).filter(self._contains(query, Project.name, Project.description))
        rows = scope_projects(rows, self.db, self.auth).order_by(
            Project.updated_at.desc(), Project.id.desc()
        ).limit(limit).all()

        return [
            {
                "id": p.id,
                "name": p.name,
                "description": p.description,
                "status": p.status,
                "estimatedStartDate": _iso(p.estimated_start_date),
                "estimatedEndDate": _iso(p.estimated_end_date),
                "creator": p.creator.name if p.creator else None,
                "departments": ", ".join(d.name for d in p.departments),
                "tasksCount": len(p.tasks),
                "participantsCount": len(p.participants),
                "type": "project",
            }
            for p in rows
        ]

    def tasks(self, query: str, limit: int) -> List[Dict]:
        rows = self.db.query(Task).options(
            joinedload(Task.assignee),
            joinedload(Task.project),
            joinedload(Task.department),
            joinedload(Task.creator),
        ).filter(self._contains(query, Task.title, Task.description))
        rows = scope_tasks(rows, self.auth).order_by(
            Task.updated_at.desc(), Task.id.desc()
        ).limit(limit).all()

        return [
            {
                "id": t.id,
                "title": t.title,
                "description": t.description,
                "status": t.status.value,
                "priority": t.priority.value,
                "startDate": _iso(t.start_date),
                "endDate": _iso(t.end_date),
                "estimatedHours": t.estimated_hours,
                "assignee": t.assignee.name if t.assignee else "Unassigned",
                "project": t.project.name if t.project else "No Project",
                "department": t.department.name if t.department else None,
                "creator": t.creator.name if t.creator else None,
                "type": "task",
            }
            for t in rows
        ]

    def users(self, query: str, limit: int) -> List[Dict]:
        rows = self.db.query(User).options(
            joinedload(User.department),
            selectinload(User.assigned_tasks),
            selectinload(User.project_participations),
        ).filter(self._contains(query, User.name, User.email))
        rows = scope_users(rows, self.auth).order_by(User.name, User.id).limit(limit).all()

        return [
            {
                "id": u.id,
                "name": u.name,
                "email": u.email,
                "role": u.role,
                "capacity": u.capacity,
                "department": u.department.name if u.department else "No Department",
                "tasksCount": len(u.assigned_tasks),
                "projectsCount": len(u.project_participations),
                "type": "user",
            }
            for u in rows
        ]

    def departments(self, query: str, limit: int) -> List[Dict]:
        rows = self.db.query(Department).options(
            selectinload(Department.users),
            selectinload(Department.projects),
            selectinload(Department.tasks),
        ).filter(
            self._contains(query, Department.name, Department.description)
        ).order_by(Department.name).limit(limit).all()

        return [
            {
                "id": d.id,
                "name": d.name,
                "description": d.description,
                "usersCount": len(d.users),
                "projectsCount": len(d.projects),
                "tasksCount": len(d.tasks),
                "type": "department",
            }
            for d in rows
        ]

    def search(self, query: str, search_type: str = "all", limit: int = 50) -> Dict:
        """
        Run the search. Users are never searchable by FIELD callers and
        departments only by administrators.
        """
        query = query.strip()
        per_kind = limit if search_type != "all" else max(1, limit // 4)

        def wanted(kind):
            return search_type in ("all", kind)

        results = {
            "query": query,
            "projects": self.projects(query, per_kind) if wanted("projects") else [],
            "tasks": self.tasks(query, per_kind) if wanted("tasks") else [],
            "users": (
                self.users(query, per_kind)
                if wanted("users") and self.auth.role != Role.FIELD else []
            ),
            "departments": (
                self.departments(query, per_kind)
                if wanted("departments") and self.auth.role == Role.ADMIN else []
            ),
        }
        results["total"] = sum(
            len(results[kind]) for kind in ("projects", "tasks", "users", "departments")
        )
        if search_type == "all":
            results["combined"] = rank_results(
                results["projects"] + results["tasks"] + results["users"] + results["departments"],
                query,
                limit,
            )

        logger.debug("Search '%s' (%s) by user %s: %s hits", query, search_type, self.auth.user_id, results["total"])
        results["timestamp"] = datetime.utcnow().isoformat()
        return results
