# app/routers/project.py
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload, selectinload

from app.database import get_db
from app.models import Department, Project, ProjectParticipation, Task, User, PhaseStatus
from app.schemas.project import ParticipantAdd, ParticipantOut, ProjectCreate, ProjectDetail, ProjectOut, ProjectUpdate
from app.schemas.task import TaskOut
from app.services.analytics import AnalyticsAggregator, DEFAULT_TREND_DAYS
from app.utils.auth import AuthContext, get_auth_context, require_roles
from app.utils.exceptions import NotFoundError, ValidationError
from app.utils.notifications import create_project_notification
from app.utils.roles import Role
from app.utils.scoping import scope_projects

router = APIRouter()
logger = logging.getLogger(__name__)

manage_projects = require_roles(
    Role.ADMIN, Role.MANAGER, Role.DEPARTMENT,
    detail="Only administrators, managers and department heads can manage projects"
)


def _project_query(db: Session):
    return db.query(Project).options(
        joinedload(Project.creator),
        selectinload(Project.departments),
        selectinload(Project.participants).joinedload(ProjectParticipation.user)
    )


def _get_visible_project(db: Session, project_id: int, auth: AuthContext) -> Project:
    project = scope_projects(_project_query(db), db, auth).filter(Project.id == project_id).first()
    if not project:
        raise NotFoundError("Project not found")
    return project


def _load_departments(db: Session, department_ids: List[int]) -> List[Department]:
    if not department_ids:
        return []
    departments = db.query(Department).filter(Department.id.in_(department_ids)).all()
    if len(departments) != len(set(department_ids)):
        raise ValidationError("One or more departments not found")
    return departments


def _task_progress(task: Task) -> dict:
    total = len(task.phases)
    completed = len([p for p in task.phases if p.status == PhaseStatus.COMPLETED])
    return {
        "id": task.id,
        "title": task.title,
        "status": task.status.value,
        "total_phases": total,
        "completed_phases": completed,
        "completion": round(completed / total, 4) if total else 0,
    }


@router.get("/", response_model=List[ProjectOut])
def get_projects(
    status_filter: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Projects visible to the caller, newest first"""
    query = scope_projects(_project_query(db), db, auth)
    if status_filter:
        query = query.filter(Project.status == status_filter.upper())
    return query.order_by(Project.created_at.desc(), Project.id.desc()).all()


@router.post("/", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
def create_project(
    project: ProjectCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_projects)
):
    department_ids = list(project.department_ids)
    # Department heads always attach their own department
    if auth.role == Role.DEPARTMENT and auth.department_id is not None and auth.department_id not in department_ids:
        department_ids.append(auth.department_id)

    db_project = Project(
        name=project.name,
        description=project.description,
        status=project.status,
        estimated_start_date=project.estimated_start_date,
        estimated_end_date=project.estimated_end_date,
        created_by=auth.user_id,
    )
    db_project.departments = _load_departments(db, department_ids)
    db_project.participants.append(ProjectParticipation(user_id=auth.user_id, role="MANAGER"))

    participant_ids = [uid for uid in dict.fromkeys(project.participant_ids) if uid != auth.user_id]
    if participant_ids:
        found = db.query(User.id).filter(User.id.in_(participant_ids)).count()
        if found != len(participant_ids):
            raise ValidationError("One or more participants not found")
    for user_id in participant_ids:
        db_project.participants.append(ProjectParticipation(user_id=user_id, role="PARTICIPANT"))

    db.add(db_project)
    db.flush()
    for user_id in participant_ids:
        create_project_notification(db, user_id, db_project.name, db_project.id, commit=False)
    db.commit()

    logger.info("Project %s created by user %s", db_project.id, auth.user_id)
    return _project_query(db).filter(Project.id == db_project.id).first()


@router.get("/stats")
def get_project_stats(
    department_id: Optional[int] = Query(None, alias="departmentId"),
    timeframe: int = Query(DEFAULT_TREND_DAYS, ge=1, le=365),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return AnalyticsAggregator(db).project_stats(auth, department_id=department_id, timeframe_days=timeframe)


@router.get("/{project_id}", response_model=ProjectDetail)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Project detail including per-task phase completion"""
    project = _get_visible_project(db, project_id, auth)
    tasks = db.query(Task).options(selectinload(Task.phases)).filter(
        Task.project_id == project_id
    ).order_by(Task.id).all()

    detail = ProjectDetail.model_validate(project)
    detail.task_progress = [_task_progress(task) for task in tasks]
    return detail


@router.put("/{project_id}", response_model=ProjectOut)
def update_project(
    project_id: int,
    project_update: ProjectUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_projects)
):
    db_project = _get_visible_project(db, project_id, auth)
    update_data = project_update.model_dump(exclude_unset=True)

    if "department_ids" in update_data:
        db_project.departments = _load_departments(db, update_data.pop("department_ids") or [])
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise ValidationError("Project name is required")
    if update_data.get("status") is None:
        update_data.pop("status", None)

    for field, value in update_data.items():
        setattr(db_project, field, value)

    if db_project.status == "COMPLETED" and db_project.end_date is None:
        db_project.end_date = datetime.utcnow()

    db.commit()
    return _project_query(db).filter(Project.id == project_id).first()


@router.delete("/{project_id}")
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_projects)
):
    db_project = _get_visible_project(db, project_id, auth)

    # Tasks outlive their project
    db.query(Task).filter(Task.project_id == project_id).update({Task.project_id: None})
    db.delete(db_project)
    db.commit()
    logger.info("Project %s deleted by user %s", project_id, auth.user_id)
    return {"message": "Project deleted successfully"}


@router.get("/{project_id}/tasks", response_model=List[TaskOut])
def get_project_tasks(
    project_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    _get_visible_project(db, project_id, auth)
    return db.query(Task).options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.project),
        joinedload(Task.department),
        selectinload(Task.phases)
    ).filter(Task.project_id == project_id).order_by(Task.created_at.desc(), Task.id.desc()).all()


@router.post("/{project_id}/participants", response_model=ParticipantOut, status_code=status.HTTP_201_CREATED)
def add_participant(
    project_id: int,
    participant: ParticipantAdd,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_projects)
):
    db_project = _get_visible_project(db, project_id, auth)

    user = db.query(User).filter(User.id == participant.user_id).first()
    if not user:
        raise NotFoundError("User not found")

    existing = db.query(ProjectParticipation).filter(
        ProjectParticipation.project_id == project_id,
        ProjectParticipation.user_id == participant.user_id
    ).first()
    if existing:
        raise ValidationError("User is already a participant of this project")

    membership = ProjectParticipation(project_id=project_id, user_id=user.id, role=participant.role)
    db.add(membership)
    create_project_notification(db, user.id, db_project.name, project_id, commit=False)
    db.commit()
    db.refresh(membership)
    return membership
