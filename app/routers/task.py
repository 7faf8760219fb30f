# app/routers/task.py
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload, selectinload

from app.database import get_db
from app.models import (
    Department,
    Feedback,
    FeedbackStatus,
    NotificationType,
    Project,
    Task,
    TaskPhase,
    TaskStatus,
    User,
)
from app.schemas.feedback import FeedbackCreate, FeedbackOut, FeedbackReview
from app.schemas.task import PhaseCreate, PhaseOut, TaskCreate, TaskOut, TaskUpdate
from app.services.analytics import AnalyticsAggregator
from app.utils.auth import AuthContext, get_auth_context, require_roles
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.utils.notifications import create_task_notification
from app.utils.roles import Role, can_manage_tasks, normalize_priority, normalize_status
from app.utils.scoping import scope_tasks

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)

manage_tasks = require_roles(
    Role.ADMIN, Role.MANAGER, Role.DEPARTMENT,
    detail="Only administrators, managers and department heads can manage tasks"
)

# Fields an assignee without management rights may change on their own task
ASSIGNEE_EDITABLE_FIELDS = {"status", "actual_hours"}


def _task_query(db: Session):
    return db.query(Task).options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.project),
        joinedload(Task.department),
        selectinload(Task.phases).joinedload(TaskPhase.assigned_to)
    )


def _get_visible_task(db: Session, task_id: int, auth: AuthContext) -> Task:
    task = scope_tasks(_task_query(db), auth).filter(Task.id == task_id).first()
    if not task:
        raise NotFoundError("Task not found")
    return task


def _check_references(db: Session, department_id=None, project_id=None, assignee_id=None):
    if department_id is not None and not db.query(Department).filter(Department.id == department_id).first():
        raise ValidationError("Department not found")
    if project_id is not None and not db.query(Project).filter(Project.id == project_id).first():
        raise ValidationError("Project not found")
    if assignee_id is not None and not db.query(User).filter(User.id == assignee_id).first():
        raise ValidationError("Assignee not found")


def _is_department_head(db: Session, task: Task, auth: AuthContext) -> bool:
    if task.department_id is None:
        return False
    if auth.role == Role.DEPARTMENT and auth.department_id == task.department_id:
        return True
    head_id = db.query(Department.head_id).filter(Department.id == task.department_id).scalar()
    return head_id == auth.user_id


def _apply_status(task: Task, new_status: TaskStatus):
    task.status = new_status
    if new_status == TaskStatus.COMPLETED:
        task.completed_at = task.completed_at or datetime.utcnow()
    else:
        task.completed_at = None


def _next_phase_order(db: Session, task_id: int) -> int:
    current = db.query(func.max(TaskPhase.order)).filter(TaskPhase.task_id == task_id).scalar()
    return (current or 0) + 1


@router.get("/", response_model=List[TaskOut])
def get_tasks(
    assigned_to_me: bool = Query(False, alias="assignedToMe"),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = None,
    project_id: Optional[int] = Query(None, alias="projectId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Tasks visible to the caller, newest first"""
    query = scope_tasks(_task_query(db), auth)

    if assigned_to_me:
        query = query.filter(Task.assignee_id == auth.user_id)
    try:
        if status_filter:
            query = query.filter(Task.status == normalize_status(status_filter))
        if priority:
            query = query.filter(Task.priority == normalize_priority(priority))
    except ValueError as exc:
        raise ValidationError(str(exc))
    if project_id is not None:
        query = query.filter(Task.project_id == project_id)
    if department_id is not None:
        query = query.filter(Task.department_id == department_id)

    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()


@router.post("/", response_model=TaskOut, status_code=status.HTTP_201_CREATED)
def create_task(
    task: TaskCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_tasks)
):
    _check_references(db, task.department_id, task.project_id, task.assignee_id)

    db_task = Task(
        title=task.title,
        description=task.description,
        created_by=auth.user_id,
        assignee_id=task.assignee_id,
        project_id=task.project_id,
        department_id=task.department_id,
        priority=task.priority,
        estimated_hours=task.estimated_hours,
        start_date=task.start_date,
        end_date=task.end_date,
    )
    _apply_status(db_task, task.status)

    for index, phase in enumerate(task.phases, start=1):
        db_task.phases.append(TaskPhase(
            name=phase.name,
            description=phase.description,
            order=phase.order if phase.order is not None else index,
            estimated_time=phase.estimated_time,
            assigned_to_id=phase.assigned_to_id,
            start_date=phase.start_date,
            end_date=phase.end_date,
        ))

    db.add(db_task)
    db.flush()

    if db_task.assignee_id is not None:
        create_task_notification(
            db=db,
            user_id=db_task.assignee_id,
            task_title=db_task.title,
            notification_type=NotificationType.TASK_ASSIGNED,
            task_id=db_task.id,
            commit=False
        )
    db.commit()

    logger.info("Task %s created by user %s", db_task.id, auth.user_id)
    return _task_query(db).filter(Task.id == db_task.id).first()


@router.get("/stats")
def get_task_stats(
    project_id: Optional[int] = Query(None, alias="projectId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    user_id: Optional[int] = Query(None, alias="userId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return AnalyticsAggregator(db).task_stats(
        auth,
        project_id=project_id,
        department_id=department_id,
        user_id=user_id,
    )


@router.get("/{task_id}", response_model=TaskOut)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return _get_visible_task(db, task_id, auth)


@router.put("/{task_id}", response_model=TaskOut)
def update_task(
    task_id: int,
    task_update: TaskUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    db_task = _get_visible_task(db, task_id, auth)
    update_data = task_update.model_dump(exclude_unset=True)

    if not can_manage_tasks(auth.role):
        if db_task.assignee_id != auth.user_id:
            raise ForbiddenError("You can only update tasks assigned to you")
        if set(update_data) - ASSIGNEE_EDITABLE_FIELDS:
            raise ForbiddenError("You can only update the status and actual hours of your tasks")

    if "title" in update_data and not (update_data["title"] or "").strip():
        raise ValidationError("Title is required")
    if "department_id" in update_data and update_data["department_id"] is None:
        raise ValidationError("Department is required")
    _check_references(
        db,
        update_data.get("department_id"),
        update_data.get("project_id"),
        update_data.get("assignee_id"),
    )

    old_assignee = db_task.assignee_id
    old_status = db_task.status

    new_status = update_data.pop("status", None)
    if "priority" in update_data and update_data["priority"] is None:
        update_data.pop("priority")
    for field, value in update_data.items():
        setattr(db_task, field, value)
    if new_status is not None:
        _apply_status(db_task, new_status)

    if db_task.assignee_id is not None and db_task.assignee_id != old_assignee:
        create_task_notification(
            db=db,
            user_id=db_task.assignee_id,
            task_title=db_task.title,
            notification_type=NotificationType.TASK_ASSIGNED,
            task_id=db_task.id,
            commit=False
        )
    if db_task.status != old_status and db_task.created_by and db_task.created_by != auth.user_id:
        create_task_notification(
            db=db,
            user_id=db_task.created_by,
            task_title=db_task.title,
            notification_type=NotificationType.TASK_STATUS_CHANGED,
            task_id=db_task.id,
            additional_info=f"{old_status.value} -> {db_task.status.value}",
            commit=False
        )

    db.commit()
    return _task_query(db).filter(Task.id == task_id).first()


@router.delete("/{task_id}")
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_tasks)
):
    db_task = _get_visible_task(db, task_id, auth)
    db.delete(db_task)
    db.commit()
    logger.info("Task %s deleted by user %s", task_id, auth.user_id)
    return {"message": "Task deleted successfully"}


@router.get("/{task_id}/phases", response_model=List[PhaseOut])
def get_task_phases(
    task_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return _get_visible_task(db, task_id, auth).phases


@router.post("/{task_id}/phases", response_model=PhaseOut, status_code=status.HTTP_201_CREATED)
def create_task_phase(
    task_id: int,
    phase: PhaseCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_tasks)
):
    _get_visible_task(db, task_id, auth)
    _check_references(db, assignee_id=phase.assigned_to_id)

    db_phase = TaskPhase(
        task_id=task_id,
        name=phase.name,
        description=phase.description,
        order=phase.order if phase.order is not None else _next_phase_order(db, task_id),
        estimated_time=phase.estimated_time,
        assigned_to_id=phase.assigned_to_id,
        start_date=phase.start_date,
        end_date=phase.end_date,
    )
    db.add(db_phase)
    db.commit()
    db.refresh(db_phase)
    return db_phase


@router.get("/{task_id}/feedbacks", response_model=List[FeedbackOut])
def get_task_feedbacks(
    task_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    _get_visible_task(db, task_id, auth)
    return db.query(Feedback).options(
        joinedload(Feedback.submitted_by),
        joinedload(Feedback.reviewed_by)
    ).filter(Feedback.task_id == task_id).order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()


@router.post("/{task_id}/feedbacks", response_model=FeedbackOut, status_code=status.HTTP_201_CREATED)
def create_task_feedback(
    task_id: int,
    feedback: FeedbackCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Feedback may be left by the task creator, its assignee or the department head"""
    task = _get_visible_task(db, task_id, auth)
    allowed = (
        task.created_by == auth.user_id
        or task.assignee_id == auth.user_id
        or _is_department_head(db, task, auth)
    )
    if not allowed:
        raise ForbiddenError("You cannot leave feedback on this task")

    db_feedback = Feedback(
        task_id=task_id,
        message=feedback.message,
        type=feedback.type,
        priority=feedback.priority,
        submitted_by_id=auth.user_id,
    )
    db.add(db_feedback)
    db.commit()
    db.refresh(db_feedback)
    return db_feedback


@router.put("/{task_id}/feedbacks", response_model=FeedbackOut)
def review_task_feedback(
    task_id: int,
    review: FeedbackReview,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Review a feedback entry; only the task creator or the department head may do this"""
    task = _get_visible_task(db, task_id, auth)
    if task.created_by != auth.user_id and not _is_department_head(db, task, auth):
        raise ForbiddenError("Only the task creator or department head can review feedback")

    db_feedback = db.query(Feedback).filter(
        Feedback.id == review.feedback_id,
        Feedback.task_id == task_id
    ).first()
    if not db_feedback:
        raise NotFoundError("Feedback not found")

    db_feedback.status = review.status
    if review.status in (FeedbackStatus.REVIEWED, FeedbackStatus.RESOLVED):
        db_feedback.reviewed_by_id = auth.user_id
        db_feedback.reviewed_at = datetime.utcnow()

    db.commit()
    db.refresh(db_feedback)
    return db_feedback
