# app/routers/user.py
import logging
import math
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.models import Department, Feedback, Project, Task, TaskPhase, User
from app.models.user import DEFAULT_CAPACITY_HOURS
from app.schemas.task import MyPhaseOut
from app.schemas.user import ProfileUpdate, UserCreate, UserList, UserOut, UserUpdate
from app.services.analytics import AnalyticsAggregator, DEFAULT_TREND_DAYS, MAX_TREND_DAYS
from app.services.workload_manager import WorkloadManager
from app.utils.auth import AuthContext, get_auth_context, get_current_user, require_roles
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.utils.roles import Role, available_roles, normalize_role
from app.utils.scoping import scope_users
from app.utils.security import hash_password

router = APIRouter()
logger = logging.getLogger(__name__)

manage_users = require_roles(Role.ADMIN, Role.MANAGER, detail="Only administrators and managers can manage users")


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.query(User).options(joinedload(User.department)).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User not found")
    return user


def _check_department(db: Session, department_id: Optional[int]):
    if department_id is not None and not db.query(Department).filter(Department.id == department_id).first():
        raise ValidationError("Department not found")


@router.get("/", response_model=UserList)
def get_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    department: Optional[int] = None,
    role: Optional[str] = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """List users with pagination. Department heads only see their own department."""
    query = db.query(User).options(joinedload(User.department))

    if department is not None:
        query = query.filter(User.department_id == department)
    if role:
        query = query.filter(User.role == normalize_role(role).value)
    if auth.role == Role.DEPARTMENT:
        query = scope_users(query, auth)

    total = query.count()
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * limit).limit(limit).all()

    return {
        "users": users,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        }
    }


@router.post("/", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    user: UserCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_users)
):
    if user.role == Role.ADMIN.value and auth.role != Role.ADMIN:
        raise ForbiddenError("Only administrators can create administrators")

    existing_user = db.query(User).filter(User.email == user.email).first()
    if existing_user:
        raise ValidationError("Email already registered")
    _check_department(db, user.department_id)

    db_user = User(
        name=user.name,
        email=user.email,
        hashed_password=hash_password(user.password),
        role=user.role,
        capacity=user.capacity if user.capacity is not None else DEFAULT_CAPACITY_HOURS,
        phone=user.phone,
        department_id=user.department_id,
    )

    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    logger.info("User %s created by %s", db_user.id, auth.user_id)
    return db_user


@router.get("/workload")
def get_user_workload(
    user_id: Optional[int] = Query(None, alias="userId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    include_project_participants: bool = Query(False, alias="includeProjectParticipants"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Utilization snapshot per user, plus a team summary when more than one user is visible"""
    return WorkloadManager(db).get_user_workloads(
        auth,
        user_id=user_id,
        department_id=department_id,
        include_projects=include_project_participants,
    )


@router.get("/performance")
def get_user_performance(
    user_id: Optional[int] = Query(None, alias="userId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    timeframe: int = Query(DEFAULT_TREND_DAYS, ge=1, le=MAX_TREND_DAYS),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Completion and punctuality figures per visible user, with team averages and top performers"""
    return AnalyticsAggregator(db).user_performance(
        auth,
        user_id=user_id,
        department_id=department_id,
        timeframe_days=timeframe,
    )


@router.get("/schedules")
def get_user_schedules(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(require_roles(Role.MANAGER))
):
    """Schedule board for managers: every user's open tasks against a 40-hour week, heaviest first"""
    return WorkloadManager(db).get_schedules()


@router.get("/roles")
def get_roles(auth: AuthContext = Depends(get_auth_context)):
    """Roles that can be handed out when creating users"""
    return available_roles()


@router.get("/me", response_model=UserOut)
def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return current_user


@router.put("/me", response_model=UserOut)
def update_profile(
    profile: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    for field, value in profile.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)

    db.commit()
    db.refresh(current_user)
    return current_user


@router.get("/me/phases", response_model=List[MyPhaseOut])
def get_my_phases(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Phases assigned to the caller, with their parent task"""
    return db.query(TaskPhase).options(
        joinedload(TaskPhase.task),
        joinedload(TaskPhase.assigned_to)
    ).filter(
        TaskPhase.assigned_to_id == auth.user_id
    ).order_by(TaskPhase.task_id, TaskPhase.order).all()


@router.get("/{user_id}", response_model=UserOut)
def get_user(
    user_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Get a specific user by ID"""
    user = _get_user_or_404(db, user_id)
    if auth.role == Role.FIELD and user.id != auth.user_id:
        raise ForbiddenError("You can only view your own profile")
    return user


@router.put("/{user_id}", response_model=UserOut)
def update_user(
    user_id: int,
    user_update: UserUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_users)
):
    db_user = _get_user_or_404(db, user_id)

    if user_update.role == Role.ADMIN.value and auth.role != Role.ADMIN:
        raise ForbiddenError("Only administrators can grant the administrator role")

    # Check if email already exists for another user
    if user_update.email and user_update.email != db_user.email:
        existing_user = db.query(User).filter(
            User.email == user_update.email,
            User.id != user_id
        ).first()
        if existing_user:
            raise ValidationError("Email already registered")

    # Only optional columns may be cleared with an explicit null
    update_data = {
        field: value for field, value in user_update.model_dump(exclude_unset=True).items()
        if value is not None or field in ("phone", "department_id")
    }
    if "department_id" in update_data:
        _check_department(db, update_data["department_id"])

    # Handle password update separately (hash it if provided)
    if 'password' in update_data:
        password = update_data.pop('password')
        if password:
            db_user.hashed_password = hash_password(password)

    for field, value in update_data.items():
        setattr(db_user, field, value)

    db.commit()
    db.refresh(db_user)
    return db_user


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
    user_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_users)
):
    """Delete a user. Tasks and phases assigned to them become unassigned."""
    db_user = _get_user_or_404(db, user_id)

    # Prevent users from deleting themselves
    if db_user.id == auth.user_id:
        raise ValidationError("You cannot delete your own account")

    db.query(Task).filter(Task.assignee_id == user_id).update({Task.assignee_id: None})
    db.query(Task).filter(Task.created_by == user_id).update({Task.created_by: None})
    db.query(TaskPhase).filter(TaskPhase.assigned_to_id == user_id).update({TaskPhase.assigned_to_id: None})
    db.query(Department).filter(Department.head_id == user_id).update({Department.head_id: None})
    db.query(Project).filter(Project.created_by == user_id).update({Project.created_by: None})
    db.query(Feedback).filter(Feedback.reviewed_by_id == user_id).update({Feedback.reviewed_by_id: None})
    db.query(Feedback).filter(Feedback.submitted_by_id == user_id).delete()

    db.delete(db_user)
    db.commit()
    logger.info("User %s deleted by %s", user_id, auth.user_id)
    return None
