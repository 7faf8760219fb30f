# app/routers/department.py
import logging
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, joinedload, selectinload

from app.database import get_db
from app.models import Department, User
from app.schemas.department import DepartmentCreate, DepartmentOut, DepartmentUpdate
from app.services.analytics import AnalyticsAggregator
from app.services.workload_manager import WorkloadManager
from app.utils.auth import AuthContext, get_auth_context, get_current_user, require_roles
from app.utils.exceptions import NotFoundError, ValidationError
from app.utils.roles import Role

router = APIRouter()
logger = logging.getLogger(__name__)

manage_departments = require_roles(Role.ADMIN, Role.MANAGER, detail="Only administrators and managers can manage departments")


def _to_out(department: Department) -> DepartmentOut:
    out = DepartmentOut.model_validate(department)
    out.user_count = len(department.users)
    out.project_count = len(department.projects)
    return out


def _get_department_or_404(db: Session, department_id: int) -> Department:
    department = db.query(Department).options(
        joinedload(Department.head),
        selectinload(Department.users),
        selectinload(Department.projects)
    ).filter(Department.id == department_id).first()
    if not department:
        raise NotFoundError("Department not found")
    return department


def _check_head(db: Session, head_id):
    if head_id is not None and not db.query(User).filter(User.id == head_id).first():
        raise ValidationError("Department head not found")


def _check_unique_name(db: Session, name: str, exclude_id=None):
    query = db.query(Department).filter(Department.name == name)
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    if query.first():
        raise ValidationError("Department name already exists")


@router.get("/", response_model=List[DepartmentOut])
def get_departments(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """All departments with head and user/project counts"""
    departments = db.query(Department).options(
        joinedload(Department.head),
        selectinload(Department.users),
        selectinload(Department.projects)
    ).order_by(Department.name).all()
    return [_to_out(d) for d in departments]


@router.post("/", response_model=DepartmentOut, status_code=status.HTTP_201_CREATED)
def create_department(
    department: DepartmentCreate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_departments)
):
    _check_unique_name(db, department.name)
    _check_head(db, department.head_id)

    db_department = Department(
        name=department.name,
        description=department.description,
        head_id=department.head_id
    )
    db.add(db_department)
    db.commit()
    logger.info("Department '%s' created by user %s", db_department.name, auth.user_id)
    return _to_out(_get_department_or_404(db, db_department.id))


@router.get("/me/stats")
def get_my_department_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Headcount and task counts for the caller's own department"""
    if current_user.department is None:
        raise NotFoundError("User not assigned to a department")
    return AnalyticsAggregator(db).department_stats(current_user.department)


@router.get("/me/team")
def get_my_department_team(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Everyone in the caller's department, with their current utilization"""
    if current_user.department_id is None:
        raise ValidationError("User not assigned to a department")
    return WorkloadManager(db).get_department_team(current_user.department_id)


@router.get("/{department_id}", response_model=DepartmentOut)
def get_department(
    department_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    return _to_out(_get_department_or_404(db, department_id))


@router.put("/{department_id}", response_model=DepartmentOut)
def update_department(
    department_id: int,
    department_update: DepartmentUpdate,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_departments)
):
    db_department = _get_department_or_404(db, department_id)
    update_data = department_update.model_dump(exclude_unset=True)

    if update_data.get("name"):
        _check_unique_name(db, update_data["name"], exclude_id=department_id)
    elif "name" in update_data:
        raise ValidationError("Department name is required")
    if "head_id" in update_data:
        _check_head(db, update_data["head_id"])

    for field, value in update_data.items():
        setattr(db_department, field, value)

    db.commit()
    return _to_out(_get_department_or_404(db, department_id))


@router.delete("/{department_id}")
def delete_department(
    department_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(manage_departments)
):
    """Delete a department; refused while users or projects still belong to it"""
    db_department = _get_department_or_404(db, department_id)

    if db_department.users or db_department.projects:
        raise ValidationError("Cannot delete department with existing users or projects")

    db.delete(db_department)
    db.commit()
    logger.info("Department %s deleted by user %s", department_id, auth.user_id)
    return {"message": "Department deleted successfully"}
