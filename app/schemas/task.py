# app/schemas/task.py
from pydantic import BaseModel, validator
from datetime import datetime
from typing import Optional, List

from app.models.task import TaskStatus, TaskPriority, PhaseStatus
from app.utils.roles import normalize_priority, normalize_status
from .user import UserBasic, DepartmentBasic

def _normalize_status(v):
    return normalize_status(v) if v is not None else v

def _normalize_priority(v):
    return normalize_priority(v) if v is not None else v

class PhaseCreate(BaseModel):
    name: str
    description: Optional[str] = None
    order: Optional[int] = None
    estimated_time: Optional[float] = None
    assigned_to_id: Optional[int] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('name')
    def name_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Phase name is required')
        return v

class PhaseComplete(BaseModel):
    actual_time: Optional[float] = None

class PhaseOut(BaseModel):
    id: int
    task_id: int
    name: str
    description: Optional[str] = None
    order: int
    status: PhaseStatus
    estimated_time: Optional[float] = None
    actual_time: Optional[float] = None
    assigned_to_id: Optional[int] = None
    assigned_to: Optional[UserBasic] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True

class TaskBase(BaseModel):
    title: str
    description: Optional[str] = None
    department_id: int
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.MEDIUM
    estimated_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('title')
    def title_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Title is required')
        return v

    @validator('status', pre=True)
    def normalize_status_value(cls, v):
        return _normalize_status(v)

    @validator('priority', pre=True)
    def normalize_priority_value(cls, v):
        return _normalize_priority(v)

    @validator('estimated_hours')
    def hours_must_not_be_negative(cls, v):
        if v is not None and v < 0:
            raise ValueError('Estimated hours cannot be negative')
        return v

    @validator('end_date')
    def end_date_must_be_after_start_date(cls, v, values):
        if v is not None and values.get('start_date') is not None and v < values['start_date']:
            raise ValueError('End date must be after start date')
        return v

class TaskCreate(TaskBase):
    phases: List[PhaseCreate] = []

class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    department_id: Optional[int] = None
    project_id: Optional[int] = None
    assignee_id: Optional[int] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @validator('status', pre=True)
    def normalize_status_value(cls, v):
        return _normalize_status(v)

    @validator('priority', pre=True)
    def normalize_priority_value(cls, v):
        return _normalize_priority(v)

# For returning task data
class ProjectBasic(BaseModel):
    id: int
    name: str
    status: str

    class Config:
        from_attributes = True

class TaskOut(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    status: TaskStatus
    priority: TaskPriority
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: Optional[int] = None
    assignee_id: Optional[int] = None
    project_id: Optional[int] = None
    department_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    creator: Optional[UserBasic] = None
    assignee: Optional[UserBasic] = None
    project: Optional[ProjectBasic] = None
    department: Optional[DepartmentBasic] = None
    phases: List[PhaseOut] = []

    class Config:
        from_attributes = True

class MyPhaseOut(PhaseOut):
    task: Optional[TaskOut] = None
