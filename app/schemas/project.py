from pydantic import BaseModel, validator
from typing import Optional, List
from datetime import datetime
from .user import UserBasic, DepartmentBasic
from app.models.project import PROJECT_STATUSES, PARTICIPATION_ROLES

def _check_status(v):
    if v is None:
        return v
    status = str(v).strip().upper()
    if status not in PROJECT_STATUSES:
        raise ValueError(f'Unknown project status: {v}')
    return status

class ProjectCreate(BaseModel):
    name: str
    description: Optional[str] = None
    status: str = "ACTIVE"
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    department_ids: List[int] = []
    participant_ids: List[int] = []

    @validator('name')
    def name_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Project name is required')
        return v

    @validator('status', pre=True)
    def status_must_be_known(cls, v):
        return _check_status(v)

    @validator('estimated_end_date')
    def end_after_start(cls, v, values):
        start = values.get('estimated_start_date')
        if v is not None and start is not None and v < start:
            raise ValueError('Estimated end date must be after start date')
        return v

class ProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    department_ids: Optional[List[int]] = None

    @validator('status', pre=True)
    def status_must_be_known(cls, v):
        return _check_status(v)

    model_config = {
        "from_attributes": True
    }

class ParticipantAdd(BaseModel):
    user_id: int
    role: str = "PARTICIPANT"

    @validator('role', pre=True)
    def role_must_be_known(cls, v):
        role = str(v).strip().upper()
        if role not in PARTICIPATION_ROLES:
            raise ValueError(f'Unknown participation role: {v}')
        return role

class ParticipantOut(BaseModel):
    id: int
    user_id: int
    role: str
    joined_at: datetime
    user: UserBasic

    model_config = {
        "from_attributes": True
    }

class ProjectOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    status: str
    estimated_start_date: Optional[datetime] = None
    estimated_end_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    creator: Optional[UserBasic] = None
    departments: List[DepartmentBasic] = []
    participants: List[ParticipantOut] = []

    model_config = {
        "from_attributes": True
    }

class TaskProgress(BaseModel):
    id: int
    title: str
    status: str
    total_phases: int
    completed_phases: int
    completion: float

class ProjectDetail(ProjectOut):
    task_progress: List[TaskProgress] = []
