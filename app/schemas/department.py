from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime
from .user import UserBasic

class DepartmentCreate(BaseModel):
    name: str
    description: Optional[str] = None
    head_id: Optional[int] = None

    @validator('name')
    def name_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Department name is required')
        return v.strip()

class DepartmentUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    head_id: Optional[int] = None

    model_config = {
        "from_attributes": True
    }

class DepartmentOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    head_id: Optional[int] = None
    head: Optional[UserBasic] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    user_count: int = 0
    project_count: int = 0

    model_config = {
        "from_attributes": True
    }
