from pydantic import BaseModel, EmailStr, validator
from typing import Optional, List
from datetime import datetime

from app.utils.roles import normalize_role

class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    role: str = "FIELD"
    capacity: Optional[float] = None
    phone: Optional[str] = None
    department_id: Optional[int] = None

    @validator('name', 'password')
    def must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Field cannot be empty')
        return v

    @validator('role', pre=True)
    def normalize_role_value(cls, v):
        return normalize_role(v).value

    @validator('capacity')
    def capacity_must_be_positive(cls, v):
        if v is not None and v < 0:
            raise ValueError('Capacity cannot be negative')
        return v

class UserLogin(BaseModel):
    email: EmailStr
    password: str

class DepartmentBasic(BaseModel):
    id: int
    name: str

    model_config = {
        "from_attributes": True
    }

class UserBasic(BaseModel):
    id: int
    name: str
    email: str
    role: str

    model_config = {
        "from_attributes": True
    }

class UserOut(BaseModel):
    id: int
    name: str
    email: str
    role: str
    capacity: float
    phone: Optional[str] = None
    department_id: Optional[int] = None
    department: Optional[DepartmentBasic] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class UserUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    role: Optional[str] = None
    capacity: Optional[float] = None
    phone: Optional[str] = None
    department_id: Optional[int] = None

    @validator('role', pre=True)
    def normalize_role_value(cls, v):
        return normalize_role(v).value if v is not None else v

    @validator('capacity')
    def capacity_must_be_positive(cls, v):
        if v is not None and v < 0:
            raise ValueError('Capacity cannot be negative')
        return v

class ProfileUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    capacity: Optional[float] = None

    @validator('capacity')
    def capacity_must_be_positive(cls, v):
        if v is not None and v < 0:
            raise ValueError('Capacity cannot be negative')
        return v

class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int

class UserList(BaseModel):
    users: List[UserOut]
    pagination: Pagination

class Token(BaseModel):
    """Login response: bearer token plus the authenticated user"""
    access_token: str
    token_type: str = "bearer"
    user: UserOut

    class Config:
        from_attributes = True

class SettingsUpdate(BaseModel):
    """Self-service account settings; a new password needs the current one"""
    name: str
    email: EmailStr
    capacity: Optional[float] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None

    @validator('name')
    def name_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Name is required')
        return v

    @validator('capacity')
    def capacity_must_be_positive(cls, v):
        if v is not None and v < 0:
            raise ValueError('Capacity cannot be negative')
        return v
