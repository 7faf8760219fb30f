from pydantic import BaseModel, validator
from typing import Optional
from datetime import datetime

from app.models.feedback import FeedbackType, FeedbackStatus
from app.models.task import TaskPriority
from app.utils.roles import normalize_priority
from .user import UserBasic

class FeedbackCreate(BaseModel):
    message: str
    type: FeedbackType = FeedbackType.GENERAL
    priority: TaskPriority = TaskPriority.MEDIUM

    @validator('message')
    def message_must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Message is required')
        return v

    @validator('type', pre=True)
    def upper_type(cls, v):
        return str(v).strip().upper() if v is not None else v

    @validator('priority', pre=True)
    def normalize_priority_value(cls, v):
        return normalize_priority(v) if v is not None else v

class FeedbackReview(BaseModel):
    feedback_id: int
    status: FeedbackStatus

    @validator('status', pre=True)
    def upper_status(cls, v):
        return str(v).strip().upper() if v is not None else v

class FeedbackOut(BaseModel):
    id: int
    task_id: int
    message: str
    type: FeedbackType
    priority: TaskPriority
    status: FeedbackStatus
    submitted_by_id: int
    submitted_by: Optional[UserBasic] = None
    reviewed_by_id: Optional[int] = None
    reviewed_by: Optional[UserBasic] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    model_config = {
        "from_attributes": True
    }
