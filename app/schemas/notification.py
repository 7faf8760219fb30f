# app/schemas/notification.py
from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime
from app.models.notification import NotificationType

class NotificationOut(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    notification_type: NotificationType
    is_read: bool
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: datetime
    read_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class NotificationList(BaseModel):
    notifications: List[NotificationOut]
    unread_count: int

class MarkAllReadResult(BaseModel):
    message: str
    updated: int
