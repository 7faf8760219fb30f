"""
Persisted in-app notifications for assignments, status changes and project membership
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.models import Notification, NotificationType

logger = logging.getLogger(__name__)

# (title, message template) per task notification type
TASK_MESSAGES = {
    NotificationType.TASK_ASSIGNED: ("New Task Assigned", "You have been assigned a new task: {title}"),
    NotificationType.TASK_UPDATED: ("Task Updated", "Task '{title}' has been updated"),
    NotificationType.TASK_STATUS_CHANGED: ("Task Status Changed", "Task '{title}' status has been changed"),
}
DEFAULT_TASK_MESSAGE = ("Task Notification", "Update for task: {title}")


def create_notification(
    db: Session,
    user_id: int,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.SYSTEM,
    related_entity_type: Optional[str] = None,
    related_entity_id: Optional[int] = None,
    commit: bool = True
) -> Notification:
    """
    Store a notification for a user.

    Args:
        related_entity_type: 'task' or 'project' when the notification points at one
        commit: Commit immediately; pass False to join the caller's unit of work
    """
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id
    )
    db.add(notification)

    if commit:
        db.commit()
        db.refresh(notification)

    logger.debug("Notification '%s' queued for user %s", title, user_id)
    return notification


def create_task_notification(
    db: Session,
    user_id: int,
    task_title: str,
    notification_type: NotificationType,
    task_id: Optional[int] = None,
    additional_info: Optional[str] = None,
    commit: bool = True
) -> Notification:
    title, template = TASK_MESSAGES.get(notification_type, DEFAULT_TASK_MESSAGE)
    message = template.format(title=task_title)
    if additional_info:
        message = f"{message} - {additional_info}"

    return create_notification(
        db=db,
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        related_entity_type="task",
        related_entity_id=task_id,
        commit=commit
    )


def create_project_notification(
    db: Session,
    user_id: int,
    project_name: str,
    project_id: Optional[int] = None,
    commit: bool = True
) -> Notification:
    return create_notification(
        db=db,
        user_id=user_id,
        title="New Project Created",
        message=f"You have been added to project '{project_name}'",
        notification_type=NotificationType.PROJECT_CREATED,
        related_entity_type="project",
        related_entity_id=project_id,
        commit=commit
    )


def mark_as_read(db: Session, notification: Notification) -> Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
        db.commit()
        db.refresh(notification)
    return notification


def mark_all_as_read(db: Session, user_id: int) -> int:
    """Mark every unread notification of a user as read; returns how many changed"""
    unread = db.query(Notification).filter(
        Notification.user_id == user_id,
        Notification.is_read == False  # noqa: E712
    ).all()

    now = datetime.utcnow()
    for notification in unread:
        notification.is_read = True
        notification.read_at = now

    db.commit()
    return len(unread)
