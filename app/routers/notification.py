# app/routers/notification.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import Notification
from app.schemas.notification import MarkAllReadResult, NotificationList, NotificationOut
from app.utils.auth import AuthContext, get_auth_context
from app.utils.exceptions import NotFoundError
from app.utils.notifications import mark_all_as_read, mark_as_read

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("/", response_model=NotificationList)
def get_user_notifications(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Get notifications for the current user, newest first"""
    query = db.query(Notification).filter(Notification.user_id == auth.user_id)

    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712

    notifications = query.order_by(
        Notification.created_at.desc(), Notification.id.desc()
    ).offset(skip).limit(limit).all()

    unread_count = db.query(Notification).filter(
        Notification.user_id == auth.user_id,
        Notification.is_read == False  # noqa: E712
    ).count()

    return {"notifications": notifications, "unread_count": unread_count}

@router.put("/read-all", response_model=MarkAllReadResult)
def mark_all_notifications_read(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    updated = mark_all_as_read(db, auth.user_id)
    return {"message": "All notifications marked as read", "updated": updated}

@router.put("/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == auth.user_id
    ).first()
    if not notification:
        raise NotFoundError("Notification not found")

    return mark_as_read(db, notification)
