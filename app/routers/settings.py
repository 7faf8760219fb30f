# app/routers/settings.py
import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models import User
from app.schemas.user import SettingsUpdate, UserOut
from app.utils.auth import get_current_user
from app.utils.exceptions import ValidationError
from app.utils.security import hash_password, verify_password

router = APIRouter(prefix="/settings", tags=["settings"])
logger = logging.getLogger(__name__)

@router.get("", response_model=UserOut)
def get_settings(current_user: User = Depends(get_current_user)):
    return current_user

@router.put("", response_model=UserOut)
def update_settings(
    settings: SettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update name, email and capacity; changing the password requires the current one"""
    if settings.new_password:
        if not settings.current_password:
            raise ValidationError("Current password is required to set new password")
        if not verify_password(settings.current_password, current_user.hashed_password):
            raise ValidationError("Current password is incorrect")

    if settings.email != current_user.email:
        taken = db.query(User).filter(User.email == settings.email, User.id != current_user.id).first()
        if taken:
            raise ValidationError("Email already registered")

    current_user.name = settings.name
    current_user.email = settings.email
    if settings.capacity:
        current_user.capacity = settings.capacity
    if settings.new_password:
        current_user.hashed_password = hash_password(settings.new_password)
        logger.info("User %s changed their password", current_user.id)

    db.commit()
    db.refresh(current_user)
    return current_user
