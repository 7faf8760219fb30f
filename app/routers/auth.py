import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.schemas.user import Token, UserLogin
from app.utils.auth import build_token_claims
from app.utils.exceptions import UnauthorizedError
from app.utils.security import verify_password, create_access_token

router = APIRouter()
logger = logging.getLogger(__name__)

@router.post("/login", response_model=Token)
def login(user: UserLogin, db: Session = Depends(get_db)):
    db_user = db.query(User).filter(User.email == user.email).first()
    if not db_user or not verify_password(user.password, db_user.hashed_password):
        logger.info("Failed login attempt for %s", user.email)
        raise UnauthorizedError("Invalid credentials")

    token = create_access_token(data=build_token_claims(db_user))
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": db_user,
    }
