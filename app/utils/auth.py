# app/utils/auth.py
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.utils.exceptions import UnauthorizedError, ForbiddenError
from app.utils.roles import Role, normalize_role
from app.utils.security import decode_access_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


@dataclass(frozen=True)
class AuthContext:
    """Identity asserted by the bearer token, built once per request"""
    user_id: int
    role: Role
    department_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "AuthContext":
        return cls(
            user_id=user.id,
            role=normalize_role(user.role),
            department_id=user.department_id,
        )


def build_token_claims(user: User) -> dict:
    return {
        "sub": str(user.id),
        "role": normalize_role(user.role).value,
        "department_id": user.department_id,
    }


def get_auth_context(token: Optional[str] = Depends(oauth2_scheme)) -> AuthContext:
    if not token:
        raise UnauthorizedError()
    try:
        payload = decode_access_token(token)
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError):
        raise UnauthorizedError()

    department_id = payload.get("department_id")
    return AuthContext(
        user_id=user_id,
        role=normalize_role(payload.get("role")),
        department_id=int(department_id) if department_id is not None else None,
    )


def get_current_user(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db)
) -> User:
    user = db.query(User).filter(User.id == auth.user_id).first()
    if user is None:
        raise UnauthorizedError()
    return user


def require_roles(*roles: Role, detail: str = "Insufficient permissions"):
    """
    Factory for role-gated dependencies.

    Usage:
        auth: AuthContext = Depends(require_roles(Role.ADMIN, Role.MANAGER))
    """
    allowed = set(roles)

    def _require_roles(auth: AuthContext = Depends(get_auth_context)) -> AuthContext:
        if auth.role not in allowed:
            raise ForbiddenError(detail)
        return auth

    return _require_roles
