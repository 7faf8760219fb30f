# app/routers/search.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.search import MIN_QUERY_LENGTH, SearchService
from app.utils.auth import AuthContext, get_auth_context
from app.utils.exceptions import ValidationError

router = APIRouter(prefix="/search", tags=["search"])

@router.get("")
def search(
    q: Optional[str] = None,
    search_type: str = Query("all", alias="type", pattern="^(all|projects|tasks|users|departments)$"),
    limit: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    if not q or len(q.strip()) < MIN_QUERY_LENGTH:
        raise ValidationError(f"Query must be at least {MIN_QUERY_LENGTH} characters")

    return SearchService(db, auth).search(q, search_type=search_type, limit=limit)
