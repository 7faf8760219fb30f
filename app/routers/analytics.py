# app/routers/analytics.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.analytics import AnalyticsAggregator, DEFAULT_TREND_DAYS, MAX_TREND_DAYS
from app.utils.auth import AuthContext, get_auth_context
from app.utils.exceptions import ForbiddenError
from app.utils.roles import can_view_analytics

router = APIRouter(prefix="/analytics", tags=["analytics"])

@router.get("")
def get_analytics(
    days: int = Query(DEFAULT_TREND_DAYS, ge=1, le=MAX_TREND_DAYS),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Dashboard counts, group-bys and a daily created/completed trend"""
    if not can_view_analytics(auth.role):
        raise ForbiddenError("Insufficient permissions to view analytics")

    return AnalyticsAggregator(db).overview(days=days)
