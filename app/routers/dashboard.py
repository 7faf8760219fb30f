# app/routers/dashboard.py
from typing import Optional

from fastapi import APIRouter, Depends, Header, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.dashboard_snapshot import DashboardSnapshotBuilder, compute_etag, etag_matches
from app.utils.auth import AuthContext, get_auth_context

router = APIRouter(prefix="/dashboard", tags=["dashboard"])

@router.get("/real-time")
def get_real_time_dashboard(
    if_none_match: Optional[str] = Header(None),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Unified snapshot polled by dashboard clients. Unchanged data answers 304."""
    payload = DashboardSnapshotBuilder(db, auth).build()
    etag = compute_etag(payload)
    headers = {"ETag": etag, "Cache-Control": "no-cache"}

    if etag_matches(if_none_match, etag):
        return Response(status_code=304, headers=headers)

    return JSONResponse(content=payload, headers=headers)
