# app/routers/workload.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.workload_manager import WorkloadManager
from app.utils.auth import AuthContext, require_roles
from app.utils.roles import Role

router = APIRouter(prefix="/workload", tags=["workload"])

view_alerts = require_roles(Role.ADMIN, Role.MANAGER, Role.DEPARTMENT, detail="Forbidden")
managers_only = require_roles(Role.MANAGER)


@router.get("/alerts")
def get_workload_alerts(
    department_id: Optional[int] = Query(None, alias="departmentId"),
    severity: Optional[str] = Query(None, pattern="^(all|critical|overloaded)$"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(view_alerts)
):
    """Workload, overdue and urgent-task alerts for every visible user"""
    return WorkloadManager(db).get_alerts(auth, department_id=department_id, severity=severity)


@router.post("/rebalance")
def rebalance_workload(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(managers_only)
):
    """Move pending work from overloaded users to the least loaded available users"""
    return WorkloadManager(db).rebalance().to_dict()


@router.get("/stats")
def get_workload_stats(
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(managers_only)
):
    return WorkloadManager(db).get_stats()
