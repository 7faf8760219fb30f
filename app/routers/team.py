# app/routers/team.py
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.workload_manager import WorkloadManager
from app.utils.auth import AuthContext, get_auth_context

router = APIRouter(prefix="/team", tags=["team"])

@router.get("/collaboration")
def get_team_collaboration(
    project_id: Optional[int] = Query(None, alias="projectId"),
    department_id: Optional[int] = Query(None, alias="departmentId"),
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """
    Who is free to take work: per-member load, open tasks and active projects,
    a team summary and the members with the most spare hours. Administrators
    also get a capacity roll-up per department.
    """
    return WorkloadManager(db).get_team_collaboration(
        auth,
        project_id=project_id,
        department_id=department_id,
    )
