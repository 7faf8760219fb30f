# app/routers/phase.py
import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session, joinedload

from app.database import get_db
from app.models import PhaseStatus, TaskPhase, TaskStatus
from app.schemas.task import PhaseComplete, PhaseOut
from app.utils.auth import AuthContext, get_auth_context
from app.utils.exceptions import ForbiddenError, NotFoundError, ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


def _get_own_phase(db: Session, phase_id: int, auth: AuthContext) -> TaskPhase:
    phase = db.query(TaskPhase).options(
        joinedload(TaskPhase.task),
        joinedload(TaskPhase.assigned_to)
    ).filter(TaskPhase.id == phase_id).first()
    if not phase:
        raise NotFoundError("Phase not found")
    if phase.assigned_to_id != auth.user_id:
        raise ForbiddenError("Only the assigned user can work on this phase")
    return phase


@router.post("/{phase_id}/start", response_model=PhaseOut)
def start_phase(
    phase_id: int,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    phase = _get_own_phase(db, phase_id, auth)
    if phase.status != PhaseStatus.PENDING:
        raise ValidationError("Only pending phases can be started")

    phase.status = PhaseStatus.IN_PROGRESS
    phase.started_at = datetime.utcnow()
    if phase.task.status == TaskStatus.PENDING:
        phase.task.status = TaskStatus.IN_PROGRESS

    db.commit()
    db.refresh(phase)
    logger.info("Phase %s started by user %s", phase_id, auth.user_id)
    return phase


@router.post("/{phase_id}/complete", response_model=PhaseOut)
def complete_phase(
    phase_id: int,
    body: Optional[PhaseComplete] = None,
    db: Session = Depends(get_db),
    auth: AuthContext = Depends(get_auth_context)
):
    """Complete a phase; actual time defaults to the hours elapsed since it was started"""
    phase = _get_own_phase(db, phase_id, auth)
    if phase.status != PhaseStatus.IN_PROGRESS:
        raise ValidationError("Only phases in progress can be completed")

    now = datetime.utcnow()
    if body is not None and body.actual_time is not None:
        if body.actual_time < 0:
            raise ValidationError("Actual time cannot be negative")
        phase.actual_time = body.actual_time
    elif phase.started_at is not None:
        phase.actual_time = round((now - phase.started_at).total_seconds() / 3600, 2)

    phase.status = PhaseStatus.COMPLETED
    phase.completed_at = now

    db.commit()
    db.refresh(phase)
    logger.info("Phase %s completed by user %s", phase_id, auth.user_id)
    return phase
