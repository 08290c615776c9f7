"""
API Routes for court scheduling - live court board per stage
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from courtside.database import get_session
from courtside.models.enums import MatchKind, Stage, stage_for_kind
from courtside.services import court_scheduler, priority_queue
from courtside.services.errors import SchedulingError
from courtside.services.schedule_signature import compute_signature

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class AssignRequest(BaseModel):
    court_id: str
    match_type: MatchKind
    match_id: str


class CourtRequest(BaseModel):
    court_id: str


class MatchRef(BaseModel):
    match_type: MatchKind
    match_id: str


class BlockRequest(MatchRef):
    reason: Optional[str] = None


class AutoScheduleRequest(BaseModel):
    enabled: bool


def _http_error(e: SchedulingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def _check_stage(stage: Stage, kind: MatchKind) -> None:
    if stage_for_kind(kind) != stage:
        raise HTTPException(
            status_code=400,
            detail={"error": "WRONG_STAGE", "message": f"{kind.value} matches belong to the {stage_for_kind(kind).value} stage."},
        )


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/schedule/{stage}")
def get_schedule(stage: Stage, session: Session = Depends(get_session)):
    """Courts, eligible queue and upcoming list for a stage (runs auto-fill when enabled)"""
    try:
        return court_scheduler.get_schedule_state(session, stage)
    except SchedulingError as e:
        raise _http_error(e)


@router.get("/schedule/{stage}/signature")
def get_schedule_signature(stage: Stage, session: Session = Depends(get_session)):
    """Hashes clients poll to decide whether to refetch the board"""
    return compute_signature(session, stage).to_dict()


@router.post("/schedule/{stage}/assign")
def assign_match(stage: Stage, payload: AssignRequest, session: Session = Depends(get_session)):
    try:
        assignment = court_scheduler.assign_match(
            session, stage, payload.court_id, payload.match_type, payload.match_id
        )
    except SchedulingError as e:
        raise _http_error(e)
    return {"assignment_id": assignment.id, "court_id": assignment.court_id, "match_id": assignment.match_id}


@router.post("/schedule/{stage}/back-to-queue")
def back_to_queue(stage: Stage, payload: CourtRequest, session: Session = Depends(get_session)):
    try:
        court_scheduler.ensure_setup(session, stage)
        court_scheduler.reconcile(session, stage)
        return court_scheduler.back_to_queue(session, stage, payload.court_id).to_dict()
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/schedule/{stage}/courts/{court_id}/lock")
def lock_court(stage: Stage, court_id: str, session: Session = Depends(get_session)):
    try:
        state = court_scheduler.set_court_lock(session, stage, court_id, True)
    except SchedulingError as e:
        raise _http_error(e)
    return {"court_id": state.court_id, "is_locked": state.is_locked}


@router.post("/schedule/{stage}/courts/{court_id}/unlock")
def unlock_court(stage: Stage, court_id: str, session: Session = Depends(get_session)):
    try:
        state = court_scheduler.set_court_lock(session, stage, court_id, False)
    except SchedulingError as e:
        raise _http_error(e)
    return {"court_id": state.court_id, "is_locked": state.is_locked}


@router.post("/schedule/{stage}/courts/{court_id}/complete")
def mark_completed(stage: Stage, court_id: str, session: Session = Depends(get_session)):
    """Release a court whose match has a recorded result"""
    try:
        return court_scheduler.mark_completed(session, stage, court_id)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/schedule/{stage}/block")
def block_match(stage: Stage, payload: BlockRequest, session: Session = Depends(get_session)):
    _check_stage(stage, payload.match_type)
    try:
        court_scheduler.ensure_setup(session, stage)
        return court_scheduler.block_match(session, payload.match_type, payload.match_id, payload.reason)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/schedule/{stage}/unblock")
def unblock_match(stage: Stage, payload: MatchRef, session: Session = Depends(get_session)):
    _check_stage(stage, payload.match_type)
    try:
        removed = court_scheduler.unblock_match(session, payload.match_type, payload.match_id)
        fill = court_scheduler.fill_if_enabled(session, stage)
    except SchedulingError as e:
        raise _http_error(e)
    return {"removed": removed, "auto_fill": fill.to_dict() if fill else None}


@router.post("/schedule/{stage}/force")
def force_match(stage: Stage, payload: MatchRef, session: Session = Depends(get_session)):
    """Move a match to the head of the queue"""
    _check_stage(stage, payload.match_type)
    try:
        forced = priority_queue.force_match(session, payload.match_type, payload.match_id)
        fill = court_scheduler.fill_if_enabled(session, stage)
    except SchedulingError as e:
        raise _http_error(e)
    return {
        "match_type": forced.match_type,
        "match_id": forced.match_id,
        "auto_fill": fill.to_dict() if fill else None,
    }


@router.post("/schedule/{stage}/force/clear")
def clear_forced(stage: Stage, payload: MatchRef, session: Session = Depends(get_session)):
    _check_stage(stage, payload.match_type)
    removed = priority_queue.clear_forced(session, payload.match_type, payload.match_id)
    return {"removed": removed}


@router.post("/schedule/{stage}/force/reset")
def reset_forced(stage: Stage, session: Session = Depends(get_session)):
    return {"removed": priority_queue.reset_forced(session, stage)}


@router.post("/schedule/{stage}/auto")
def set_auto_schedule(stage: Stage, payload: AutoScheduleRequest, session: Session = Depends(get_session)):
    try:
        return court_scheduler.set_auto_schedule(session, stage, payload.enabled)
    except SchedulingError as e:
        raise _http_error(e)
