"""
API Routes for score entry

Every score write reports whether it moved the court board: the schedule
signature is taken before and after the write, with auto-fill applied in
between.
"""

from typing import List

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlmodel import Session

from courtside.database import get_session
from courtside.models.enums import Stage
from courtside.services import court_scheduler
from courtside.services.bracket_propagation import record_knockout_score, undo_knockout_score
from courtside.services.errors import SchedulingError
from courtside.services.group_stage import record_group_score, undo_group_score
from courtside.services.knockout_seeding import set_final_best_of_3
from courtside.services.schedule_signature import ScheduleSignature, change_kind, compute_signature
from courtside.utils.scoring import GameInput

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class GamePayload(BaseModel):
    home_points: int = Field(ge=0)
    away_points: int = Field(ge=0)


class ScoreRequest(BaseModel):
    games: List[GamePayload]


class BestOf3Request(BaseModel):
    enabled: bool


def _http_error(e: SchedulingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


def _games(payload: ScoreRequest) -> List[GameInput]:
    return [GameInput(home_points=g.home_points, away_points=g.away_points) for g in payload.games]


def _score_response(session: Session, match, stage: Stage, before: ScheduleSignature) -> dict:
    # settle the board (reconcile + auto-fill) before taking the second signature
    court_scheduler.get_schedule_state(session, stage)
    after = compute_signature(session, stage)
    return {
        "match_id": match.id,
        "status": match.status,
        "winner_team_id": match.winner_team_id,
        "games": [
            {"game_no": g.game_no, "home_points": g.home_points, "away_points": g.away_points} for g in match.games
        ],
        "schedule_change": change_kind(before, after),
    }


# ============================================================================
# Group matches
# ============================================================================


@router.post("/matches/group/{match_id}/score")
def score_group_match(match_id: str, payload: ScoreRequest, session: Session = Depends(get_session)):
    """Record a group result (a 0-0 first game undoes it)"""
    before = compute_signature(session, Stage.GROUP)
    try:
        match = record_group_score(session, match_id, _games(payload))
        return _score_response(session, match, Stage.GROUP, before)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/matches/group/{match_id}/undo")
def undo_group_match(match_id: str, session: Session = Depends(get_session)):
    before = compute_signature(session, Stage.GROUP)
    try:
        match = undo_group_score(session, match_id)
        return _score_response(session, match, Stage.GROUP, before)
    except SchedulingError as e:
        raise _http_error(e)


# ============================================================================
# Knockout matches
# ============================================================================


@router.post("/matches/knockout/{match_id}/score")
def score_knockout_match(match_id: str, payload: ScoreRequest, session: Session = Depends(get_session)):
    """Record a knockout result and propagate it through the bracket"""
    before = compute_signature(session, Stage.KNOCKOUT)
    try:
        match = record_knockout_score(session, match_id, _games(payload))
        return _score_response(session, match, Stage.KNOCKOUT, before)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/matches/knockout/{match_id}/undo")
def undo_knockout_match(match_id: str, session: Session = Depends(get_session)):
    before = compute_signature(session, Stage.KNOCKOUT)
    try:
        match = undo_knockout_score(session, match_id)
        return _score_response(session, match, Stage.KNOCKOUT, before)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/matches/knockout/{match_id}/best-of-3")
def set_best_of_3(match_id: str, payload: BestOf3Request, session: Session = Depends(get_session)):
    """Toggle best-of-3 scoring for a final"""
    try:
        match = set_final_best_of_3(session, match_id, payload.enabled)
    except SchedulingError as e:
        raise _http_error(e)
    return {"match_id": match.id, "is_best_of_3": match.is_best_of_3}
