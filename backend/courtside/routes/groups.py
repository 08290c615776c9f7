"""
API Routes for the group stage - fixtures, stage lock, standings
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import Session

from courtside.database import get_session
from courtside.services import group_stage
from courtside.services.errors import SchedulingError
from courtside.services.standings import compute_group_standings

router = APIRouter()


def _http_error(e: SchedulingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/groups/{category_code}/generate")
def generate_group_matches(category_code: str, session: Session = Depends(get_session)):
    """Create the missing round-robin fixtures of every group in the category"""
    try:
        return group_stage.generate_group_matches(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/groups/{category_code}/lock")
def lock_group_stage(category_code: str, session: Session = Depends(get_session)):
    lock = group_stage.set_group_stage_lock(session, category_code, True)
    return {"category_code": lock.category_code, "locked": lock.locked}


@router.post("/groups/{category_code}/unlock")
def unlock_group_stage(category_code: str, session: Session = Depends(get_session)):
    lock = group_stage.set_group_stage_lock(session, category_code, False)
    return {"category_code": lock.category_code, "locked": lock.locked}


@router.delete("/groups/{category_code}/matches")
def clear_group_matches(category_code: str, session: Session = Depends(get_session)):
    try:
        return group_stage.clear_group_matches(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)


@router.get("/groups/{group_id}/standings")
def get_group_standings(group_id: int, session: Session = Depends(get_session)):
    try:
        standings = compute_group_standings(session, group_id)
    except SchedulingError as e:
        raise _http_error(e)
    return {
        "group_id": standings.group_id,
        "group_name": standings.group_name,
        "category_code": standings.category_code,
        "rows": [
            {
                "rank": rank,
                "team_id": row.team_id,
                "team_name": row.team_name,
                "played": row.played,
                "wins": row.wins,
                "losses": row.losses,
                "points_for": row.points_for,
                "points_against": row.points_against,
                "point_diff": row.point_diff,
                "avg_points_against": round(row.avg_points_against, 4),
            }
            for rank, row in enumerate(standings.rows, start=1)
        ],
    }
