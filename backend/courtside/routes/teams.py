"""
Team API Routes
Roster CRUD lives upstream; the engine only exposes the knock-out seed flag.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from courtside.database import get_session
from courtside.services import knockout_seeding
from courtside.services.errors import SchedulingError

router = APIRouter()


class KnockoutSeedRequest(BaseModel):
    enabled: bool


class TeamResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    category_code: str
    name: str
    is_knockout_seed: bool


@router.post("/teams/{team_id}/knockout-seed", response_model=TeamResponse)
def set_knockout_seed(team_id: int, payload: KnockoutSeedRequest, session: Session = Depends(get_session)):
    """Toggle whether the team is seeded first in Series B"""
    try:
        return knockout_seeding.set_knockout_seed(session, team_id, payload.enabled)
    except SchedulingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
