"""
API Routes for knockout brackets - series split, generation, publishing, propagation
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlmodel import Session

from courtside.database import get_session
from courtside.models.enums import Series
from courtside.services import knockout_seeding
from courtside.services.bracket_propagation import sync_bracket
from courtside.services.errors import SchedulingError

router = APIRouter()


class GenerateRequest(BaseModel):
    series: Series


class PublishRequest(BaseModel):
    series: Optional[Series] = None
    published: bool = True


class SecondChanceRequest(BaseModel):
    enabled: bool


def _http_error(e: SchedulingError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.to_detail())


@router.post("/knockout/{category_code}/series-split")
def compute_series_split(category_code: str, session: Session = Depends(get_session)):
    """Split the category's global ranking into Series A and Series B"""
    try:
        return knockout_seeding.compute_series_qualifiers(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/knockout/{category_code}/generate")
def generate_bracket(category_code: str, payload: GenerateRequest, session: Session = Depends(get_session)):
    try:
        result = knockout_seeding.generate_bracket(session, category_code, payload.series)
        result["sync"] = sync_bracket(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)
    return result


@router.post("/knockout/{category_code}/generate-full")
def generate_full_bracket(category_code: str, session: Session = Depends(get_session)):
    """Generate every series of the category, publish, and propagate"""
    try:
        return knockout_seeding.generate_full_bracket(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)


@router.post("/knockout/{category_code}/publish")
def publish_bracket(category_code: str, payload: PublishRequest, session: Session = Depends(get_session)):
    count = knockout_seeding.publish_bracket(session, category_code, payload.series, payload.published)
    return {"category_code": category_code, "published": payload.published, "matches": count}


@router.post("/knockout/{category_code}/second-chance")
def set_second_chance(category_code: str, payload: SecondChanceRequest, session: Session = Depends(get_session)):
    try:
        cfg = knockout_seeding.set_second_chance(session, category_code, payload.enabled)
    except SchedulingError as e:
        raise _http_error(e)
    return {"category_code": cfg.category_code, "second_chance_enabled": cfg.second_chance_enabled}


@router.post("/knockout/{category_code}/sync")
def sync(category_code: str, session: Session = Depends(get_session)):
    """Re-run winner propagation until the bracket is stable"""
    try:
        return sync_bracket(session, category_code)
    except SchedulingError as e:
        raise _http_error(e)


@router.delete("/knockout/{category_code}")
def clear_bracket(
    category_code: str,
    series: Optional[Series] = Query(default=None),
    session: Session = Depends(get_session),
):
    try:
        return knockout_seeding.clear_bracket(session, category_code, series)
    except SchedulingError as e:
        raise _http_error(e)
