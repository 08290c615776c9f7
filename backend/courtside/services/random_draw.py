"""
Persisted tie-break draws.

A draw is identified by a deterministic key built from the tie scenario and the
sorted candidate ids. The first resolver inserts the random outcome; every
later resolver (including a concurrent one that loses the insert race) reads
the stored row back, so a tie is never re-rolled.

Resolvers commit their insert, so call them before staging other changes on
the same session.
"""
import random
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from courtside.logging_config import get_logger
from courtside.models.random_draw import DrawOutcome, RandomDrawRecord

logger = get_logger(__name__)

DRAW_STANDINGS = "STANDINGS"
DRAW_GLOBAL_RANKING = "GLOBAL_RANKING"
DRAW_PAIRING = "PAIRING"


def build_draw_key(prefix: str, team_ids: Iterable[int]) -> str:
    return f"{prefix}:{','.join(str(t) for t in sorted(team_ids))}"


def get_draw(session: Session, draw_key: str) -> Optional[RandomDrawRecord]:
    return session.exec(select(RandomDrawRecord).where(RandomDrawRecord.draw_key == draw_key)).first()


def _stored_order(record: RandomDrawRecord, team_ids: List[int]) -> List[int]:
    outcome = record.outcome()
    if outcome is None or sorted(outcome.order) != sorted(team_ids):
        logger.warning("stored draw unusable, falling back to id order", draw_key=record.draw_key)
        return sorted(team_ids)
    return list(outcome.order)


def _insert_or_fetch(session: Session, record: RandomDrawRecord) -> RandomDrawRecord:
    session.add(record)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        existing = get_draw(session, record.draw_key)
        if existing is None:
            raise
        logger.info("draw insert lost race, using stored result", draw_key=record.draw_key)
        return existing
    session.refresh(record)
    logger.info("draw recorded", draw_key=record.draw_key, draw_type=record.draw_type)
    return record


def resolve_draw_order(
    session: Session,
    draw_key: str,
    team_ids: List[int],
    draw_type: str,
    category_code: Optional[str] = None,
    series: Optional[str] = None,
    round_no: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> List[int]:
    """Return the persisted random order of team_ids for draw_key, drawing it on first use."""
    existing = get_draw(session, draw_key)
    if existing is not None:
        return _stored_order(existing, team_ids)

    shuffled = sorted(team_ids)
    (rng or random).shuffle(shuffled)
    record = RandomDrawRecord(
        draw_key=draw_key,
        draw_type=draw_type,
        category_code=category_code,
        series=series,
        round_no=round_no,
        payload=DrawOutcome(order=shuffled).model_dump(),
    )
    return _stored_order(_insert_or_fetch(session, record), team_ids)


def resolve_draw_choice(
    session: Session,
    draw_key: str,
    candidate_ids: List[int],
    category_code: Optional[str] = None,
    series: Optional[str] = None,
    round_no: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> int:
    """Pick one of candidate_ids, persisted under draw_key."""
    existing = get_draw(session, draw_key)
    if existing is None:
        ordered = sorted(candidate_ids)
        chosen = (rng or random).choice(ordered)
        record = RandomDrawRecord(
            draw_key=draw_key,
            draw_type=DRAW_PAIRING,
            category_code=category_code,
            series=series,
            round_no=round_no,
            payload=DrawOutcome(order=ordered, chosen_team_id=chosen).model_dump(),
        )
        existing = _insert_or_fetch(session, record)

    outcome = existing.outcome()
    if outcome is None or outcome.chosen_team_id not in candidate_ids:
        logger.warning("stored pairing draw unusable, falling back to lowest id", draw_key=draw_key)
        return min(candidate_ids)
    return outcome.chosen_team_id
