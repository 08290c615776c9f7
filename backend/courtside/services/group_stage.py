"""
Group stage: round-robin fixtures, stage lock, and score entry.

Group scores are only editable while the category's group stage is unlocked;
knockout generation requires it locked.
"""
from datetime import datetime
from itertools import combinations
from typing import Dict, List

from sqlmodel import Session, select

from courtside.logging_config import get_logger
from courtside.models.court import CourtAssignment
from courtside.models.enums import MatchKind, MatchStatus
from courtside.models.group import Group, GroupStageLock, GroupTeam
from courtside.models.match import GameScore, Match
from courtside.models.schedule_control import BlockedMatch, ForcedPriority
from courtside.services.errors import NotFoundError, PreconditionError
from courtside.utils.scoring import (
    GameInput,
    ScoreValidationError,
    derive_winner_side,
    uses_best_of_3,
    validate_games,
)

logger = get_logger(__name__)


def is_group_stage_locked(session: Session, category_code: str) -> bool:
    lock = session.get(GroupStageLock, category_code)
    return bool(lock and lock.locked)


def set_group_stage_lock(session: Session, category_code: str, locked: bool) -> GroupStageLock:
    lock = session.get(GroupStageLock, category_code)
    if lock is None:
        lock = GroupStageLock(category_code=category_code)
    lock.locked = locked
    lock.locked_at = datetime.utcnow() if locked else None
    session.add(lock)
    session.commit()
    session.refresh(lock)
    logger.info("group stage lock changed", category=category_code, locked=locked)
    return lock


def generate_group_matches(session: Session, category_code: str) -> Dict:
    """Create every missing round-robin pairing for each group of the category."""
    groups = session.exec(
        select(Group).where(Group.category_code == category_code).order_by(Group.name)
    ).all()
    if not groups:
        raise PreconditionError(f"No groups found for category {category_code}.")

    created = 0
    skipped = 0
    for group in groups:
        team_ids = sorted(
            session.exec(select(GroupTeam.team_id).where(GroupTeam.group_id == group.id)).all()
        )
        existing = session.exec(select(Match).where(Match.group_id == group.id)).all()
        existing_pairs = {frozenset((m.home_team_id, m.away_team_id)) for m in existing}
        for home_id, away_id in combinations(team_ids, 2):
            if frozenset((home_id, away_id)) in existing_pairs:
                skipped += 1
                continue
            session.add(
                Match(
                    category_code=category_code,
                    group_id=group.id,
                    home_team_id=home_id,
                    away_team_id=away_id,
                )
            )
            created += 1
    session.commit()
    logger.info("group fixtures generated", category=category_code, created=created, skipped=skipped)
    return {"category_code": category_code, "created": created, "skipped": skipped}


def clear_group_matches(session: Session, category_code: str) -> Dict:
    if is_group_stage_locked(session, category_code):
        raise PreconditionError("Group stage is locked. Unlock it before clearing fixtures.")
    matches = session.exec(select(Match).where(Match.category_code == category_code)).all()
    match_ids = [m.id for m in matches]
    if match_ids:
        # Children first: FK order
        for assignment in session.exec(
            select(CourtAssignment).where(CourtAssignment.group_match_id.in_(match_ids))
        ).all():
            session.delete(assignment)
        for model in (ForcedPriority, BlockedMatch):
            for row in session.exec(
                select(model).where(model.match_type == MatchKind.GROUP.value, model.match_id.in_(match_ids))
            ).all():
                session.delete(row)
        session.flush()
        for match in matches:
            session.delete(match)
    session.commit()
    logger.info("group fixtures cleared", category=category_code, deleted=len(match_ids))
    return {"category_code": category_code, "deleted": len(match_ids)}


def _load_editable_match(session: Session, match_id: str) -> Match:
    match = session.get(Match, match_id)
    if match is None:
        raise NotFoundError("Match not found.")
    if is_group_stage_locked(session, match.category_code):
        raise PreconditionError("Group stage is locked. Unlock to edit scores.")
    return match


def record_group_score(session: Session, match_id: str, games: List[GameInput]) -> Match:
    """Store the game scores, derive the winner, and mark the match COMPLETED.

    A 0-0 first game is treated as an undo.
    """
    match = _load_editable_match(session, match_id)
    if match.home_team_id is None or match.away_team_id is None:
        raise PreconditionError("Both teams must be set before scoring.")
    if games and games[0].is_blank:
        return undo_group_score(session, match_id)

    best_of_3 = uses_best_of_3()
    try:
        accepted = validate_games(games, best_of_3)
    except ScoreValidationError as exc:
        raise PreconditionError(str(exc), code="INVALID_SCORE") from exc

    side = derive_winner_side(accepted, best_of_3)
    match.games.clear()
    session.flush()
    for game_no, game in enumerate(accepted, start=1):
        match.games.append(
            GameScore(game_no=game_no, home_points=game.home_points, away_points=game.away_points)
        )
    match.winner_team_id = match.home_team_id if side == "home" else match.away_team_id
    match.status = MatchStatus.COMPLETED.value
    match.completed_at = datetime.utcnow()
    session.add(match)
    session.commit()
    session.refresh(match)
    logger.info("group score recorded", match_id=match.id, winner=match.winner_team_id)
    return match


def undo_group_score(session: Session, match_id: str) -> Match:
    match = _load_editable_match(session, match_id)
    match.games.clear()
    match.winner_team_id = None
    match.status = MatchStatus.SCHEDULED.value
    match.completed_at = None
    session.add(match)
    session.commit()
    session.refresh(match)
    logger.info("group score undone", match_id=match.id)
    return match
