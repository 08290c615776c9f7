"""
Queue ordering and the upcoming preview.

Sort order: forced rank (unforced last), GROUP before KNOCKOUT, rest score
desc, then for knockout matches earlier round, series B before A and match
number, then match id.
"""
import math
from datetime import datetime
from typing import List, Optional, Set

from sqlmodel import Session, select

from courtside import config
from courtside.logging_config import get_logger
from courtside.models.enums import MatchKind, Stage, kinds_for_stage, stage_for_kind
from courtside.models.schedule_control import ForcedPriority
from courtside.services.action_log import record_action
from courtside.services.eligibility import Candidate, StageSnapshot, eligible_candidates
from courtside.services.errors import NotFoundError, PreconditionError
from courtside.services.match_pool import SERIES_PRIORITY, build_match_key, get_pool_match

logger = get_logger("courtside.scheduling.queue")

_KIND_ORDER = {MatchKind.GROUP: 0, MatchKind.KNOCKOUT: 1}


def queue_sort_key(candidate: Candidate):
    match = candidate.match
    forced = candidate.forced_rank if candidate.forced_rank is not None else math.inf
    if match.kind == MatchKind.KNOCKOUT:
        bracket = (match.round_no or 0, SERIES_PRIORITY.get(match.series, 2), match.match_no or 0)
    elif match.kind == MatchKind.GROUP:
        bracket = (0, 0, 0)
    else:
        raise ValueError(f"Unknown match kind: {match.kind}")
    return (forced, _KIND_ORDER[match.kind], -candidate.rest_score, bracket, match.match_id)


def sort_queue(candidates: List[Candidate]) -> List[Candidate]:
    return sorted(candidates, key=queue_sort_key)


def eligible_queue(snapshot: StageSnapshot, in_play: Optional[Set[int]] = None) -> List[Candidate]:
    ordered = sort_queue(eligible_candidates(snapshot, in_play))
    for candidate in ordered:
        logger.debug(
            "queue candidate",
            key=candidate.key,
            rest=candidate.rest_score,
            forced=candidate.forced_rank,
            assignable=candidate.assignable,
        )
    return ordered


def build_upcoming(ordered: List[Candidate], limit: int = config.UPCOMING_LIMIT) -> List[Candidate]:
    """Forced-assignable, forced-waiting, then the same for unforced; no shared players."""
    picked: List[Candidate] = []
    picked_keys: Set[str] = set()
    picked_players: Set[int] = set()
    passes = (
        lambda c: c.is_forced and c.assignable,
        lambda c: c.is_forced and not c.assignable,
        lambda c: not c.is_forced and c.assignable,
        lambda c: not c.is_forced and not c.assignable,
    )
    for wanted in passes:
        for candidate in ordered:
            if len(picked) >= limit:
                return picked
            if candidate.key in picked_keys or not wanted(candidate):
                continue
            if candidate.match.player_ids & picked_players:
                continue
            picked.append(candidate)
            picked_keys.add(candidate.key)
            picked_players |= candidate.match.player_ids
    return picked


def _get_forced(session: Session, kind: MatchKind, match_id: str) -> Optional[ForcedPriority]:
    return session.exec(
        select(ForcedPriority).where(ForcedPriority.match_type == kind.value, ForcedPriority.match_id == match_id)
    ).first()


def force_match(session: Session, kind: MatchKind, match_id: str) -> ForcedPriority:
    """Put a match at the top of the queue; forcing again moves it back to rank 1."""
    kind = MatchKind(kind)
    match = get_pool_match(session, kind, match_id)
    if match is None:
        raise NotFoundError("Match not found.")
    if not match.is_list_eligible:
        raise PreconditionError("Match is not eligible for scheduling.", code="NOT_ELIGIBLE")

    forced = _get_forced(session, kind, match_id)
    if forced is None:
        forced = ForcedPriority(match_type=kind.value, match_id=match_id)
    forced.created_at = datetime.utcnow()
    session.add(forced)
    record_action(session, stage_for_kind(kind).value, "force_match", match_key=build_match_key(kind, match_id))
    session.commit()
    session.refresh(forced)
    return forced


def clear_forced(session: Session, kind: MatchKind, match_id: str) -> bool:
    kind = MatchKind(kind)
    forced = _get_forced(session, kind, match_id)
    if forced is None:
        return False
    session.delete(forced)
    record_action(session, stage_for_kind(kind).value, "clear_forced", match_key=build_match_key(kind, match_id))
    session.commit()
    return True


def reset_forced(session: Session, stage: Stage) -> int:
    stage = Stage(stage)
    rows = session.exec(
        select(ForcedPriority).where(ForcedPriority.match_type.in_([k.value for k in kinds_for_stage(stage)]))
    ).all()
    for row in rows:
        session.delete(row)
    record_action(session, stage.value, "reset_forced", removed=len(rows))
    session.commit()
    return len(rows)


def prune_forced(session: Session, snapshot: StageSnapshot, eligible: List[Candidate]) -> List[str]:
    """Drop forced entries whose match is no longer eligible. Caller commits."""
    eligible_keys = {c.key for c in eligible}
    stale = [key for key in snapshot.forced_ranks if key not in eligible_keys]
    if not stale:
        return []
    rows = session.exec(
        select(ForcedPriority).where(
            ForcedPriority.match_type.in_([k.value for k in kinds_for_stage(snapshot.stage)])
        )
    ).all()
    for row in rows:
        if build_match_key(MatchKind(row.match_type), row.match_id) in stale:
            session.delete(row)
    for key in stale:
        snapshot.forced_ranks.pop(key, None)
    # re-rank the survivors
    survivors = sorted(snapshot.forced_ranks.items(), key=lambda item: item[1])
    snapshot.forced_ranks.clear()
    snapshot.forced_ranks.update({key: idx for idx, (key, _) in enumerate(survivors, start=1)})
    logger.info("pruned forced priorities", stage=snapshot.stage.value, keys=stale)
    return stale
