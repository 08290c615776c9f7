"""
Court assignment scheduler.

No in-process locking: the partial unique indexes on CourtAssignment are the
only arbiter between concurrent writers. Manual operations surface a lost race
as AssignmentConflictError; the auto-fill loop rolls back and re-reads state on
its next pass.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from courtside import config
from courtside.logging_config import get_logger
from courtside.models.court import CourtAssignment, CourtState
from courtside.models.enums import AssignmentStatus, MatchKind, Stage, kinds_for_stage, stage_for_kind
from courtside.models.schedule_control import BlockedMatch, LastBatch, ScheduleConfig
from courtside.services.action_log import record_action
from courtside.services.eligibility import (
    Candidate,
    StageSnapshot,
    assignment_match_key,
    load_snapshot,
)
from courtside.services.errors import AssignmentConflictError, NotFoundError, PreconditionError
from courtside.services.match_pool import PoolMatch, build_match_key, get_pool_match
from courtside.services.priority_queue import build_upcoming, eligible_queue, prune_forced

logger = get_logger("courtside.scheduling.courts")

STOP_NO_FREE_COURTS = "no_free_courts"
STOP_NO_ELIGIBLE = "no_eligible"
STOP_NOTHING_ASSIGNABLE = "nothing_assignable"
STOP_PASS_LIMIT = "pass_limit"

_STOP_MESSAGES = {
    STOP_NO_FREE_COURTS: "No free courts.",
    STOP_NO_ELIGIBLE: "No eligible matches.",
    STOP_NOTHING_ASSIGNABLE: "Eligible matches remain but all have players on court.",
    STOP_PASS_LIMIT: "Fill loop reached its pass limit.",
}


@dataclass
class ReconcileReport:
    ghosts_cleared: List[int] = field(default_factory=list)
    invalid_cleared: List[int] = field(default_factory=list)
    forced_pruned: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.ghosts_cleared or self.invalid_cleared or self.forced_pruned)


@dataclass
class AutoFillResult:
    stage: str
    assigned: List[Dict] = field(default_factory=list)
    passes: int = 0
    conflicts: int = 0
    stop_reason: Optional[str] = None

    @property
    def message(self) -> str:
        return _STOP_MESSAGES.get(self.stop_reason, "")

    def to_dict(self) -> Dict:
        return {
            "stage": self.stage,
            "assigned": self.assigned,
            "passes": self.passes,
            "conflicts": self.conflicts,
            "stop_reason": self.stop_reason,
            "message": self.message,
        }


@dataclass
class BackToQueueResult:
    court_id: str
    ok: bool = True
    released_match_key: Optional[str] = None
    replacement_match_key: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "court_id": self.court_id,
            "ok": self.ok,
            "released_match_key": self.released_match_key,
            "replacement_match_key": self.replacement_match_key,
            "message": self.message,
        }


def _validate_court(court_id: str) -> str:
    if court_id not in config.COURT_IDS:
        raise NotFoundError(f"Unknown court {court_id}.")
    return court_id


def _validate_kind_for_stage(stage: Stage, kind: MatchKind) -> None:
    if MatchKind(kind) not in kinds_for_stage(stage):
        raise PreconditionError(f"{kind.value} matches are not scheduled in the {stage.value} stage.")


def ensure_setup(session: Session, stage: Stage) -> ScheduleConfig:
    """Create the stage config row and one court state row per configured court."""
    stage = Stage(stage)
    changed = False
    cfg = session.exec(select(ScheduleConfig).where(ScheduleConfig.stage == stage.value)).first()
    if cfg is None:
        cfg = ScheduleConfig(stage=stage.value)
        session.add(cfg)
        changed = True
    existing = set(session.exec(select(CourtState.court_id).where(CourtState.stage == stage.value)).all())
    for court_id in config.COURT_IDS:
        if court_id not in existing:
            session.add(CourtState(court_id=court_id, stage=stage.value))
            changed = True
    if changed:
        try:
            session.commit()
        except IntegrityError:
            # another request created the rows first
            session.rollback()
        cfg = session.exec(select(ScheduleConfig).where(ScheduleConfig.stage == stage.value)).one()
    return cfg


def get_config(session: Session, stage: Stage) -> ScheduleConfig:
    return ensure_setup(session, stage)


def _finish(assignment: CourtAssignment, status: AssignmentStatus) -> None:
    assignment.status = status.value
    assignment.cleared_at = datetime.utcnow()


def clear_ghost_assignments(session: Session, snapshot: StageSnapshot) -> List[int]:
    """Move ACTIVE rows that hold no match to CLEARED. Caller commits."""
    cleared = []
    for assignment in list(snapshot.active):
        if assignment.is_empty or assignment.match_type is None:
            _finish(assignment, AssignmentStatus.CLEARED)
            session.add(assignment)
            snapshot.active.remove(assignment)
            cleared.append(assignment.id)
    return cleared


def clear_invalid_assignments(session: Session, snapshot: StageSnapshot) -> List[int]:
    """Move ACTIVE rows whose match is finished, no longer list-eligible, or blocked to CLEARED."""
    blocked = snapshot.blocked_keys
    cleared = []
    for assignment in list(snapshot.active):
        key = assignment_match_key(assignment)
        if key is None:
            continue
        match = snapshot.pool_by_key.get(key)
        if match is None or match.is_completed or not match.is_list_eligible or key in blocked:
            _finish(assignment, AssignmentStatus.CLEARED)
            session.add(assignment)
            snapshot.active.remove(assignment)
            cleared.append(assignment.id)
    return cleared


def reconcile(session: Session, stage: Stage) -> Tuple[StageSnapshot, ReconcileReport]:
    """Load a snapshot and bring stored state back in line with it before anyone reads it."""
    snapshot = load_snapshot(session, stage)
    report = ReconcileReport(
        ghosts_cleared=clear_ghost_assignments(session, snapshot),
        invalid_cleared=clear_invalid_assignments(session, snapshot),
    )
    report.forced_pruned = prune_forced(session, snapshot, eligible_queue(snapshot))
    if report.changed:
        session.commit()
        logger.info(
            "reconciled stage",
            stage=snapshot.stage.value,
            ghosts=len(report.ghosts_cleared),
            invalid=len(report.invalid_cleared),
            pruned=len(report.forced_pruned),
        )
    return snapshot, report


def update_last_batch(session: Session, stage: Stage, match_key: str, pool_by_key: Dict[str, PoolMatch]) -> None:
    cfg = get_config(session, stage)
    current = cfg.last_batch
    keys = [match_key] + [k for k in current.match_keys if k != match_key]
    keys = keys[: config.LAST_BATCH_SIZE]
    players: Set[int] = set()
    for key in keys:
        match = pool_by_key.get(key)
        if match is not None:
            players |= match.player_ids
    cfg.set_last_batch(LastBatch(match_keys=keys, player_ids=sorted(players), updated_at=datetime.utcnow()))
    session.add(cfg)


def _new_assignment(stage: Stage, court_id: str, match: PoolMatch) -> CourtAssignment:
    if match.kind == MatchKind.GROUP:
        ids = {"group_match_id": match.match_id}
    elif match.kind == MatchKind.KNOCKOUT:
        ids = {"knockout_match_id": match.match_id}
    else:
        raise ValueError(f"Unknown match kind: {match.kind}")
    return CourtAssignment(court_id=court_id, stage=stage.value, match_type=match.kind.value, **ids)


def _active_for_match(session: Session, stage: Stage, kind: MatchKind, match_id: str) -> Optional[CourtAssignment]:
    query = select(CourtAssignment).where(
        CourtAssignment.stage == stage.value,
        CourtAssignment.status == AssignmentStatus.ACTIVE.value,
    )
    if kind == MatchKind.GROUP:
        query = query.where(CourtAssignment.group_match_id == match_id)
    elif kind == MatchKind.KNOCKOUT:
        query = query.where(CourtAssignment.knockout_match_id == match_id)
    else:
        raise ValueError(f"Unknown match kind: {kind}")
    return session.exec(query).first()


def _active_for_court(session: Session, stage: Stage, court_id: str) -> Optional[CourtAssignment]:
    return session.exec(
        select(CourtAssignment).where(
            CourtAssignment.stage == stage.value,
            CourtAssignment.court_id == court_id,
            CourtAssignment.status == AssignmentStatus.ACTIVE.value,
        )
    ).first()


def is_auto_enabled(session: Session, stage: Stage) -> bool:
    return get_config(session, stage).auto_schedule_enabled


def auto_fill(session: Session, stage: Stage) -> AutoFillResult:
    """
    Fill free unlocked courts one match per pass, bounded by AUTO_FILL_MAX_PASSES.

    Each pass re-reads state, so a pass that loses a unique-index race simply
    retries against fresh data on the next one.
    """
    stage = Stage(stage)
    ensure_setup(session, stage)
    result = AutoFillResult(stage=stage.value)
    log = logger.bind(stage=stage.value)

    for pass_no in range(1, config.AUTO_FILL_MAX_PASSES + 1):
        result.passes = pass_no
        snapshot, _ = reconcile(session, stage)
        free_courts = snapshot.free_courts()
        if not free_courts:
            result.stop_reason = STOP_NO_FREE_COURTS
            break
        queue = eligible_queue(snapshot)
        if not queue:
            result.stop_reason = STOP_NO_ELIGIBLE
            break
        pick = next((c for c in queue if c.assignable), None)
        if pick is None:
            result.stop_reason = STOP_NOTHING_ASSIGNABLE
            break

        court_id = free_courts[0]
        assignment = _new_assignment(stage, court_id, pick.match)
        session.add(assignment)
        try:
            session.flush()
        except IntegrityError:
            session.rollback()
            result.conflicts += 1
            log.warning("auto fill lost assignment race", pass_no=pass_no, court=court_id, key=pick.key)
            continue
        update_last_batch(session, stage, pick.key, snapshot.pool_by_key)
        record_action(session, stage.value, "auto_assign", court_id=court_id, match_key=pick.key)
        session.commit()
        result.assigned.append({"court_id": court_id, "match_key": pick.key, "rest_score": pick.rest_score})
        log.debug("auto fill pass", pass_no=pass_no, court=court_id, key=pick.key, rest=pick.rest_score)
    else:
        result.stop_reason = STOP_PASS_LIMIT

    log.info(
        "auto fill finished",
        assigned=len(result.assigned),
        passes=result.passes,
        conflicts=result.conflicts,
        stop=result.stop_reason,
    )
    return result


def fill_if_enabled(session: Session, stage: Stage) -> Optional[AutoFillResult]:
    if not is_auto_enabled(session, stage):
        return None
    return auto_fill(session, stage)


def assign_match(
    session: Session, stage: Stage, court_id: str, kind: MatchKind, match_id: str
) -> CourtAssignment:
    """Manually put a match on a free, unlocked court."""
    stage = Stage(stage)
    kind = MatchKind(kind)
    _validate_court(court_id)
    _validate_kind_for_stage(stage, kind)
    ensure_setup(session, stage)
    snapshot, _ = reconcile(session, stage)

    if court_id in snapshot.locked_courts:
        raise PreconditionError("Court is locked.", code="COURT_LOCKED")
    if court_id in snapshot.occupied_courts:
        raise PreconditionError("Court already in use.", code="COURT_OCCUPIED")

    key = build_match_key(kind, match_id)
    match = snapshot.pool_by_key.get(key)
    if match is None:
        raise NotFoundError("Match not found.")
    if key in snapshot.blocked_keys:
        raise PreconditionError("Match is blocked.", code="MATCH_BLOCKED")
    if key in snapshot.assigned_keys:
        raise AssignmentConflictError("Match already assigned.")
    if not match.is_list_eligible:
        raise PreconditionError("Match not eligible.", code="NOT_ELIGIBLE")
    if match.player_ids & snapshot.in_play():
        raise PreconditionError("Match has players already on court.", code="PLAYERS_IN_PLAY")

    # race check right before the insert
    if _active_for_match(session, stage, kind, match_id) is not None:
        raise AssignmentConflictError("Match already assigned.")

    assignment = _new_assignment(stage, court_id, match)
    session.add(assignment)
    try:
        session.flush()
    except IntegrityError as exc:
        session.rollback()
        if _active_for_match(session, stage, kind, match_id) is not None:
            raise AssignmentConflictError("Match already assigned.") from exc
        raise AssignmentConflictError("Court already in use.", code="COURT_OCCUPIED") from exc

    update_last_batch(session, stage, key, snapshot.pool_by_key)
    record_action(session, stage.value, "assign", court_id=court_id, match_key=key)
    session.commit()
    session.refresh(assignment)
    return assignment


def back_to_queue(session: Session, stage: Stage, court_id: str) -> BackToQueueResult:
    """
    Release a court's match back to the queue.

    With auto-schedule off the court is left empty. With it on, the next
    assignable match (judged against the in-play set minus the released
    players) takes the court in the same commit.
    """
    stage = Stage(stage)
    _validate_court(court_id)
    cfg = ensure_setup(session, stage)
    result = BackToQueueResult(court_id=court_id)

    current = _active_for_court(session, stage, court_id)
    if current is None:
        result.message = "Court is already empty."
        return result
    result.released_match_key = assignment_match_key(current)

    if not cfg.auto_schedule_enabled:
        _finish(current, AssignmentStatus.CANCELED)
        session.add(current)
        record_action(session, stage.value, "back_to_queue", court_id=court_id, match_key=result.released_match_key)
        session.commit()
        return result

    snapshot = load_snapshot(session, stage)
    released = snapshot.pool_by_key.get(result.released_match_key) if result.released_match_key else None
    in_play = snapshot.in_play()
    if released is not None:
        in_play -= released.player_ids
    # the released match is still ACTIVE in the snapshot, so it is not offered back
    queue = eligible_queue(snapshot, in_play=in_play)
    nxt: Optional[Candidate] = next((c for c in queue if c.assignable), None)

    _finish(current, AssignmentStatus.CANCELED)
    session.add(current)
    if nxt is None:
        record_action(session, stage.value, "back_to_queue_empty", court_id=court_id)
        session.commit()
        result.message = "No assignable match available; court is now empty."
        return result

    session.flush()
    session.add(_new_assignment(stage, court_id, nxt.match))
    try:
        session.flush()
    except IntegrityError:
        session.rollback()
        # the swap is all-or-nothing; release alone and let the caller retry
        current = _active_for_court(session, stage, court_id)
        if current is not None:
            _finish(current, AssignmentStatus.CANCELED)
            session.add(current)
        record_action(session, stage.value, "back_to_queue_empty", court_id=court_id)
        session.commit()
        result.message = "Next match was taken concurrently; court is now empty."
        return result

    update_last_batch(session, stage, nxt.key, snapshot.pool_by_key)
    record_action(session, stage.value, "back_to_queue_swap", court_id=court_id, match_key=nxt.key)
    session.commit()
    result.replacement_match_key = nxt.key
    return result


def set_court_lock(session: Session, stage: Stage, court_id: str, locked: bool) -> CourtState:
    stage = Stage(stage)
    _validate_court(court_id)
    ensure_setup(session, stage)
    state = session.exec(
        select(CourtState).where(CourtState.stage == stage.value, CourtState.court_id == court_id)
    ).one()
    state.is_locked = locked
    state.lock_note = "Manual lock" if locked else None
    state.updated_at = datetime.utcnow()
    session.add(state)
    record_action(session, stage.value, "court_lock" if locked else "court_unlock", court_id=court_id)
    session.commit()
    session.refresh(state)
    return state


def _get_blocked(session: Session, kind: MatchKind, match_id: str) -> Optional[BlockedMatch]:
    return session.exec(
        select(BlockedMatch).where(BlockedMatch.match_type == kind.value, BlockedMatch.match_id == match_id)
    ).first()


def block_match(session: Session, kind: MatchKind, match_id: str, reason: Optional[str] = None) -> Dict:
    """Block a match, cancel whatever court holds it, and refill if auto-schedule is on."""
    kind = MatchKind(kind)
    stage = stage_for_kind(kind)
    if get_pool_match(session, kind, match_id) is None:
        raise NotFoundError("Match not found.")

    blocked = _get_blocked(session, kind, match_id)
    if blocked is None:
        blocked = BlockedMatch(match_type=kind.value, match_id=match_id)
    if reason:
        blocked.reason = reason
    session.add(blocked)

    canceled_courts = []
    holder = _active_for_match(session, stage, kind, match_id)
    if holder is not None:
        _finish(holder, AssignmentStatus.CANCELED)
        session.add(holder)
        canceled_courts.append(holder.court_id)
    record_action(
        session, stage.value, "block_match", match_key=build_match_key(kind, match_id), courts=canceled_courts
    )
    session.commit()

    fill = fill_if_enabled(session, stage)
    return {
        "match_key": build_match_key(kind, match_id),
        "canceled_courts": canceled_courts,
        "auto_fill": fill.to_dict() if fill else None,
    }


def unblock_match(session: Session, kind: MatchKind, match_id: str) -> bool:
    kind = MatchKind(kind)
    blocked = _get_blocked(session, kind, match_id)
    if blocked is None:
        return False
    session.delete(blocked)
    record_action(session, stage_for_kind(kind).value, "unblock_match", match_key=build_match_key(kind, match_id))
    session.commit()
    return True


def mark_completed(session: Session, stage: Stage, court_id: str) -> Dict:
    """Clear a court whose match has a final result, then run the fill loop."""
    stage = Stage(stage)
    _validate_court(court_id)
    ensure_setup(session, stage)
    current = _active_for_court(session, stage, court_id)
    if current is None:
        return {"court_id": court_id, "cleared": False, "message": "Court is already empty.", "auto_fill": None}

    key = assignment_match_key(current)
    if key is not None:
        kind, match_id = MatchKind(current.match_type), current.match_id
        match = get_pool_match(session, kind, match_id)
        if match is None or not match.is_completed:
            raise PreconditionError("Match not completed yet.", code="MATCH_NOT_COMPLETED")

    _finish(current, AssignmentStatus.CLEARED)
    session.add(current)
    record_action(session, stage.value, "mark_completed", court_id=court_id, match_key=key)
    session.commit()
    fill = fill_if_enabled(session, stage)
    return {"court_id": court_id, "cleared": True, "message": None, "auto_fill": fill.to_dict() if fill else None}


def set_auto_schedule(session: Session, stage: Stage, enabled: bool) -> Dict:
    stage = Stage(stage)
    cfg = ensure_setup(session, stage)
    cfg.auto_schedule_enabled = enabled
    cfg.updated_at = datetime.utcnow()
    session.add(cfg)
    record_action(session, stage.value, "auto_schedule", enabled=enabled)
    session.commit()
    fill = auto_fill(session, stage) if enabled else None
    return {"stage": stage.value, "enabled": enabled, "auto_fill": fill.to_dict() if fill else None}


def _match_view(match: PoolMatch) -> Dict:
    return {
        "key": match.key,
        "match_type": match.kind.value,
        "match_id": match.match_id,
        "category_code": match.category_code,
        "home_team_id": match.home_team_id,
        "away_team_id": match.away_team_id,
        "player_ids": sorted(match.player_ids),
        "round_no": match.round_no,
        "series": match.series,
        "match_no": match.match_no,
    }


def candidate_view(candidate: Candidate) -> Dict:
    view = _match_view(candidate.match)
    view.update(
        rest_score=candidate.rest_score,
        forced_rank=candidate.forced_rank,
        assignable=candidate.assignable,
    )
    return view


def get_schedule_state(session: Session, stage: Stage, apply_auto: bool = True) -> Dict:
    """
    Queryable schedule state for one stage.

    Reconciles stored assignments first and, when auto-schedule is on, runs
    the fill loop so the returned state is already settled.
    """
    stage = Stage(stage)
    cfg = ensure_setup(session, stage)
    snapshot, report = reconcile(session, stage)
    fill = None
    if apply_auto and cfg.auto_schedule_enabled:
        fill = auto_fill(session, stage)
        if fill.assigned:
            snapshot, _ = reconcile(session, stage)
        session.refresh(cfg)

    in_play = snapshot.in_play()
    queue = eligible_queue(snapshot)
    upcoming = build_upcoming(queue)
    by_court = {a.court_id: a for a in snapshot.active}

    courts = []
    for court_id in config.COURT_IDS:
        assignment = by_court.get(court_id)
        key = assignment_match_key(assignment) if assignment else None
        playing = snapshot.pool_by_key.get(key) if key else None
        courts.append(
            {
                "court_id": court_id,
                "is_locked": court_id in snapshot.locked_courts,
                "assignment_id": assignment.id if assignment else None,
                "assigned_at": assignment.assigned_at if assignment else None,
                "playing": _match_view(playing) if playing else None,
            }
        )

    free = snapshot.free_courts()
    return {
        "stage": stage.value,
        "auto_schedule_enabled": cfg.auto_schedule_enabled,
        "courts": courts,
        "eligible": [candidate_view(c) for c in queue],
        "upcoming": [candidate_view(c) for c in upcoming],
        "blocked": [
            {"match_type": b.match_type, "match_id": b.match_id, "reason": b.reason} for b in snapshot.blocked
        ],
        "last_batch": cfg.last_batch.model_dump(mode="json"),
        "in_play_player_ids": sorted(in_play),
        "debug": {
            "eligible_count": len(queue),
            "assignable_count": sum(1 for c in queue if c.assignable),
            "upcoming_count": len(upcoming),
            "upcoming_assignable_count": sum(1 for c in upcoming if c.assignable),
            "active_count": len(snapshot.active),
            "free_court_count": len(free),
            "locked_court_count": len(snapshot.locked_courts),
            "blocked_count": len(snapshot.blocked),
            "recent_player_count": len(snapshot.recent()),
            "cleared_assignment_ids": report.ghosts_cleared + report.invalid_cleared,
            "pruned_forced_keys": report.forced_pruned,
            "auto_fill": fill.to_dict() if fill else None,
        },
    }
