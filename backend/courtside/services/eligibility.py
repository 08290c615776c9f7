"""
Eligibility and rest-score fairness.

A match is eligible when it is list-eligible (scheduled, both teams known,
published if knockout), not blocked, and not held by an ACTIVE assignment in
its stage. Its rest score counts the players who are neither in play in the
stage nor among the players of the last few completed matches.
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from sqlmodel import Session, select

from courtside import config
from courtside.models.court import CourtAssignment, CourtState
from courtside.models.enums import AssignmentStatus, MatchKind, Stage, kinds_for_stage
from courtside.models.schedule_control import BlockedMatch, ForcedPriority
from courtside.services.match_pool import PoolMatch, build_match_key, load_pool


def assignment_match_key(assignment: CourtAssignment) -> Optional[str]:
    """Match key held by an assignment, or None for an empty row."""
    if assignment.match_type is None:
        return None
    kind = MatchKind(assignment.match_type)
    if kind == MatchKind.GROUP:
        match_id = assignment.group_match_id
    elif kind == MatchKind.KNOCKOUT:
        match_id = assignment.knockout_match_id
    else:
        raise ValueError(f"Unknown match kind: {kind}")
    return build_match_key(kind, match_id) if match_id else None


def recent_completed_player_ids(
    pool: Iterable[PoolMatch], lookback: int = config.RECENT_COMPLETED_LOOKBACK
) -> Set[int]:
    finished = [m for m in pool if m.is_completed and m.completed_at is not None]
    finished.sort(key=lambda m: (m.completed_at, m.match_id), reverse=True)
    players: Set[int] = set()
    for match in finished[:lookback]:
        players |= match.player_ids
    return players


def in_play_player_ids(pool_by_key: Dict[str, PoolMatch], active: Iterable[CourtAssignment]) -> Set[int]:
    players: Set[int] = set()
    for assignment in active:
        key = assignment_match_key(assignment)
        if key and key in pool_by_key:
            players |= pool_by_key[key].player_ids
    return players


def rest_score(match: PoolMatch, in_play: Set[int], recent: Set[int]) -> int:
    return sum(1 for pid in match.player_ids if pid not in in_play and pid not in recent)


@dataclass(frozen=True)
class Candidate:
    match: PoolMatch
    rest_score: int
    forced_rank: Optional[int]
    assignable: bool

    @property
    def key(self) -> str:
        return self.match.key

    @property
    def is_forced(self) -> bool:
        return self.forced_rank is not None


@dataclass
class StageSnapshot:
    """Everything the queue and the fill loop read for one stage, loaded once."""

    stage: Stage
    pool: List[PoolMatch]
    active: List[CourtAssignment]
    blocked: List[BlockedMatch]
    forced_ranks: Dict[str, int]
    locked_courts: Set[str]
    pool_by_key: Dict[str, PoolMatch] = field(init=False)

    def __post_init__(self):
        self.pool_by_key = {m.key: m for m in self.pool}

    @property
    def blocked_keys(self) -> Set[str]:
        return {build_match_key(MatchKind(b.match_type), b.match_id) for b in self.blocked}

    @property
    def assigned_keys(self) -> Set[str]:
        return {k for k in (assignment_match_key(a) for a in self.active) if k}

    @property
    def occupied_courts(self) -> Set[str]:
        return {a.court_id for a in self.active}

    def in_play(self) -> Set[int]:
        return in_play_player_ids(self.pool_by_key, self.active)

    def recent(self) -> Set[int]:
        return recent_completed_player_ids(self.pool)

    def free_courts(self, court_ids: Iterable[str] = None) -> List[str]:
        courts = config.COURT_IDS if court_ids is None else court_ids
        return sorted(c for c in courts if c not in self.occupied_courts and c not in self.locked_courts)


def eligible_candidates(snapshot: StageSnapshot, in_play: Optional[Set[int]] = None) -> List[Candidate]:
    """Unordered eligible matches with rest score, forced rank and assignability."""
    playing = snapshot.in_play() if in_play is None else in_play
    recent = snapshot.recent()
    excluded = snapshot.blocked_keys | snapshot.assigned_keys
    candidates: List[Candidate] = []
    for match in snapshot.pool:
        if not match.is_list_eligible or match.key in excluded:
            continue
        candidates.append(
            Candidate(
                match=match,
                rest_score=rest_score(match, playing, recent),
                forced_rank=snapshot.forced_ranks.get(match.key),
                assignable=not (match.player_ids & playing),
            )
        )
    return candidates


def load_forced_ranks(session: Session, kinds: Iterable[MatchKind]) -> Dict[str, int]:
    """Rank 1 is the most recently forced match."""
    rows = session.exec(
        select(ForcedPriority)
        .where(ForcedPriority.match_type.in_([MatchKind(k).value for k in kinds]))
        .order_by(ForcedPriority.created_at.desc(), ForcedPriority.id.desc())
    ).all()
    return {build_match_key(MatchKind(r.match_type), r.match_id): idx for idx, r in enumerate(rows, start=1)}


def load_active_assignments(session: Session, stage: Stage) -> List[CourtAssignment]:
    return list(
        session.exec(
            select(CourtAssignment)
            .where(
                CourtAssignment.stage == Stage(stage).value,
                CourtAssignment.status == AssignmentStatus.ACTIVE.value,
            )
            .order_by(CourtAssignment.court_id)
        ).all()
    )


def load_snapshot(session: Session, stage: Stage) -> StageSnapshot:
    stage = Stage(stage)
    kinds = kinds_for_stage(stage)
    blocked = session.exec(
        select(BlockedMatch).where(BlockedMatch.match_type.in_([k.value for k in kinds]))
    ).all()
    locked = session.exec(
        select(CourtState.court_id).where(CourtState.stage == stage.value, CourtState.is_locked == True)  # noqa: E712
    ).all()
    return StageSnapshot(
        stage=stage,
        pool=load_pool(session, stage),
        active=load_active_assignments(session, stage),
        blocked=list(blocked),
        forced_ranks=load_forced_ranks(session, kinds),
        locked_courts=set(locked),
    )
