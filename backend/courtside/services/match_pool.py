"""
Per-stage view of candidate matches with their player composition.

The pool is rebuilt from storage on every call; nothing here is cached.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from sqlmodel import Session, select

from courtside.models.enums import FINISHED_STATUSES, MatchKind, MatchStatus, Stage, kinds_for_stage
from courtside.models.knockout import KnockoutMatch
from courtside.models.match import Match
from courtside.models.team import TeamMember

SERIES_PRIORITY = {"B": 0, "A": 1}


def build_match_key(kind: MatchKind, match_id: str) -> str:
    return f"{MatchKind(kind).value}:{match_id}"


@dataclass(frozen=True)
class PoolMatch:
    kind: MatchKind
    match_id: str
    status: str
    home_team_id: Optional[int]
    away_team_id: Optional[int]
    player_ids: FrozenSet[int]
    completed_at: Optional[datetime] = None
    category_code: Optional[str] = None
    round_no: Optional[int] = None
    series: Optional[str] = None
    match_no: Optional[int] = None
    is_published: bool = True

    @property
    def key(self) -> str:
        return build_match_key(self.kind, self.match_id)

    @property
    def is_completed(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def is_list_eligible(self) -> bool:
        if self.status != MatchStatus.SCHEDULED.value:
            return False
        if self.home_team_id is None or self.away_team_id is None:
            return False
        if self.kind == MatchKind.KNOCKOUT:
            return self.is_published
        return True


def load_team_players(session: Session, team_ids: Iterable[Optional[int]]) -> Dict[int, Set[int]]:
    ids = {t for t in team_ids if t is not None}
    players: Dict[int, Set[int]] = {t: set() for t in ids}
    if not ids:
        return players
    for member in session.exec(select(TeamMember).where(TeamMember.team_id.in_(ids))).all():
        players[member.team_id].add(member.player_id)
    return players


def _players_for(team_players: Dict[int, Set[int]], *team_ids: Optional[int]) -> FrozenSet[int]:
    found: Set[int] = set()
    for team_id in team_ids:
        if team_id is not None:
            found |= team_players.get(team_id, set())
    return frozenset(found)


def _group_rows(session: Session, match_ids: Optional[Iterable[str]] = None) -> List[Match]:
    query = select(Match)
    if match_ids is not None:
        query = query.where(Match.id.in_(list(match_ids)))
    return list(session.exec(query).all())


def _knockout_rows(session: Session, match_ids: Optional[Iterable[str]] = None) -> List[KnockoutMatch]:
    query = select(KnockoutMatch)
    if match_ids is not None:
        query = query.where(KnockoutMatch.id.in_(list(match_ids)))
    return list(session.exec(query).all())


def _to_pool(kind: MatchKind, rows, team_players: Dict[int, Set[int]]) -> List[PoolMatch]:
    pool: List[PoolMatch] = []
    for row in rows:
        common = dict(
            kind=kind,
            match_id=row.id,
            status=row.status,
            home_team_id=row.home_team_id,
            away_team_id=row.away_team_id,
            player_ids=_players_for(team_players, row.home_team_id, row.away_team_id),
            completed_at=row.completed_at,
            category_code=row.category_code,
        )
        if kind == MatchKind.GROUP:
            pool.append(PoolMatch(**common))
        elif kind == MatchKind.KNOCKOUT:
            pool.append(
                PoolMatch(
                    round_no=row.round_no,
                    series=row.series,
                    match_no=row.match_no,
                    is_published=row.is_published,
                    **common,
                )
            )
        else:
            raise ValueError(f"Unknown match kind: {kind}")
    return pool


def _rows_for_kind(session: Session, kind: MatchKind, match_ids: Optional[Iterable[str]] = None) -> list:
    if kind == MatchKind.GROUP:
        return _group_rows(session, match_ids)
    elif kind == MatchKind.KNOCKOUT:
        return _knockout_rows(session, match_ids)
    raise ValueError(f"Unknown match kind: {kind}")


def load_pool(session: Session, stage: Stage) -> List[PoolMatch]:
    """All matches schedulable in a stage, list-eligible or not."""
    rows_by_kind = {kind: _rows_for_kind(session, kind) for kind in kinds_for_stage(stage)}
    team_ids = [t for rows in rows_by_kind.values() for r in rows for t in (r.home_team_id, r.away_team_id)]
    team_players = load_team_players(session, team_ids)
    pool: List[PoolMatch] = []
    for kind, rows in rows_by_kind.items():
        pool.extend(_to_pool(kind, rows, team_players))
    return pool


def get_pool_match(session: Session, kind: MatchKind, match_id: str) -> Optional[PoolMatch]:
    rows = _rows_for_kind(session, MatchKind(kind), [match_id])
    if not rows:
        return None
    team_players = load_team_players(session, [rows[0].home_team_id, rows[0].away_team_id])
    return _to_pool(MatchKind(kind), rows, team_players)[0]
