"""
Group standings.

Order: wins desc, point difference desc, points for desc. Two teams still level
are split by their head-to-head result; anything left level is ordered by a
persisted random draw keyed on the group and the tied team ids.
"""
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from sqlmodel import Session, select

from courtside.models.enums import FINISHED_STATUSES
from courtside.models.group import Group, GroupTeam
from courtside.models.match import Match
from courtside.models.team import Team
from courtside.services.errors import NotFoundError
from courtside.services.random_draw import DRAW_STANDINGS, build_draw_key, resolve_draw_order


@dataclass
class StandingRow:
    team_id: int
    team_name: str
    wins: int = 0
    losses: int = 0
    played: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def point_diff(self) -> int:
        return self.points_for - self.points_against

    @property
    def avg_points_against(self) -> float:
        return self.points_against / self.played if self.played else 0.0

    def sort_key(self):
        return (-self.wins, -self.point_diff, -self.points_for, self.team_name)

    def tie_key(self):
        return (self.wins, self.point_diff, self.points_for)


@dataclass
class GroupStandings:
    group_id: int
    group_name: str
    category_code: str
    rows: List[StandingRow] = field(default_factory=list)

    def rank_of(self, team_id: int) -> Optional[int]:
        for idx, row in enumerate(self.rows, start=1):
            if row.team_id == team_id:
                return idx
        return None


def _tally(teams: List[Team], matches: List[Match]) -> Dict[int, StandingRow]:
    stats = {team.id: StandingRow(team_id=team.id, team_name=team.name) for team in teams}
    for match in matches:
        if match.home_team_id is None or match.away_team_id is None or match.winner_team_id is None:
            continue
        home = stats.get(match.home_team_id)
        away = stats.get(match.away_team_id)
        if home is None or away is None:
            continue
        home.played += 1
        away.played += 1
        if match.winner_team_id == match.home_team_id:
            home.wins += 1
            away.losses += 1
        elif match.winner_team_id == match.away_team_id:
            away.wins += 1
            home.losses += 1
        for game in match.games:
            home.points_for += game.home_points
            home.points_against += game.away_points
            away.points_for += game.away_points
            away.points_against += game.home_points
    return stats


def _head_to_head_winner(matches: List[Match], first: int, second: int) -> Optional[int]:
    for match in matches:
        if {match.home_team_id, match.away_team_id} == {first, second}:
            return match.winner_team_id
    return None


def compute_group_standings(
    session: Session, group_id: int, rng: Optional[random.Random] = None
) -> GroupStandings:
    group = session.get(Group, group_id)
    if group is None:
        raise NotFoundError(f"Group {group_id} not found")

    teams = session.exec(
        select(Team).join(GroupTeam, GroupTeam.team_id == Team.id).where(GroupTeam.group_id == group_id)
    ).all()
    completed = session.exec(
        select(Match)
        .where(Match.group_id == group_id, Match.status.in_(FINISHED_STATUSES))
        .order_by(Match.created_at, Match.id)
    ).all()

    base = sorted(_tally(list(teams), list(completed)).values(), key=StandingRow.sort_key)

    resolved: List[StandingRow] = []
    idx = 0
    while idx < len(base):
        end = idx + 1
        while end < len(base) and base[end].tie_key() == base[idx].tie_key():
            end += 1
        tie = base[idx:end]
        if len(tie) == 2:
            winner = _head_to_head_winner(list(completed), tie[0].team_id, tie[1].team_id)
            if winner == tie[1].team_id:
                tie = [tie[1], tie[0]]
            elif winner != tie[0].team_id:
                tie = _drawn(session, group, tie, rng)
        elif len(tie) > 2:
            tie = _drawn(session, group, tie, rng)
        resolved.extend(tie)
        idx = end

    return GroupStandings(
        group_id=group.id, group_name=group.name, category_code=group.category_code, rows=resolved
    )


def _drawn(
    session: Session, group: Group, tie: List[StandingRow], rng: Optional[random.Random]
) -> List[StandingRow]:
    by_id = {row.team_id: row for row in tie}
    order = resolve_draw_order(
        session,
        build_draw_key(str(group.id), by_id),
        list(by_id),
        DRAW_STANDINGS,
        category_code=group.category_code,
        rng=rng,
    )
    return [by_id[team_id] for team_id in order]


def compute_category_standings(
    session: Session, category_code: str, rng: Optional[random.Random] = None
) -> List[GroupStandings]:
    groups = session.exec(
        select(Group).where(Group.category_code == category_code).order_by(Group.name)
    ).all()
    return [compute_group_standings(session, group.id, rng=rng) for group in groups]
