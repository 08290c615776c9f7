"""
Knockout seeding, pairing and bracket generation.

Round 1 is reserved for Series B play-ins and round 2 is the first main round,
so an 8-team bracket plays its quarterfinals in round 2 and its final in
round 4. A 4-team reduced-format Series A starts at round 3. The final of any
bracket is match 1 of its last round.
Winner pointers (next_match_id/next_slot) are written once, in the same
transaction that creates the matches.
"""
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from sqlmodel import Session, select

from courtside import config
from courtside.logging_config import get_logger
from courtside.models.court import CourtAssignment
from courtside.models.enums import MatchKind, Series
from courtside.models.knockout import CategoryConfig, KnockoutMatch, KnockoutSeed, SeriesQualifier
from courtside.models.random_draw import RandomDrawRecord
from courtside.models.schedule_control import BlockedMatch, ForcedPriority
from courtside.models.team import Team
from courtside.services.errors import BracketError, NotFoundError, PreconditionError
from courtside.services.group_stage import is_group_stage_locked
from courtside.services.random_draw import (
    DRAW_GLOBAL_RANKING,
    build_draw_key,
    resolve_draw_choice,
    resolve_draw_order,
)
from courtside.services.standings import compute_category_standings
from courtside.utils.seeding import is_power_of_two, next_position, rounds_for_size, seed_order

logger = get_logger("courtside.knockout.seeding")

PLAY_IN_ROUND = 1
QUARTERFINAL_ROUND = 2
SERIES_A_FINAL_ROUND = 4
GLOBAL_DRAW_PREFIX = "global:"
SECOND_CHANCE_MIN_TEAMS = 4
SECOND_CHANCE_MAX_TEAMS = 8


@dataclass
class RankedTeam:
    team_id: int
    group_id: int
    group_rank: int
    avg_points_against: float
    wins: int = 0
    point_diff: int = 0
    points_for: int = 0
    played: int = 0
    global_rank: int = 0
    is_knockout_seed: bool = False

    @property
    def tie_key(self) -> str:
        return f"{self.group_rank}:{self.avg_points_against:.4f}"


@dataclass
class SeedEntry:
    team_id: int
    seed_no: int
    group_id: int
    group_rank: int
    avg_points_against: float


@dataclass
class PlannedMatch:
    round_no: int
    match_no: int
    home_team_id: Optional[int] = None
    away_team_id: Optional[int] = None


@dataclass
class BracketPlan:
    series: Series
    seeds: List[SeedEntry]
    matches: List[PlannedMatch] = field(default_factory=list)
    # play-in match_no -> (round, match_no, slot) of the quarterfinal it feeds
    play_in_targets: Dict[int, Tuple[int, int, int]] = field(default_factory=dict)

    def add_empty_rounds(self, first_round: int, team_count: int) -> None:
        """Append the empty rounds after first_round for a team_count bracket."""
        for offset in range(1, rounds_for_size(team_count)):
            for match_no in range(1, team_count // (2 ** (offset + 1)) + 1):
                self.matches.append(PlannedMatch(round_no=first_round + offset, match_no=match_no))


def second_chance_active(session: Session, category_code: str) -> bool:
    if config.is_reduced_format(category_code):
        return False
    cfg = session.get(CategoryConfig, category_code)
    return bool(cfg and cfg.second_chance_enabled)


def _require_locked(session: Session, category_code: str) -> None:
    if not is_group_stage_locked(session, category_code):
        raise BracketError(
            "Group stage must be locked before generating series or brackets.", code="GROUP_STAGE_UNLOCKED"
        )


def series_a_size(category_code: str, ranked_count: int) -> int:
    if config.is_reduced_format(category_code):
        return 8 if ranked_count >= 8 else 4
    return 8


# ---------------------------------------------------------------------------
# Global ranking and series split
# ---------------------------------------------------------------------------


def load_global_ranking(
    session: Session, category_code: str, rng: Optional[random.Random] = None
) -> List[RankedTeam]:
    """
    Rank every team of the category across groups.

    Group rank first, then average points against (lower is better), then team
    id. Teams level on group rank and average points against are ordered by a
    persisted draw that survives bracket clears.
    """
    entries: List[RankedTeam] = []
    for standings in compute_category_standings(session, category_code, rng=rng):
        for rank, row in enumerate(standings.rows, start=1):
            entries.append(
                RankedTeam(
                    team_id=row.team_id,
                    group_id=standings.group_id,
                    group_rank=rank,
                    avg_points_against=row.avg_points_against,
                    wins=row.wins,
                    point_diff=row.point_diff,
                    points_for=row.points_for,
                    played=row.played,
                )
            )
    entries.sort(key=lambda e: (e.group_rank, e.avg_points_against, e.team_id))

    resolved: List[RankedTeam] = []
    idx = 0
    while idx < len(entries):
        end = idx + 1
        while end < len(entries) and entries[end].tie_key == entries[idx].tie_key:
            end += 1
        tie = entries[idx:end]
        if len(tie) > 1:
            by_id = {e.team_id: e for e in tie}
            order = resolve_draw_order(
                session,
                build_draw_key(f"{GLOBAL_DRAW_PREFIX}{category_code}:{tie[0].tie_key}", by_id),
                list(by_id),
                DRAW_GLOBAL_RANKING,
                category_code=category_code,
                rng=rng,
            )
            tie = [by_id[team_id] for team_id in order]
        resolved.extend(tie)
        idx = end

    for global_rank, entry in enumerate(resolved, start=1):
        entry.global_rank = global_rank
    return resolved


def compute_series_qualifiers(
    session: Session, category_code: str, rng: Optional[random.Random] = None
) -> Dict:
    """Split the global ranking into Series A (top 8, or 4/8 reduced) and Series B."""
    _require_locked(session, category_code)
    ranking = load_global_ranking(session, category_code, rng=rng)
    if not ranking:
        raise PreconditionError("No groups found.", code="NO_GROUPS")

    reduced = config.is_reduced_format(category_code)
    minimum = 4 if reduced else 8
    if len(ranking) < minimum:
        raise BracketError(
            f"Series A requires at least {minimum} teams.", code="SERIES_A_TEAM_COUNT"
        )
    a_count = series_a_size(category_code, len(ranking))

    for row in session.exec(select(SeriesQualifier).where(SeriesQualifier.category_code == category_code)).all():
        session.delete(row)
    session.flush()

    counts = {Series.A.value: 0, Series.B.value: 0}
    for entry in ranking:
        series = Series.A if entry.global_rank <= a_count else Series.B
        if series == Series.B and reduced:
            continue
        session.add(
            SeriesQualifier(
                category_code=category_code,
                series=series.value,
                team_id=entry.team_id,
                group_id=entry.group_id,
                group_rank=entry.group_rank,
                avg_points_against=entry.avg_points_against,
                global_rank=entry.global_rank,
            )
        )
        counts[series.value] += 1
    session.commit()
    logger.info("series split computed", category=category_code, series_a=counts["A"], series_b=counts["B"])
    return {"category_code": category_code, "series_a": counts["A"], "series_b": counts["B"]}


# ---------------------------------------------------------------------------
# Pairing
# ---------------------------------------------------------------------------


def choose_opponent(
    session: Session,
    category_code: str,
    series: Series,
    round_no: int,
    high: SeedEntry,
    candidates: List[SeedEntry],
    rng: Optional[random.Random] = None,
) -> Optional[SeedEntry]:
    """
    Pick the opponent for `high` from candidates ordered worst seed first.

    The tier is the group rank of the worst-seeded candidate; within it the
    highest average points against wins; exact ties go to a persisted draw.
    """
    if not candidates:
        return None
    tier = candidates[0].group_rank
    same_tier = [c for c in candidates if c.group_rank == tier]
    if len(same_tier) == 1:
        return same_tier[0]
    weakest_pa = max(c.avg_points_against for c in same_tier)
    weakest = [c for c in same_tier if c.avg_points_against == weakest_pa]
    if len(weakest) == 1:
        return weakest[0]

    by_id = {c.team_id: c for c in weakest}
    draw_key = build_draw_key(f"{category_code}:{series.value}:{round_no}:{high.team_id}", by_id)
    chosen_id = resolve_draw_choice(
        session,
        draw_key,
        list(by_id),
        category_code=category_code,
        series=series.value,
        round_no=round_no,
        rng=rng,
    )
    return by_id[chosen_id]


def build_round_one_pairs(
    session: Session,
    category_code: str,
    series: Series,
    round_no: int,
    seeds: List[SeedEntry],
    rng: Optional[random.Random] = None,
) -> List[Tuple[SeedEntry, SeedEntry]]:
    """Pair seeds best-first, each against a preferably cross-group opponent."""
    unpaired = {s.team_id for s in seeds}
    pairs: List[Tuple[SeedEntry, SeedEntry]] = []
    for high in seeds:
        if high.team_id not in unpaired:
            continue
        remaining = sorted(
            (s for s in seeds if s.team_id != high.team_id and s.team_id in unpaired),
            key=lambda s: s.seed_no,
            reverse=True,
        )
        if not remaining:
            break
        cross_group = [s for s in remaining if s.group_id != high.group_id]
        chosen = choose_opponent(
            session, category_code, series, round_no, high, cross_group or remaining, rng=rng
        )
        if chosen is None:
            continue
        pairs.append((high, chosen))
        unpaired.discard(high.team_id)
        unpaired.discard(chosen.team_id)
    return pairs


# ---------------------------------------------------------------------------
# Bracket plans
# ---------------------------------------------------------------------------


def _seed_entries(teams: List[RankedTeam]) -> List[SeedEntry]:
    return [
        SeedEntry(
            team_id=t.team_id,
            seed_no=idx,
            group_id=t.group_id,
            group_rank=t.group_rank,
            avg_points_against=t.avg_points_against,
        )
        for idx, t in enumerate(teams, start=1)
    ]


def plan_series_a(
    session: Session, category_code: str, ranking: List[RankedTeam], rng: Optional[random.Random] = None
) -> BracketPlan:
    size = series_a_size(category_code, len(ranking))
    top = ranking[:size]
    if len(top) != size or not is_power_of_two(size):
        raise BracketError(
            f"Series A must have exactly {size} qualified teams. Recompute series split.",
            code="SERIES_A_TEAM_COUNT",
        )
    qualified = set(
        session.exec(
            select(SeriesQualifier.team_id).where(
                SeriesQualifier.category_code == category_code, SeriesQualifier.series == Series.A.value
            )
        ).all()
    )
    if qualified != {t.team_id for t in top}:
        raise BracketError(
            f"Recompute series split (Series A = top {size} global ranking).", code="SERIES_A_MISMATCH"
        )

    seeds = _seed_entries(top)
    first_round = SERIES_A_FINAL_ROUND - rounds_for_size(size) + 1
    plan = BracketPlan(series=Series.A, seeds=seeds)
    pairs = build_round_one_pairs(session, category_code, Series.A, first_round, seeds, rng=rng)
    for match_no, (home, away) in enumerate(pairs, start=1):
        plan.matches.append(
            PlannedMatch(round_no=first_round, match_no=match_no, home_team_id=home.team_id, away_team_id=away.team_id)
        )
    plan.add_empty_rounds(first_round, size)
    if any(m.round_no == PLAY_IN_ROUND for m in plan.matches):
        raise BracketError("Series A cannot contain play-in matches.", code="SERIES_A_PLAYIN_INVALID")
    return plan


def _series_b_teams(session: Session, category_code: str, ranking: List[RankedTeam]) -> List[RankedTeam]:
    qualified = set(
        session.exec(
            select(SeriesQualifier.team_id).where(
                SeriesQualifier.category_code == category_code, SeriesQualifier.series == Series.B.value
            )
        ).all()
    )
    teams = [t for t in ranking if t.team_id in qualified]
    flagged = set(
        session.exec(
            select(Team.id).where(
                Team.id.in_(qualified),
                Team.is_knockout_seed == True,
            )
        ).all()
    )
    for team in teams:
        team.is_knockout_seed = team.team_id in flagged
    return teams


def plan_series_b_standard(teams: List[RankedTeam]) -> BracketPlan:
    """Power-of-two Series B placed by the classic seed order; flagged knock-out seeds go first."""
    count = len(teams)
    if not is_power_of_two(count) or count < 2:
        raise BracketError(
            "Series B requires Second Chance to run play-ins. Enable Second Chance or adjust team count.",
            code="SERIES_B_NEEDS_SECOND_CHANCE",
        )
    ordered = sorted(
        teams, key=lambda t: (not t.is_knockout_seed, t.group_rank, -t.wins, -t.point_diff, -t.points_for, t.team_id)
    )
    seeds = _seed_entries(ordered)
    by_seed = {s.seed_no: s.team_id for s in seeds}
    positions = seed_order(count)
    plan = BracketPlan(series=Series.B, seeds=seeds)
    for match_no in range(1, count // 2 + 1):
        plan.matches.append(
            PlannedMatch(
                round_no=QUARTERFINAL_ROUND,
                match_no=match_no,
                home_team_id=by_seed[positions[2 * match_no - 2]],
                away_team_id=by_seed[positions[2 * match_no - 1]],
            )
        )
    plan.add_empty_rounds(QUARTERFINAL_ROUND, count)
    return plan


def plan_series_b_second_chance(teams: List[RankedTeam]) -> BracketPlan:
    """
    Series B with play-ins and four quarterfinal home slots held for Series A
    quarterfinal losers.

    With n teams (4..8) the best 8 - n advance straight to quarterfinal away
    slots; the rest meet in play-ins paired best against worst, whose winners
    take the remaining away slots in order.
    """
    count = len(teams)
    if count < SECOND_CHANCE_MIN_TEAMS or count > SECOND_CHANCE_MAX_TEAMS:
        raise BracketError(
            f"Series B second chance requires 4-8 teams, received {count}.", code="SERIES_B_SECOND_CHANCE"
        )
    ranked = sorted(teams, key=lambda t: (t.global_rank, t.group_rank, t.avg_points_against, t.team_id))
    plan = BracketPlan(series=Series.B, seeds=_seed_entries(ranked))

    auto_count = SECOND_CHANCE_MAX_TEAMS - count
    auto_advance = ranked[:auto_count]
    play_in_teams = ranked[auto_count:]

    play_in_numbers: List[int] = []
    left, right = 0, len(play_in_teams) - 1
    while left < right:
        match_no = len(play_in_numbers) + 1
        plan.matches.append(
            PlannedMatch(
                round_no=PLAY_IN_ROUND,
                match_no=match_no,
                home_team_id=play_in_teams[left].team_id,
                away_team_id=play_in_teams[right].team_id,
            )
        )
        play_in_numbers.append(match_no)
        left += 1
        right -= 1

    base_slots: List[Tuple[Optional[int], Optional[int]]] = [(t.team_id, None) for t in auto_advance]
    base_slots += [(None, n) for n in play_in_numbers]
    for idx in range(4):
        team_id, play_in_no = base_slots[idx] if idx < len(base_slots) else (None, None)
        plan.matches.append(PlannedMatch(round_no=QUARTERFINAL_ROUND, match_no=idx + 1, away_team_id=team_id))
        if play_in_no is not None:
            plan.play_in_targets[play_in_no] = (QUARTERFINAL_ROUND, idx + 1, 2)
    plan.add_empty_rounds(QUARTERFINAL_ROUND, 8)
    return plan


def wire_plan(plan: BracketPlan) -> Dict[Tuple[int, int], Tuple[int, int, int]]:
    """(round, match_no) -> (next round, next match_no, slot) for every non-final match."""
    present = {(m.round_no, m.match_no) for m in plan.matches}
    main = [m for m in plan.matches if m.round_no != PLAY_IN_ROUND]
    final_round = max(m.round_no for m in main)
    wiring: Dict[Tuple[int, int], Tuple[int, int, int]] = {}
    for play_in_no, target in plan.play_in_targets.items():
        wiring[(PLAY_IN_ROUND, play_in_no)] = target
    for m in main:
        if m.round_no >= final_round:
            continue
        target = next_position(m.round_no, m.match_no)
        if (target[0], target[1]) in present:
            wiring[(m.round_no, m.match_no)] = target
    return wiring


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


def _series_matches(session: Session, category_code: str, series: Series) -> List[KnockoutMatch]:
    return list(
        session.exec(
            select(KnockoutMatch).where(
                KnockoutMatch.category_code == category_code, KnockoutMatch.series == series.value
            )
        ).all()
    )


def _delete_series(session: Session, category_code: str, series: Series) -> int:
    """Stage deletion of a series' matches, seeds and their schedule references."""
    matches = _series_matches(session, category_code, series)
    match_ids = [m.id for m in matches]
    if match_ids:
        for assignment in session.exec(
            select(CourtAssignment).where(CourtAssignment.knockout_match_id.in_(match_ids))
        ).all():
            session.delete(assignment)
        for model in (ForcedPriority, BlockedMatch):
            for row in session.exec(
                select(model).where(model.match_type == MatchKind.KNOCKOUT.value, model.match_id.in_(match_ids))
            ).all():
                session.delete(row)
        for match in matches:
            match.next_match_id = None
            session.add(match)
        session.flush()
        for match in matches:
            session.delete(match)
    for seed in session.exec(
        select(KnockoutSeed).where(KnockoutSeed.category_code == category_code, KnockoutSeed.series == series.value)
    ).all():
        session.delete(seed)
    session.flush()
    return len(match_ids)


def _persist_plan(session: Session, category_code: str, plan: BracketPlan) -> List[KnockoutMatch]:
    """Replace the series' matches and seeds with the plan in one transaction."""
    try:
        _delete_series(session, category_code, plan.series)
        created: Dict[Tuple[int, int], KnockoutMatch] = {}
        for planned in sorted(plan.matches, key=lambda m: (m.round_no, m.match_no)):
            created[(planned.round_no, planned.match_no)] = KnockoutMatch(
                category_code=category_code,
                series=plan.series.value,
                round_no=planned.round_no,
                match_no=planned.match_no,
                home_team_id=planned.home_team_id,
                away_team_id=planned.away_team_id,
                is_published=False,
            )
        for match in created.values():
            session.add(match)
        session.flush()
        for (round_no, match_no), (next_round, next_match_no, slot) in wire_plan(plan).items():
            match = created[(round_no, match_no)]
            match.next_match_id = created[(next_round, next_match_no)].id
            match.next_slot = slot
            session.add(match)
        for seed in plan.seeds:
            session.add(
                KnockoutSeed(
                    category_code=category_code,
                    series=plan.series.value,
                    team_id=seed.team_id,
                    seed_no=seed.seed_no,
                )
            )
        session.commit()
    except Exception:
        session.rollback()
        raise
    return list(created.values())


def generate_bracket(
    session: Session, category_code: str, series: Series, rng: Optional[random.Random] = None
) -> Dict:
    """Build one series bracket from the stored series split. Matches start unpublished."""
    series = Series(series)
    _require_locked(session, category_code)
    if series == Series.B and config.is_reduced_format(category_code):
        raise BracketError(f"Series B is not available for {category_code}.", code="SERIES_B_NOT_AVAILABLE")
    if _series_matches(session, category_code, series):
        raise BracketError(
            f"Bracket already exists for {category_code} Series {series.value}.",
            code="BRACKET_EXISTS",
            status_code=409,
        )
    qualifier_count = len(
        session.exec(
            select(SeriesQualifier.id).where(
                SeriesQualifier.category_code == category_code, SeriesQualifier.series == series.value
            )
        ).all()
    )
    if qualifier_count == 0:
        raise BracketError("Compute series split first.", code="MISSING_SERIES_SPLIT")

    # draws commit on their own, so every draw happens before the write transaction
    ranking = load_global_ranking(session, category_code, rng=rng)
    if series == Series.A:
        plan = plan_series_a(session, category_code, ranking, rng=rng)
    elif second_chance_active(session, category_code):
        plan = plan_series_b_second_chance(_series_b_teams(session, category_code, ranking))
    else:
        plan = plan_series_b_standard(_series_b_teams(session, category_code, ranking))

    created = _persist_plan(session, category_code, plan)
    logger.info(
        "bracket generated",
        category=category_code,
        series=series.value,
        matches=len(created),
        seeds=len(plan.seeds),
        play_ins=len(plan.play_in_targets),
    )
    return {
        "category_code": category_code,
        "series": series.value,
        "match_count": len(created),
        "seeds": [{"seed_no": s.seed_no, "team_id": s.team_id} for s in plan.seeds],
    }


def required_series(category_code: str) -> List[Series]:
    return [Series.A] if config.is_reduced_format(category_code) else [Series.A, Series.B]


def generate_full_bracket(session: Session, category_code: str, rng: Optional[random.Random] = None) -> Dict:
    """Series A, then Series B where the format has one, then publish and propagate."""
    # local import: propagation imports the seeding helpers
    from courtside.services.bracket_propagation import sync_bracket

    _require_locked(session, category_code)
    for series in required_series(category_code):
        if _series_matches(session, category_code, series):
            raise BracketError(
                "Bracket already exists. Use Clear Bracket to regenerate.", code="BRACKET_EXISTS", status_code=409
            )
    results = [generate_bracket(session, category_code, series, rng=rng) for series in required_series(category_code)]
    published = publish_bracket(session, category_code)
    sync = sync_bracket(session, category_code)
    return {"category_code": category_code, "series": results, "published": published, "sync": sync}


def clear_bracket(session: Session, category_code: str, series: Optional[Series] = None) -> Dict:
    """Delete matches, seeds and pairing draws; global ranking draws are kept."""
    if series is not None:
        series = Series(series)
        if series == Series.B and config.is_reduced_format(category_code):
            raise BracketError(f"Series B is not available for {category_code}.", code="SERIES_B_NOT_AVAILABLE")
    targets = [series] if series is not None else required_series(category_code)
    deleted = 0
    try:
        for target in targets:
            deleted += _delete_series(session, category_code, target)
            for draw in session.exec(
                select(RandomDrawRecord).where(
                    RandomDrawRecord.category_code == category_code,
                    RandomDrawRecord.series == target.value,
                )
            ).all():
                if not draw.draw_key.startswith(GLOBAL_DRAW_PREFIX):
                    session.delete(draw)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("bracket cleared", category=category_code, series=[t.value for t in targets], deleted=deleted)
    return {"category_code": category_code, "series": [t.value for t in targets], "deleted_matches": deleted}


def publish_bracket(
    session: Session, category_code: str, series: Optional[Series] = None, published: bool = True
) -> int:
    query = select(KnockoutMatch).where(KnockoutMatch.category_code == category_code)
    if series is not None:
        query = query.where(KnockoutMatch.series == Series(series).value)
    matches = session.exec(query).all()
    for match in matches:
        match.is_published = published
        session.add(match)
    session.commit()
    logger.info("bracket publish flag set", category=category_code, published=published, matches=len(matches))
    return len(matches)


def set_second_chance(session: Session, category_code: str, enabled: bool) -> CategoryConfig:
    if config.is_reduced_format(category_code):
        raise PreconditionError(
            f"Second chance is not available for {category_code}.", code="SECOND_CHANCE_NOT_AVAILABLE"
        )
    cfg = session.get(CategoryConfig, category_code) or CategoryConfig(category_code=category_code)
    cfg.second_chance_enabled = enabled
    session.add(cfg)
    session.commit()
    session.refresh(cfg)
    return cfg


def set_knockout_seed(session: Session, team_id: int, enabled: bool) -> Team:
    """Flag a team to be seeded ahead of the ranking when Series B is generated."""
    team = session.get(Team, team_id)
    if team is None:
        raise NotFoundError("Team not found.")
    team.is_knockout_seed = enabled
    session.add(team)
    session.commit()
    session.refresh(team)
    logger.info("knockout seed flag set", team_id=team_id, enabled=enabled)
    return team


def set_final_best_of_3(session: Session, match_id: str, enabled: bool) -> KnockoutMatch:
    match = session.get(KnockoutMatch, match_id)
    if match is None:
        raise NotFoundError("Match not found.")
    last_round = max(
        session.exec(
            select(KnockoutMatch.round_no).where(
                KnockoutMatch.category_code == match.category_code,
                KnockoutMatch.series == match.series,
            )
        ).all()
    )
    if match.round_no != last_round or match.match_no != 1:
        raise PreconditionError("Final best-of-3 is only available for Finals.", code="NOT_A_FINAL")
    match.is_best_of_3 = enabled
    session.add(match)
    session.commit()
    session.refresh(match)
    return match


def load_seeds(session: Session, category_code: str, series: Series) -> List[KnockoutSeed]:
    return list(
        session.exec(
            select(KnockoutSeed)
            .where(KnockoutSeed.category_code == category_code, KnockoutSeed.series == Series(series).value)
            .order_by(KnockoutSeed.seed_no)
        ).all()
    )
