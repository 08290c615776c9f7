"""Queue ordering, forced priority and the upcoming preview."""
from datetime import datetime, timedelta

import pytest
from sqlmodel import Session, select

from courtside.models.enums import MatchKind, Stage
from courtside.models.match import Match
from courtside.models.schedule_control import ForcedPriority
from courtside.services.eligibility import Candidate, load_snapshot
from courtside.services.errors import NotFoundError, PreconditionError
from courtside.services.group_stage import generate_group_matches, record_group_score
from courtside.services.match_pool import PoolMatch
from courtside.services.priority_queue import (
    build_upcoming,
    clear_forced,
    eligible_queue,
    force_match,
    prune_forced,
    reset_forced,
    sort_queue,
)
from courtside.utils.scoring import GameInput
from tests.factories import make_category


def _candidate(match_id, players, rest, forced=None, assignable=True, kind=MatchKind.GROUP, **extra):
    match = PoolMatch(
        kind=kind,
        match_id=match_id,
        status="SCHEDULED",
        home_team_id=1,
        away_team_id=2,
        player_ids=frozenset(players),
        **extra,
    )
    return Candidate(match=match, rest_score=rest, forced_rank=forced, assignable=assignable)


def test_sort_forced_then_kind_then_rest():
    low_rest = _candidate("a", [1, 2], rest=1)
    high_rest = _candidate("b", [3, 4], rest=4)
    forced = _candidate("c", [5, 6], rest=0, forced=1)
    knockout = _candidate("d", [7, 8], rest=4, kind=MatchKind.KNOCKOUT, round_no=2, series="A", match_no=1)
    ordered = sort_queue([knockout, low_rest, high_rest, forced])
    assert [c.key for c in ordered] == ["GROUP:c", "GROUP:b", "GROUP:a", "KNOCKOUT:d"]


def test_knockout_ties_prefer_earlier_round_then_series_b():
    a_qf = _candidate("a", [1], rest=4, kind=MatchKind.KNOCKOUT, round_no=2, series="A", match_no=1)
    b_qf = _candidate("b", [2], rest=4, kind=MatchKind.KNOCKOUT, round_no=2, series="B", match_no=2)
    play_in = _candidate("c", [3], rest=4, kind=MatchKind.KNOCKOUT, round_no=1, series="B", match_no=1)
    assert [c.key for c in sort_queue([a_qf, b_qf, play_in])] == ["KNOCKOUT:c", "KNOCKOUT:b", "KNOCKOUT:a"]


def test_upcoming_skips_overlapping_players():
    ordered = [
        _candidate("a", [1, 2, 3, 4], rest=4),
        _candidate("b", [1, 5, 6, 7], rest=4),
        _candidate("c", [8, 9, 10, 11], rest=4),
        _candidate("d", [12, 13, 14, 15], rest=2, assignable=False),
    ]
    upcoming = build_upcoming(ordered, limit=5)
    assert [c.key for c in upcoming] == ["GROUP:a", "GROUP:c", "GROUP:d"]


def test_upcoming_puts_forced_assignable_first():
    ordered = [
        _candidate("waiting", [1, 2], rest=0, forced=1, assignable=False),
        _candidate("ready", [3, 4], rest=0, forced=2),
        _candidate("plain", [5, 6], rest=4),
    ]
    assert [c.key for c in build_upcoming(ordered)] == ["GROUP:ready", "GROUP:waiting", "GROUP:plain"]


def test_upcoming_respects_limit():
    ordered = [_candidate(str(idx), [idx], rest=4) for idx in range(10)]
    assert len(build_upcoming(ordered, limit=5)) == 5


def test_most_recently_forced_ranks_first(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    first, second = session.exec(select(Match)).all()[:2]
    force_match(session, MatchKind.GROUP, first.id)
    force_match(session, MatchKind.GROUP, second.id)
    # make the ordering independent of clock resolution
    row = session.exec(select(ForcedPriority).where(ForcedPriority.match_id == second.id)).one()
    row.created_at = datetime.utcnow() + timedelta(seconds=5)
    session.add(row)
    session.commit()

    queue = eligible_queue(load_snapshot(session, Stage.GROUP))
    assert queue[0].match.match_id == second.id
    assert queue[0].forced_rank == 1
    assert queue[1].match.match_id == first.id
    assert queue[1].forced_rank == 2


def test_force_rejects_finished_match(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).one()
    record_group_score(session, match.id, [GameInput(21, 3)])
    with pytest.raises(PreconditionError):
        force_match(session, MatchKind.GROUP, match.id)
    with pytest.raises(NotFoundError):
        force_match(session, MatchKind.GROUP, "missing")


def test_clear_and_reset_forced(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    matches = session.exec(select(Match)).all()
    for match in matches[:3]:
        force_match(session, MatchKind.GROUP, match.id)
    assert clear_forced(session, MatchKind.GROUP, matches[0].id) is True
    assert clear_forced(session, MatchKind.GROUP, matches[0].id) is False
    assert reset_forced(session, Stage.GROUP) == 2
    assert session.exec(select(ForcedPriority)).all() == []


def test_prune_drops_forced_entries_no_longer_eligible(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    first, second = session.exec(select(Match)).all()[:2]
    force_match(session, MatchKind.GROUP, first.id)
    force_match(session, MatchKind.GROUP, second.id)
    record_group_score(session, first.id, [GameInput(21, 8)])

    snapshot = load_snapshot(session, Stage.GROUP)
    pruned = prune_forced(session, snapshot, eligible_queue(snapshot))
    session.commit()
    assert pruned == [f"GROUP:{first.id}"]
    assert list(snapshot.forced_ranks) == [f"GROUP:{second.id}"]
    assert snapshot.forced_ranks[f"GROUP:{second.id}"] == 1
    remaining = session.exec(select(ForcedPriority)).all()
    assert [r.match_id for r in remaining] == [second.id]
