"""Eligibility filtering and rest-score fairness."""
from datetime import datetime, timedelta

from sqlmodel import Session, select

from courtside.models.enums import MatchKind, MatchStatus, Stage
from courtside.models.match import Match
from courtside.models.schedule_control import BlockedMatch
from courtside.services import court_scheduler
from courtside.services.eligibility import (
    eligible_candidates,
    load_snapshot,
    recent_completed_player_ids,
    rest_score,
)
from courtside.services.group_stage import generate_group_matches
from courtside.services.match_pool import PoolMatch, build_match_key, load_pool
from tests.factories import make_category


def _pool_match(match_id, players, status=MatchStatus.SCHEDULED.value, completed_at=None):
    return PoolMatch(
        kind=MatchKind.GROUP,
        match_id=match_id,
        status=status,
        home_team_id=1,
        away_team_id=2,
        player_ids=frozenset(players),
        completed_at=completed_at,
    )


def test_rest_score_counts_fresh_players():
    match = _pool_match("m", [1, 2, 3, 4])
    assert rest_score(match, in_play=set(), recent=set()) == 4
    assert rest_score(match, in_play={1}, recent={2}) == 2
    assert rest_score(match, in_play={1, 2}, recent={3, 4}) == 0


def test_recent_players_come_from_latest_completed_matches():
    now = datetime(2026, 5, 1, 12, 0)
    pool = [
        _pool_match(f"m{idx}", [idx * 10 + 1, idx * 10 + 2], MatchStatus.COMPLETED.value, now + timedelta(minutes=idx))
        for idx in range(7)
    ]
    pool.append(_pool_match("open", [99]))
    recent = recent_completed_player_ids(pool, lookback=5)
    # the two oldest completions fall outside the window
    assert recent == {21, 22, 31, 32, 41, 42, 51, 52, 61, 62}


def test_all_rest_scores_are_four_before_anything_is_played(session: Session):
    make_category(session, "MD", [4, 4])
    generate_group_matches(session, "MD")
    snapshot = load_snapshot(session, Stage.GROUP)
    candidates = eligible_candidates(snapshot)
    assert len(candidates) == 12
    assert {c.rest_score for c in candidates} == {4}
    assert all(c.assignable for c in candidates)


def test_blocked_and_assigned_matches_are_not_eligible(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    first, second = session.exec(select(Match)).all()[:2]
    court_scheduler.assign_match(session, Stage.GROUP, "C1", MatchKind.GROUP, first.id)
    session.add(BlockedMatch(match_type=MatchKind.GROUP.value, match_id=second.id))
    session.commit()

    snapshot = load_snapshot(session, Stage.GROUP)
    keys = {c.key for c in eligible_candidates(snapshot)}
    assert build_match_key(MatchKind.GROUP, first.id) not in keys
    assert build_match_key(MatchKind.GROUP, second.id) not in keys
    assert len(keys) == 4


def test_matches_sharing_players_with_court_are_not_assignable(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    first = session.exec(select(Match)).first()
    court_scheduler.assign_match(session, Stage.GROUP, "C1", MatchKind.GROUP, first.id)

    snapshot = load_snapshot(session, Stage.GROUP)
    on_court = {first.home_team_id, first.away_team_id}
    for candidate in eligible_candidates(snapshot):
        shares = bool({candidate.match.home_team_id, candidate.match.away_team_id} & on_court)
        assert candidate.assignable is not shares
        assert 0 <= candidate.rest_score <= 4
        if shares:
            assert candidate.rest_score == 2


def test_group_pool_excludes_knockout_matches(session: Session):
    make_category(session, "MD", [3])
    generate_group_matches(session, "MD")
    pool = load_pool(session, Stage.GROUP)
    assert {m.kind for m in pool} == {MatchKind.GROUP}
    assert load_pool(session, Stage.KNOCKOUT) == []
