"""Group fixtures, stage lock and group score entry."""
import pytest
from sqlmodel import Session, select

from courtside.models.court import CourtAssignment
from courtside.models.enums import MatchKind, MatchStatus, Stage
from courtside.models.match import Match
from courtside.services import court_scheduler
from courtside.services.errors import NotFoundError, PreconditionError
from courtside.services.group_stage import (
    clear_group_matches,
    generate_group_matches,
    is_group_stage_locked,
    record_group_score,
    set_group_stage_lock,
    undo_group_score,
)
from courtside.utils.scoring import GameInput
from tests.factories import group_matches, make_category


def test_round_robin_generation_is_idempotent(session: Session):
    fixtures = make_category(session, "MD", [4, 3])
    result = generate_group_matches(session, "MD")
    assert result["created"] == 6 + 3
    assert result["skipped"] == 0

    again = generate_group_matches(session, "MD")
    assert again["created"] == 0
    assert again["skipped"] == 9

    group, teams = fixtures[0]
    pairs = {frozenset((m.home_team_id, m.away_team_id)) for m in group_matches(session, group.id)}
    assert len(pairs) == 6
    assert all(len(p) == 2 for p in pairs)


def test_generation_requires_groups(session: Session):
    with pytest.raises(PreconditionError):
        generate_group_matches(session, "XD")


def test_record_and_undo_score(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).one()

    scored = record_group_score(session, match.id, [GameInput(21, 17)])
    assert scored.status == MatchStatus.COMPLETED.value
    assert scored.winner_team_id == match.home_team_id
    assert [(g.game_no, g.home_points, g.away_points) for g in scored.games] == [(1, 21, 17)]

    rescored = record_group_score(session, match.id, [GameInput(12, 21)])
    assert rescored.winner_team_id == match.away_team_id
    assert len(rescored.games) == 1

    undone = undo_group_score(session, match.id)
    assert undone.status == MatchStatus.SCHEDULED.value
    assert undone.winner_team_id is None
    assert undone.completed_at is None
    assert undone.games == []


def test_blank_first_game_is_an_undo(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).one()
    record_group_score(session, match.id, [GameInput(21, 5)])

    result = record_group_score(session, match.id, [GameInput(0, 0)])
    assert result.status == MatchStatus.SCHEDULED.value
    assert result.winner_team_id is None


def test_invalid_score_rejected(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).one()
    with pytest.raises(PreconditionError) as exc:
        record_group_score(session, match.id, [GameInput(21, 21)])
    assert exc.value.code == "INVALID_SCORE"


def test_locked_stage_refuses_score_edits(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).one()
    set_group_stage_lock(session, "MD", True)
    assert is_group_stage_locked(session, "MD")

    with pytest.raises(PreconditionError):
        record_group_score(session, match.id, [GameInput(21, 5)])

    set_group_stage_lock(session, "MD", False)
    assert record_group_score(session, match.id, [GameInput(21, 5)]).status == MatchStatus.COMPLETED.value


def test_unknown_match(session: Session):
    with pytest.raises(NotFoundError):
        record_group_score(session, "missing", [GameInput(21, 5)])


def test_clear_removes_matches_and_assignments(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    match = session.exec(select(Match)).first()
    court_scheduler.assign_match(session, Stage.GROUP, "C1", MatchKind.GROUP, match.id)

    result = clear_group_matches(session, "MD")
    assert result["deleted"] == 6
    assert session.exec(select(Match)).all() == []
    assert session.exec(select(CourtAssignment)).all() == []


def test_clear_refused_when_locked(session: Session):
    make_category(session, "MD", [2])
    generate_group_matches(session, "MD")
    set_group_stage_lock(session, "MD", True)
    with pytest.raises(PreconditionError):
        clear_group_matches(session, "MD")
