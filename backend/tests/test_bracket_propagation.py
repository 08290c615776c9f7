"""Winner propagation, result changes, undo and second-chance drops."""
import pytest
from sqlmodel import Session, select

from courtside.models.enums import MatchStatus, Series
from courtside.models.knockout import KnockoutGameScore, KnockoutMatch
from courtside.services.bracket_propagation import record_knockout_score, sync_bracket, undo_knockout_score
from courtside.services.errors import BracketIntegrityError, NotFoundError, PreconditionError
from courtside.services.knockout_seeding import (
    compute_series_qualifiers,
    generate_full_bracket,
    set_final_best_of_3,
    set_second_chance,
)
from courtside.utils.scoring import GameInput
from tests.factories import complete_group_stage

HOME_WIN = [GameInput(21, 15)]
AWAY_WIN = [GameInput(15, 21)]


def _bracket(session: Session, series: Series):
    session.expire_all()
    rows = session.exec(
        select(KnockoutMatch).where(KnockoutMatch.category_code == "MD", KnockoutMatch.series == series.value)
    ).all()
    return {(m.round_no, m.match_no): m for m in rows}


@pytest.fixture
def brackets(session: Session):
    complete_group_stage(session, "MD", [4, 4, 4, 4])
    compute_series_qualifiers(session, "MD")
    generate_full_bracket(session, "MD")
    return session


@pytest.fixture
def second_chance(session: Session):
    complete_group_stage(session, "MD", [4, 4, 4, 4])
    compute_series_qualifiers(session, "MD")
    set_second_chance(session, "MD", True)
    generate_full_bracket(session, "MD")
    return session


def test_winner_advances_to_next_slot(brackets: Session):
    a = _bracket(brackets, Series.A)
    qf1, qf2 = a[(2, 1)], a[(2, 2)]
    record_knockout_score(brackets, qf1.id, HOME_WIN)
    record_knockout_score(brackets, qf2.id, AWAY_WIN)

    a = _bracket(brackets, Series.A)
    assert a[(2, 1)].status == MatchStatus.COMPLETED.value
    assert a[(3, 1)].home_team_id == a[(2, 1)].home_team_id
    assert a[(3, 1)].away_team_id == a[(2, 2)].away_team_id


def test_changed_result_resets_downstream(brackets: Session):
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(2, 1)].id, HOME_WIN)
    record_knockout_score(brackets, a[(2, 2)].id, HOME_WIN)
    record_knockout_score(brackets, a[(3, 1)].id, HOME_WIN)

    a = _bracket(brackets, Series.A)
    original_winner = a[(2, 1)].home_team_id
    assert a[(4, 1)].home_team_id == original_winner

    record_knockout_score(brackets, a[(2, 1)].id, AWAY_WIN)
    a = _bracket(brackets, Series.A)
    semi = a[(3, 1)]
    assert semi.home_team_id == a[(2, 1)].away_team_id
    assert semi.status == MatchStatus.SCHEDULED.value
    assert semi.winner_team_id is None
    assert semi.games == []
    assert a[(4, 1)].home_team_id is None


def test_rescoring_with_same_winner_keeps_downstream(brackets: Session):
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(2, 1)].id, HOME_WIN)
    record_knockout_score(brackets, a[(2, 2)].id, HOME_WIN)
    record_knockout_score(brackets, a[(3, 1)].id, HOME_WIN)

    record_knockout_score(brackets, a[(2, 1)].id, [GameInput(21, 19)])
    a = _bracket(brackets, Series.A)
    assert a[(3, 1)].status == MatchStatus.COMPLETED.value
    assert a[(4, 1)].home_team_id == a[(3, 1)].winner_team_id


def test_undo_withdraws_winner(brackets: Session):
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(2, 3)].id, HOME_WIN)
    undo_knockout_score(brackets, a[(2, 3)].id)

    a = _bracket(brackets, Series.A)
    assert a[(2, 3)].status == MatchStatus.SCHEDULED.value
    assert a[(2, 3)].winner_team_id is None
    assert a[(3, 2)].home_team_id is None


def test_blank_first_game_undoes(brackets: Session):
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(2, 4)].id, AWAY_WIN)
    record_knockout_score(brackets, a[(2, 4)].id, [GameInput(0, 0)])
    a = _bracket(brackets, Series.A)
    assert a[(2, 4)].winner_team_id is None
    assert a[(3, 2)].away_team_id is None


def test_scoring_requires_both_teams(brackets: Session):
    a = _bracket(brackets, Series.A)
    with pytest.raises(PreconditionError):
        record_knockout_score(brackets, a[(3, 1)].id, HOME_WIN)
    with pytest.raises(NotFoundError):
        record_knockout_score(brackets, "missing", HOME_WIN)


def test_best_of_3_final_needs_two_games(brackets: Session):
    a = _bracket(brackets, Series.A)
    for n in range(1, 5):
        record_knockout_score(brackets, a[(2, n)].id, HOME_WIN)
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(3, 1)].id, HOME_WIN)
    record_knockout_score(brackets, a[(3, 2)].id, HOME_WIN)
    final = _bracket(brackets, Series.A)[(4, 1)]
    set_final_best_of_3(brackets, final.id, True)

    with pytest.raises(PreconditionError) as exc:
        record_knockout_score(brackets, final.id, HOME_WIN)
    assert exc.value.code == "INVALID_SCORE"

    scored = record_knockout_score(brackets, final.id, [GameInput(21, 10), GameInput(18, 21), GameInput(21, 19)])
    assert scored.winner_team_id == scored.home_team_id
    assert len(scored.games) == 3


def test_sync_derives_missing_winner_and_reaches_fixed_point(brackets: Session):
    qf = _bracket(brackets, Series.B)[(2, 1)]
    brackets.add(KnockoutGameScore(knockout_match_id=qf.id, game_no=1, home_points=12, away_points=21))
    brackets.commit()

    first = sync_bracket(brackets, "MD")
    assert first["updated"] >= 2
    b = _bracket(brackets, Series.B)
    assert b[(2, 1)].winner_team_id == b[(2, 1)].away_team_id
    assert b[(2, 1)].status == MatchStatus.COMPLETED.value
    assert b[(3, 1)].home_team_id == b[(2, 1)].away_team_id

    second = sync_bracket(brackets, "MD")
    assert second == {"category_code": "MD", "updated": 0, "passes": 1}


def test_sync_rejects_winner_that_contradicts_games(brackets: Session):
    a = _bracket(brackets, Series.A)
    record_knockout_score(brackets, a[(2, 1)].id, HOME_WIN)
    qf = _bracket(brackets, Series.A)[(2, 1)]
    qf.winner_team_id = qf.away_team_id
    brackets.add(qf)
    brackets.commit()
    with pytest.raises(BracketIntegrityError):
        sync_bracket(brackets, "MD")


def test_second_chance_drops_quarterfinal_loser_into_series_b(second_chance: Session):
    a = _bracket(second_chance, Series.A)
    record_knockout_score(second_chance, a[(2, 2)].id, HOME_WIN)

    b = _bracket(second_chance, Series.B)
    a = _bracket(second_chance, Series.A)
    assert b[(2, 2)].home_team_id == a[(2, 2)].away_team_id
    assert b[(2, 1)].home_team_id is None


def test_second_chance_reversal_replaces_dropped_loser(second_chance: Session):
    a = _bracket(second_chance, Series.A)
    b = _bracket(second_chance, Series.B)
    record_knockout_score(second_chance, b[(1, 1)].id, HOME_WIN)
    record_knockout_score(second_chance, a[(2, 1)].id, HOME_WIN)
    b = _bracket(second_chance, Series.B)
    record_knockout_score(second_chance, b[(2, 1)].id, HOME_WIN)

    record_knockout_score(second_chance, a[(2, 1)].id, AWAY_WIN)
    a = _bracket(second_chance, Series.A)
    b = _bracket(second_chance, Series.B)
    assert b[(2, 1)].home_team_id == a[(2, 1)].home_team_id
    assert b[(2, 1)].winner_team_id is None
    assert b[(2, 1)].status == MatchStatus.SCHEDULED.value
    assert b[(3, 1)].home_team_id is None


def test_second_chance_conflict_is_fatal(second_chance: Session):
    a = _bracket(second_chance, Series.A)
    b = _bracket(second_chance, Series.B)
    intruder = b[(1, 4)].home_team_id
    b[(2, 1)].home_team_id = intruder
    second_chance.add(b[(2, 1)])
    second_chance.commit()

    with pytest.raises(BracketIntegrityError):
        record_knockout_score(second_chance, a[(2, 1)].id, HOME_WIN)
    qf = _bracket(second_chance, Series.A)[(2, 1)]
    assert qf.winner_team_id is None
    assert qf.games == []
