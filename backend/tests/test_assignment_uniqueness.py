"""Storage-level uniqueness of ACTIVE court assignments."""
import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from courtside.models.court import CourtAssignment
from courtside.models.enums import AssignmentStatus, MatchKind, Stage
from courtside.models.match import Match
from courtside.services.group_stage import generate_group_matches
from tests.factories import make_category


def _assignment(court_id, match_id, status=AssignmentStatus.ACTIVE, stage=Stage.GROUP):
    return CourtAssignment(
        court_id=court_id,
        stage=stage.value,
        match_type=MatchKind.GROUP.value,
        group_match_id=match_id,
        status=status.value,
    )


@pytest.fixture
def two_matches(session: Session):
    make_category(session, "MD", [4])
    generate_group_matches(session, "MD")
    return session.exec(select(Match)).all()[:2]


def test_one_active_assignment_per_court(session: Session, two_matches):
    first, second = two_matches
    session.add(_assignment("C1", first.id))
    session.commit()
    session.add(_assignment("C1", second.id))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_one_active_assignment_per_match(session: Session, two_matches):
    first, _ = two_matches
    session.add(_assignment("C1", first.id))
    session.commit()
    session.add(_assignment("C2", first.id))
    with pytest.raises(IntegrityError):
        session.commit()
    session.rollback()


def test_finished_rows_do_not_count(session: Session, two_matches):
    first, second = two_matches
    session.add(_assignment("C1", first.id, status=AssignmentStatus.CLEARED))
    session.add(_assignment("C1", second.id, status=AssignmentStatus.CANCELED))
    session.add(_assignment("C1", first.id))
    session.commit()
    rows = session.exec(select(CourtAssignment).where(CourtAssignment.court_id == "C1")).all()
    assert len(rows) == 3


def test_same_court_in_other_stage_is_independent(session: Session, two_matches):
    first, second = two_matches
    session.add(_assignment("C1", first.id))
    session.add(_assignment("C1", second.id, stage=Stage.KNOCKOUT))
    session.commit()
