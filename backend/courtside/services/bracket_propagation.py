"""
Winner propagation through knockout brackets.

Every completed match pushes its winner into the slot its next_match_id /
next_slot pointer names. With second chance enabled, the loser of Series A
quarterfinal i is also seated in the home slot of Series B quarterfinal i.

When a result changes or is undone, teams that were advanced on the strength
of the old result are pulled back out, and any downstream match that had
already been played with them is reset. The cascade runs off a worklist so a
chain of resets never recurses.

sync_bracket repeats full passes until nothing changes (bounded by
PROPAGATION_MAX_PASSES) and commits once per pass.
"""
from collections import deque
from datetime import datetime
from typing import Deque, Dict, List, Optional, Set, Tuple

from sqlmodel import Session, select

from courtside import config
from courtside.logging_config import get_logger
from courtside.models.enums import MatchStatus, Series
from courtside.models.knockout import KnockoutGameScore, KnockoutMatch
from courtside.services.errors import BracketIntegrityError, NotFoundError, PreconditionError, SchedulingError
from courtside.services.knockout_seeding import QUARTERFINAL_ROUND, second_chance_active
from courtside.utils.scoring import (
    GameInput,
    ScoreValidationError,
    derive_winner_side,
    uses_best_of_3,
    validate_games,
)

logger = get_logger("courtside.knockout.propagation")

SLOT_FIELDS = {1: "home_team_id", 2: "away_team_id"}


def loser_of(match: KnockoutMatch, winner_team_id: Optional[int]) -> Optional[int]:
    if winner_team_id is None:
        return None
    if winner_team_id == match.home_team_id:
        return match.away_team_id
    if winner_team_id == match.away_team_id:
        return match.home_team_id
    return None


class BracketContext:
    """Every knockout match of one category, loaded once and edited in place."""

    def __init__(self, session: Session, category_code: str):
        self.session = session
        self.category_code = category_code
        self.matches: List[KnockoutMatch] = list(
            session.exec(
                select(KnockoutMatch)
                .where(KnockoutMatch.category_code == category_code)
                .order_by(KnockoutMatch.series, KnockoutMatch.round_no, KnockoutMatch.match_no)
            ).all()
        )
        self.by_id: Dict[str, KnockoutMatch] = {m.id: m for m in self.matches}
        self.second_chance = second_chance_active(session, category_code)
        self.a_quarterfinals = self._quarterfinals(Series.A)
        self.b_quarterfinals = self._quarterfinals(Series.B)
        self.changed: Set[str] = set()
        self._pending: Deque[Tuple[KnockoutMatch, int]] = deque()

    def _quarterfinals(self, series: Series) -> Dict[int, KnockoutMatch]:
        return {
            m.match_no: m
            for m in self.matches
            if m.series == series.value and m.round_no == QUARTERFINAL_ROUND
        }

    def _touch(self, match: KnockoutMatch) -> None:
        self.changed.add(match.id)
        self.session.add(match)

    def is_a_quarterfinal(self, match: KnockoutMatch) -> bool:
        return match.series == Series.A.value and match.round_no == QUARTERFINAL_ROUND

    def derive_winner(self, match: KnockoutMatch) -> Optional[int]:
        if match.home_team_id is None or match.away_team_id is None or not match.games:
            return None
        games = [GameInput(g.home_points, g.away_points) for g in match.games]
        side = derive_winner_side(games, uses_best_of_3(match.is_best_of_3))
        if side == "home":
            return match.home_team_id
        if side == "away":
            return match.away_team_id
        return None

    def reset(self, match: KnockoutMatch) -> Optional[int]:
        """Wipe the result of match; return the winner it had."""
        old_winner = match.winner_team_id
        if match.games:
            match.games.clear()
        match.winner_team_id = None
        match.status = MatchStatus.SCHEDULED.value
        match.completed_at = None
        self._touch(match)
        return old_winner

    def _invalidate(self, match: KnockoutMatch) -> None:
        had_result = match.winner_team_id is not None or bool(match.games)
        old_winner = self.reset(match)
        if had_result and old_winner is not None:
            self._pending.append((match, old_winner))

    def place(self, target: KnockoutMatch, slot: int, team_id: int) -> None:
        field_name = SLOT_FIELDS[slot]
        current = getattr(target, field_name)
        if current == team_id:
            return
        setattr(target, field_name, team_id)
        self._touch(target)
        if current is not None:
            logger.info(
                "slot occupant replaced",
                match_id=target.id,
                slot=slot,
                previous=current,
                team_id=team_id,
            )
            self._invalidate(target)

    def _clear_slot_if(self, target: KnockoutMatch, field_name: str, team_id: Optional[int]) -> None:
        if team_id is None or getattr(target, field_name) != team_id:
            return
        setattr(target, field_name, None)
        self._touch(target)
        self._invalidate(target)

    def cascade(self, match: KnockoutMatch, old_winner: int) -> None:
        """Queue the withdrawal of everything old_winner's result put downstream."""
        self._pending.append((match, old_winner))
        self.drain()

    def drain(self) -> None:
        while self._pending:
            match, old_winner = self._pending.popleft()
            target = self.by_id.get(match.next_match_id) if match.next_match_id else None
            if target is not None and match.next_slot in SLOT_FIELDS:
                self._clear_slot_if(target, SLOT_FIELDS[match.next_slot], old_winner)
            if self.second_chance and self.is_a_quarterfinal(match):
                b_qf = self.b_quarterfinals.get(match.match_no)
                if b_qf is not None:
                    self._clear_slot_if(b_qf, "home_team_id", loser_of(match, old_winner))

    def drop_loser(self, a_qf: KnockoutMatch) -> None:
        """Seat the loser of a Series A quarterfinal in its Series B quarterfinal."""
        loser = loser_of(a_qf, a_qf.winner_team_id)
        b_qf = self.b_quarterfinals.get(a_qf.match_no)
        if loser is None or b_qf is None:
            return
        for other in self.b_quarterfinals.values():
            seats = (other.away_team_id,) if other is b_qf else (other.home_team_id, other.away_team_id)
            if loser in seats:
                raise BracketIntegrityError(
                    f"Second chance conflict: team {loser} is already seated in Series B match {other.id}. "
                    "Clear and regenerate the bracket."
                )
        current = b_qf.home_team_id
        if current == loser:
            return
        if current is None:
            b_qf.home_team_id = loser
            self._touch(b_qf)
            return
        if current in (a_qf.home_team_id, a_qf.away_team_id):
            # the A quarterfinal result was reversed
            b_qf.home_team_id = loser
            self._touch(b_qf)
            self._invalidate(b_qf)
            self.drain()
            return
        raise BracketIntegrityError(
            f"Second chance conflict: Series B match {b_qf.id} home slot holds team {current}, "
            f"expected a team from Series A match {a_qf.id}. Clear and regenerate the bracket."
        )

    def advance(self, match: KnockoutMatch) -> None:
        """Push match's winner (and second-chance loser) forward."""
        if match.winner_team_id is None:
            return
        target = self.by_id.get(match.next_match_id) if match.next_match_id else None
        if target is not None and match.next_slot in SLOT_FIELDS:
            self.place(target, match.next_slot, match.winner_team_id)
            self.drain()
        if self.second_chance and self.is_a_quarterfinal(match):
            self.drop_loser(match)

    def settle(self, match: KnockoutMatch) -> None:
        """Bring match's stored winner and status in line with its games."""
        derived = self.derive_winner(match)
        if match.winner_team_id is not None and derived is not None and derived != match.winner_team_id:
            raise BracketIntegrityError(
                f"Match {match.id} stores winner {match.winner_team_id} but its games give {derived}. "
                "Clear and regenerate the bracket."
            )
        if derived is not None and match.winner_team_id is None:
            match.winner_team_id = derived
            match.status = MatchStatus.COMPLETED.value
            match.completed_at = match.completed_at or datetime.utcnow()
            self._touch(match)
        elif match.winner_team_id is not None and match.status == MatchStatus.SCHEDULED.value:
            match.status = MatchStatus.COMPLETED.value
            match.completed_at = match.completed_at or datetime.utcnow()
            self._touch(match)


def sync_bracket(session: Session, category_code: str) -> Dict:
    """Propagate every stored result until the category's brackets reach a fixed point."""
    updated: Set[str] = set()
    passes = 0
    for passes in range(1, config.PROPAGATION_MAX_PASSES + 1):
        ctx = BracketContext(session, category_code)
        try:
            for match in ctx.matches:
                ctx.settle(match)
                ctx.advance(match)
            session.commit()
        except SchedulingError:
            session.rollback()
            raise
        if not ctx.changed:
            break
        updated |= ctx.changed
    else:
        logger.warning("propagation pass limit reached", category=category_code, passes=passes)
    logger.debug("bracket synced", category=category_code, passes=passes, updated=len(updated))
    return {"category_code": category_code, "updated": len(updated), "passes": passes}


def _load_scorable(session: Session, match_id: str) -> KnockoutMatch:
    match = session.get(KnockoutMatch, match_id)
    if match is None:
        raise NotFoundError("Match not found.")
    return match


def record_knockout_score(session: Session, match_id: str, games: List[GameInput]) -> KnockoutMatch:
    """
    Store a knockout result and push it through the bracket.

    A changed winner first withdraws the previous winner from every downstream
    slot. A 0-0 first game is an undo.
    """
    match = _load_scorable(session, match_id)
    if match.home_team_id is None or match.away_team_id is None:
        raise PreconditionError("Both teams must be set before scoring.", code="TEAMS_NOT_SET")
    if games and games[0].is_blank:
        return undo_knockout_score(session, match_id)

    best_of_3 = uses_best_of_3(match.is_best_of_3)
    try:
        accepted = validate_games(games, best_of_3)
    except ScoreValidationError as exc:
        raise PreconditionError(str(exc), code="INVALID_SCORE") from exc
    side = derive_winner_side(accepted, best_of_3)
    new_winner = match.home_team_id if side == "home" else match.away_team_id

    category_code = match.category_code
    ctx = BracketContext(session, category_code)
    match = ctx.by_id[match_id]
    try:
        old_winner = match.winner_team_id
        if old_winner is not None and old_winner != new_winner:
            ctx.cascade(match, old_winner)
        match.games.clear()
        session.flush()
        for game_no, game in enumerate(accepted, start=1):
            match.games.append(
                KnockoutGameScore(game_no=game_no, home_points=game.home_points, away_points=game.away_points)
            )
        match.winner_team_id = new_winner
        match.status = MatchStatus.COMPLETED.value
        match.completed_at = datetime.utcnow()
        session.add(match)
        ctx.advance(match)
        session.commit()
    except SchedulingError:
        session.rollback()
        raise
    logger.info(
        "knockout score recorded",
        match_id=match_id,
        category=category_code,
        winner=new_winner,
        previous=old_winner,
        cascaded=len(ctx.changed),
    )
    sync_bracket(session, category_code)
    session.refresh(match)
    return match


def undo_knockout_score(session: Session, match_id: str) -> KnockoutMatch:
    match = _load_scorable(session, match_id)
    category_code = match.category_code
    ctx = BracketContext(session, category_code)
    match = ctx.by_id[match_id]
    try:
        old_winner = ctx.reset(match)
        if old_winner is not None:
            ctx.cascade(match, old_winner)
        session.commit()
    except SchedulingError:
        session.rollback()
        raise
    logger.info("knockout score undone", match_id=match_id, category=category_code, previous=old_winner)
    sync_bracket(session, category_code)
    session.refresh(match)
    return match
