"""Game score validation and winner derivation for 21-point games."""
from dataclasses import dataclass
from typing import List, Optional, Sequence

from courtside import config


@dataclass
class GameInput:
    home_points: int
    away_points: int

    @property
    def is_blank(self) -> bool:
        return self.home_points == 0 and self.away_points == 0


class ScoreValidationError(ValueError):
    pass


def uses_best_of_3(is_best_of_3_match: bool = False, scoring_mode: Optional[str] = None) -> bool:
    mode = scoring_mode or config.SCORING_MODE
    return is_best_of_3_match or mode == config.SCORING_BEST_OF_3


def game_winner_side(game: GameInput) -> Optional[str]:
    if game.home_points > game.away_points:
        return "home"
    if game.away_points > game.home_points:
        return "away"
    return None


def derive_winner_side(games: Sequence[GameInput], best_of_3: bool) -> Optional[str]:
    """Return "home"/"away" once enough games are in, else None."""
    ordered = [g for g in games if not g.is_blank]
    if not ordered:
        return None
    if not best_of_3:
        return game_winner_side(ordered[0])
    home_wins = 0
    away_wins = 0
    for game in ordered[:3]:
        side = game_winner_side(game)
        if side == "home":
            home_wins += 1
        elif side == "away":
            away_wins += 1
        if home_wins == 2:
            return "home"
        if away_wins == 2:
            return "away"
    return None


def validate_games(games: List[GameInput], best_of_3: bool) -> List[GameInput]:
    """
    Check a submitted score sheet and return the games to store.

    Game 1 is always required. Best of three needs game 2 and, when the first
    two games are split, game 3. Games past the deciding one are dropped.
    """
    if not games or games[0].is_blank:
        raise ScoreValidationError("Game 1 score is required.")
    for idx, game in enumerate(games, start=1):
        if game.home_points < 0 or game.away_points < 0:
            raise ScoreValidationError(f"Game {idx} score cannot be negative.")
    if not best_of_3:
        if game_winner_side(games[0]) is None:
            raise ScoreValidationError("Game 1 cannot be tied.")
        return [games[0]]

    if len(games) < 2 or games[1].is_blank:
        raise ScoreValidationError("Game 2 score is required for best of 3.")
    for idx, game in enumerate(games[:2], start=1):
        if game_winner_side(game) is None:
            raise ScoreValidationError(f"Game {idx} cannot be tied.")
    if game_winner_side(games[0]) == game_winner_side(games[1]):
        return games[:2]
    if len(games) < 3 or games[2].is_blank:
        raise ScoreValidationError("Game 3 score is required when games are split.")
    if game_winner_side(games[2]) is None:
        raise ScoreValidationError("Game 3 cannot be tied.")
    return games[:3]
