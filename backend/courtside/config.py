"""Runtime settings read from the environment (and a local .env file)."""
import os
from typing import List

from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./courtside.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("true", "1", "yes")

SCORING_SINGLE_GAME = "SINGLE_GAME_21"
SCORING_BEST_OF_3 = "BEST_OF_3_21"
SCORING_MODE = os.getenv("SCORING_MODE", SCORING_SINGLE_GAME).upper()
if SCORING_MODE not in (SCORING_SINGLE_GAME, SCORING_BEST_OF_3):
    raise ValueError(f"Unsupported SCORING_MODE: {SCORING_MODE}")

SCHEDULE_LOG_LEVEL = os.getenv("SCHEDULE_LOG_LEVEL", "INFO").upper()


def _csv(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


COURT_IDS: List[str] = sorted(_csv(os.getenv("COURT_IDS", "C1,C2,C3,C4,C5")))
REDUCED_FORMAT_CATEGORIES = frozenset(
    code.upper() for code in _csv(os.getenv("REDUCED_FORMAT_CATEGORIES", "WD"))
)
CORS_ORIGINS: List[str] = _csv(os.getenv("CORS_ORIGINS", ""))

# Scheduling bounds
UPCOMING_LIMIT = 5
RECENT_COMPLETED_LOOKBACK = 5
LAST_BATCH_SIZE = 5
AUTO_FILL_MAX_PASSES = 10
PROPAGATION_MAX_PASSES = 5


def is_reduced_format(category_code: str) -> bool:
    return category_code.upper() in REDUCED_FORMAT_CATEGORIES
