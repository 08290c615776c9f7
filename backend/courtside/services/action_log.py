from typing import Any, Optional

from sqlmodel import Session

from courtside.logging_config import get_logger
from courtside.models.schedule_control import ScheduleActionLog

logger = get_logger("courtside.scheduling.actions")


def record_action(session: Session, stage: Optional[str], action: str, **payload: Any) -> ScheduleActionLog:
    """Stage an audit row for a schedule mutation (committed with the caller's transaction)."""
    entry = ScheduleActionLog(stage=stage, action=action, payload=payload or None)
    session.add(entry)
    logger.info(action, stage=stage, **payload)
    return entry
