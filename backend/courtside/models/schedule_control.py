from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, SQLModel


class ForcedPriority(SQLModel, table=True):
    """Admin override; the most recently forced match ranks first."""

    __tablename__ = "forcedpriority"
    __table_args__ = (SAUniqueConstraint("match_type", "match_id", name="uq_forced_match"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_type: str
    match_id: str
    created_at: datetime = Field(default_factory=datetime.utcnow)


class BlockedMatch(SQLModel, table=True):
    __tablename__ = "blockedmatch"
    __table_args__ = (SAUniqueConstraint("match_type", "match_id", name="uq_blocked_match"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_type: str
    match_id: str
    reason: str = Field(default="injury / absent")
    created_at: datetime = Field(default_factory=datetime.utcnow)


class LastBatch(BaseModel):
    """Rolling window of the most recently assigned matches for a stage."""

    match_keys: List[str] = []
    player_ids: List[int] = []
    updated_at: Optional[datetime] = None

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "LastBatch":
        """Validate a stored blob; anything malformed reads as an empty window."""
        if not raw:
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError:
            return cls()


class ScheduleConfig(SQLModel, table=True):
    __tablename__ = "scheduleconfig"

    id: Optional[int] = Field(default=None, primary_key=True)
    stage: str = Field(unique=True)
    auto_schedule_enabled: bool = Field(default=False)
    last_batch_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def last_batch(self) -> LastBatch:
        return LastBatch.from_raw(self.last_batch_json)

    def set_last_batch(self, batch: LastBatch) -> None:
        self.last_batch_json = batch.model_dump(mode="json")
        self.updated_at = datetime.utcnow()


class ScheduleActionLog(SQLModel, table=True):
    __tablename__ = "scheduleactionlog"

    id: Optional[int] = Field(default=None, primary_key=True)
    stage: Optional[str] = Field(default=None, index=True)
    action: str
    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow)
