from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError
from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel


class DrawOutcome(BaseModel):
    """Resolved tie-break: the full order, and for pairing draws the chosen team."""

    order: List[int]
    chosen_team_id: Optional[int] = None


class RandomDrawRecord(SQLModel, table=True):
    __tablename__ = "randomdrawrecord"

    id: Optional[int] = Field(default=None, primary_key=True)
    draw_key: str = Field(unique=True, index=True)
    draw_type: str  # STANDINGS | GLOBAL_RANKING | PAIRING
    category_code: Optional[str] = Field(default=None, index=True)
    series: Optional[str] = Field(default=None)
    round_no: Optional[int] = Field(default=None)
    payload: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    def outcome(self) -> Optional[DrawOutcome]:
        try:
            return DrawOutcome.model_validate(self.payload)
        except ValidationError:
            return None
