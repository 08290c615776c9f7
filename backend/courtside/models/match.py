import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel


def new_match_id() -> str:
    return uuid.uuid4().hex


class Match(SQLModel, table=True):
    """Group-stage fixture between two teams of the same group."""

    __table_args__ = (
        SAUniqueConstraint("group_id", "home_team_id", "away_team_id", name="uq_match_group_pair"),
    )

    id: str = Field(default_factory=new_match_id, primary_key=True)
    category_code: str = Field(index=True)
    group_id: int = Field(foreign_key="group_.id", index=True)
    stage: str = Field(default="GROUP")
    status: str = Field(default="SCHEDULED")  # SCHEDULED | COMPLETED | WALKOVER
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    completed_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    games: List["GameScore"] = Relationship(
        back_populates="match",
        sa_relationship_kwargs={"order_by": "GameScore.game_no", "cascade": "all, delete-orphan"},
    )


class GameScore(SQLModel, table=True):
    __tablename__ = "gamescore"
    __table_args__ = (SAUniqueConstraint("match_id", "game_no", name="uq_gamescore_match_game"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: str = Field(foreign_key="match.id", index=True)
    game_no: int
    home_points: int
    away_points: int

    match: Match = Relationship(back_populates="games")
