from datetime import datetime
from typing import List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from courtside.models.match import new_match_id


class KnockoutMatch(SQLModel, table=True):
    """
    One bracket slot of a (category, series) bracket.

    next_match_id/next_slot record where the winner flows (slot 1 = home,
    slot 2 = away). They are written once at generation time.
    """

    __tablename__ = "knockoutmatch"
    __table_args__ = (
        SAUniqueConstraint(
            "category_code", "series", "round_no", "match_no", name="uq_knockout_category_series_round_match"
        ),
    )

    id: str = Field(default_factory=new_match_id, primary_key=True)
    category_code: str = Field(index=True)
    series: str  # "A" | "B"
    round_no: int  # 1 = Series B play-in, 2 = quarterfinal, 3 = semifinal, 4 = final
    match_no: int
    is_published: bool = Field(default=False)
    is_best_of_3: bool = Field(default=False)
    status: str = Field(default="SCHEDULED")  # SCHEDULED | COMPLETED | WALKOVER
    home_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    away_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    next_match_id: Optional[str] = Field(default=None, foreign_key="knockoutmatch.id")
    next_slot: Optional[int] = Field(default=None)  # 1 | 2
    completed_at: Optional[datetime] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    games: List["KnockoutGameScore"] = Relationship(
        back_populates="match",
        sa_relationship_kwargs={"order_by": "KnockoutGameScore.game_no", "cascade": "all, delete-orphan"},
    )


class KnockoutGameScore(SQLModel, table=True):
    __tablename__ = "knockoutgamescore"
    __table_args__ = (SAUniqueConstraint("knockout_match_id", "game_no", name="uq_knockoutgame_match_game"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    knockout_match_id: str = Field(foreign_key="knockoutmatch.id", index=True)
    game_no: int
    home_points: int
    away_points: int

    match: KnockoutMatch = Relationship(back_populates="games")


class KnockoutSeed(SQLModel, table=True):
    __tablename__ = "knockoutseed"
    __table_args__ = (
        SAUniqueConstraint("category_code", "series", "seed_no", name="uq_seed_category_series_no"),
        SAUniqueConstraint("category_code", "series", "team_id", name="uq_seed_category_series_team"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    category_code: str = Field(index=True)
    series: str
    team_id: int = Field(foreign_key="team.id")
    seed_no: int


class SeriesQualifier(SQLModel, table=True):
    """Output of the series split: which team plays which series, with its ranking inputs."""

    __tablename__ = "seriesqualifier"
    __table_args__ = (SAUniqueConstraint("category_code", "team_id", name="uq_qualifier_category_team"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    category_code: str = Field(index=True)
    series: str
    team_id: int = Field(foreign_key="team.id")
    group_id: int = Field(foreign_key="group_.id")
    group_rank: int
    avg_points_against: float
    global_rank: int


class CategoryConfig(SQLModel, table=True):
    __tablename__ = "categoryconfig"

    category_code: str = Field(primary_key=True)
    second_chance_enabled: bool = Field(default=False)
