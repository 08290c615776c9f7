from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtside.models.group import GroupTeam


class Player(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str


class Team(SQLModel, table=True):
    """Roster entry. Owned by the roster import; the engine only toggles the knock-out seed flag."""

    id: Optional[int] = Field(default=None, primary_key=True)
    category_code: str = Field(index=True)  # "MD" | "WD" | "XD" ...
    name: str
    is_knockout_seed: bool = Field(default=False)  # seeded ahead of the ranking in Series B

    members: List["TeamMember"] = Relationship(back_populates="team")
    group_links: List["GroupTeam"] = Relationship(back_populates="team")


class TeamMember(SQLModel, table=True):
    __tablename__ = "teammember"
    __table_args__ = (SAUniqueConstraint("team_id", "player_id", name="uq_teammember_team_player"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    player_id: int = Field(foreign_key="player.id", index=True)

    team: Team = Relationship(back_populates="members")
