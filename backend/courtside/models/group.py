from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtside.models.team import Team


class Group(SQLModel, table=True):
    __tablename__ = "group_"
    __table_args__ = (SAUniqueConstraint("category_code", "name", name="uq_group_category_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    category_code: str = Field(index=True)
    name: str  # "A", "B", ...

    teams: List["GroupTeam"] = Relationship(back_populates="group")


class GroupTeam(SQLModel, table=True):
    __tablename__ = "groupteam"
    __table_args__ = (SAUniqueConstraint("team_id", name="uq_groupteam_team"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="group_.id", index=True)
    team_id: int = Field(foreign_key="team.id")

    group: Group = Relationship(back_populates="teams")
    team: "Team" = Relationship(back_populates="group_links")


class GroupStageLock(SQLModel, table=True):
    """Set once group results are final; knockout generation requires it."""

    __tablename__ = "groupstagelock"

    category_code: str = Field(primary_key=True)
    locked: bool = Field(default=False)
    locked_at: Optional[datetime] = Field(default=None)
