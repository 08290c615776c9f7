from datetime import datetime
from typing import Optional

from sqlalchemy import Index, UniqueConstraint as SAUniqueConstraint, text
from sqlmodel import Field, SQLModel

_ACTIVE_ONLY = text("status = 'ACTIVE'")


class CourtState(SQLModel, table=True):
    __tablename__ = "courtstate"
    __table_args__ = (SAUniqueConstraint("court_id", "stage", name="uq_courtstate_court_stage"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    court_id: str
    stage: str  # GROUP | KNOCKOUT
    is_locked: bool = Field(default=False)
    lock_note: Optional[str] = Field(default=None)
    updated_at: datetime = Field(default_factory=datetime.utcnow)


class CourtAssignment(SQLModel, table=True):
    """
    Court-to-match binding for one stage.

    At most one ACTIVE row per (court, stage) and per (match, stage); both are
    partial unique indexes so a losing concurrent writer gets an IntegrityError.
    A row with neither match id set is an "empty" assignment and is swept by the
    fill loop.
    """

    __tablename__ = "courtassignment"
    __table_args__ = (
        Index(
            "uq_assignment_active_court",
            "court_id",
            "stage",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_assignment_active_group_match",
            "group_match_id",
            "stage",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
        Index(
            "uq_assignment_active_knockout_match",
            "knockout_match_id",
            "stage",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    court_id: str = Field(index=True)
    stage: str
    match_type: Optional[str] = Field(default=None)  # GROUP | KNOCKOUT
    group_match_id: Optional[str] = Field(default=None, foreign_key="match.id")
    knockout_match_id: Optional[str] = Field(default=None, foreign_key="knockoutmatch.id")
    status: str = Field(default="ACTIVE", index=True)  # ACTIVE | CLEARED | CANCELED
    assigned_at: datetime = Field(default_factory=datetime.utcnow)
    cleared_at: Optional[datetime] = Field(default=None)

    @property
    def match_id(self) -> Optional[str]:
        return self.group_match_id or self.knockout_match_id

    @property
    def is_empty(self) -> bool:
        return self.group_match_id is None and self.knockout_match_id is None
