from courtside.models.court import CourtAssignment, CourtState
from courtside.models.enums import AssignmentStatus, MatchKind, MatchStatus, Series, Stage
from courtside.models.group import Group, GroupStageLock, GroupTeam
from courtside.models.knockout import (
    CategoryConfig,
    KnockoutGameScore,
    KnockoutMatch,
    KnockoutSeed,
    SeriesQualifier,
)
from courtside.models.match import GameScore, Match
from courtside.models.random_draw import DrawOutcome, RandomDrawRecord
from courtside.models.schedule_control import (
    BlockedMatch,
    ForcedPriority,
    LastBatch,
    ScheduleActionLog,
    ScheduleConfig,
)
from courtside.models.team import Player, Team, TeamMember

__all__ = [
    "AssignmentStatus",
    "BlockedMatch",
    "CategoryConfig",
    "CourtAssignment",
    "CourtState",
    "DrawOutcome",
    "ForcedPriority",
    "GameScore",
    "Group",
    "GroupStageLock",
    "GroupTeam",
    "KnockoutGameScore",
    "KnockoutMatch",
    "KnockoutSeed",
    "LastBatch",
    "Match",
    "MatchKind",
    "MatchStatus",
    "Player",
    "RandomDrawRecord",
    "ScheduleActionLog",
    "ScheduleConfig",
    "Series",
    "SeriesQualifier",
    "Stage",
    "Team",
    "TeamMember",
]
