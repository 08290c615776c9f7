from enum import Enum


class Stage(str, Enum):
    GROUP = "GROUP"
    KNOCKOUT = "KNOCKOUT"


class MatchKind(str, Enum):
    GROUP = "GROUP"
    KNOCKOUT = "KNOCKOUT"


class MatchStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    WALKOVER = "WALKOVER"


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CLEARED = "CLEARED"
    CANCELED = "CANCELED"


class Series(str, Enum):
    A = "A"
    B = "B"


FINISHED_STATUSES = (MatchStatus.COMPLETED.value, MatchStatus.WALKOVER.value)


def stage_for_kind(kind: MatchKind) -> Stage:
    if kind == MatchKind.GROUP:
        return Stage.GROUP
    elif kind == MatchKind.KNOCKOUT:
        return Stage.KNOCKOUT
    raise ValueError(f"Unknown match kind: {kind}")


def kinds_for_stage(stage: Stage) -> tuple:
    if stage == Stage.GROUP:
        return (MatchKind.GROUP,)
    elif stage == Stage.KNOCKOUT:
        return (MatchKind.KNOCKOUT,)
    raise ValueError(f"Unknown stage: {stage}")
