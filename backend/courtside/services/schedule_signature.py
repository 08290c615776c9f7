"""
Schedule signatures.

A signature is a pair of hashes over what a court board shows: the ACTIVE
assignments and the upcoming list. Clients poll the signature and only
refetch the full state when it moves; score routes compare signatures taken
before and after a write to report what kind of change the write caused.
"""
import hashlib
from dataclasses import dataclass
from typing import Dict, List, Optional

from sqlmodel import Session

from courtside.models.enums import Stage
from courtside.services.eligibility import StageSnapshot, assignment_match_key, load_snapshot
from courtside.services.priority_queue import build_upcoming, eligible_queue

CHANGE_ASSIGNMENT = "assignment"
CHANGE_UPCOMING = "upcoming"
CHANGE_BOTH = "both"


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def assignment_signature(snapshot: StageSnapshot) -> str:
    parts: List[str] = []
    for assignment in snapshot.active:
        parts.append(f"{assignment.court_id}|{assignment_match_key(assignment) or ''}")
    return "||".join(sorted(parts))


def upcoming_signature(snapshot: StageSnapshot) -> str:
    upcoming = build_upcoming(eligible_queue(snapshot))
    return "||".join(f"{c.key}|{c.forced_rank if c.forced_rank is not None else ''}" for c in upcoming)


@dataclass(frozen=True)
class ScheduleSignature:
    stage: str
    assignments: str
    upcoming: str

    def to_dict(self) -> Dict:
        return {"stage": self.stage, "assignments": self.assignments, "upcoming": self.upcoming}


def compute_signature(session: Session, stage: Stage) -> ScheduleSignature:
    """Read-only: hashes the stored state without reconciling it."""
    snapshot = load_snapshot(session, Stage(stage))
    return ScheduleSignature(
        stage=snapshot.stage.value,
        assignments=_digest(assignment_signature(snapshot)),
        upcoming=_digest(upcoming_signature(snapshot)),
    )


def change_kind(before: ScheduleSignature, after: ScheduleSignature) -> Optional[str]:
    assignments_moved = before.assignments != after.assignments
    upcoming_moved = before.upcoming != after.upcoming
    if assignments_moved and upcoming_moved:
        return CHANGE_BOTH
    if assignments_moved:
        return CHANGE_ASSIGNMENT
    if upcoming_moved:
        return CHANGE_UPCOMING
    return None

