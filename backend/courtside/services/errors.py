"""
Error taxonomy for scheduling and bracket operations.

PreconditionError and its subclasses are expected, non-fatal refusals with no
partial mutation. AssignmentConflictError is a lost uniqueness race.
BracketIntegrityError means the stored bracket is inconsistent and has to be
cleared and regenerated. Soft no-ops are not exceptions; they come back as
result objects.
"""


class SchedulingError(Exception):
    """Base exception for scheduling/bracket errors"""

    code = "SCHEDULING_ERROR"
    status_code = 400

    def __init__(self, message: str, code: str = None, status_code: int = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code

    def to_detail(self) -> dict:
        return {"error": self.code, "message": self.message}


class PreconditionError(SchedulingError):
    """Operation refused because current state does not allow it"""

    code = "PRECONDITION_FAILED"


class NotFoundError(PreconditionError):
    code = "NOT_FOUND"
    status_code = 404


class BracketError(PreconditionError):
    """Bracket generation refused (stage unlocked, wrong team count, ...)"""

    code = "BRACKET_ERROR"


class AssignmentConflictError(SchedulingError):
    """A concurrent writer won the unique ACTIVE-assignment race"""

    code = "ALREADY_ASSIGNED"
    status_code = 409


class BracketIntegrityError(SchedulingError):
    """Stored bracket state contradicts itself; clear and regenerate"""

    code = "BRACKET_INTEGRITY"
    status_code = 409
