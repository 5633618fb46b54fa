"""
Exceptions raised by the training plan engine.

Four families cover every failure the engine surfaces:
- not-found: a record the operation cannot default around
- persistence: the record store rejected a write
- invalid input: caller-supplied values that are rejected, never coerced
- state invariant: the stored state is inconsistent (e.g. two active plans)
"""

from typing import Any, Dict, Optional


class PlannerError(Exception):
    """Base class for all engine errors."""

    code = "PLANNER_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(PlannerError):
    """A required record does not exist."""

    code = "NOT_FOUND"


class PersistenceError(PlannerError):
    """A record-store write failed."""

    code = "PERSISTENCE_ERROR"


class InvalidInputError(PlannerError):
    """Caller supplied a malformed value."""

    code = "INVALID_INPUT"


class StateInvariantError(PlannerError):
    """Stored state violates an engine invariant."""

    code = "STATE_INVARIANT"


class ConcurrentModificationError(StateInvariantError):
    """A conditional update lost a race with another writer."""

    code = "CONCURRENT_MODIFICATION"
