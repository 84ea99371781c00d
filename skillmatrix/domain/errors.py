"""
Typed failures raised by the assessment workflow.

Every error carries a stable ``kind`` so callers can pick the right response
without parsing messages. Infrastructure errors (SQLAlchemy) are not wrapped.
"""

from __future__ import annotations


class WorkflowError(Exception):
    """Base class for expected, caller-recoverable workflow failures."""

    kind = "workflow_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def as_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(WorkflowError):
    """Referenced assessment, cycle, skill, or user does not exist."""

    kind = "not_found"


class UnauthorizedError(WorkflowError):
    """Caller's role or relationship does not satisfy the transition's actor constraint."""

    kind = "unauthorized"


class InvalidStateError(WorkflowError):
    """Requested transition is not legal from the current status."""

    kind = "invalid_state"


class ValidationFailureError(WorkflowError):
    """Payload-level problem such as an out-of-range score."""

    kind = "validation_failure"


class StaleStateError(WorkflowError):
    """Aggregate changed between read and conditional update."""

    kind = "stale_state"


class ConflictError(WorkflowError):
    """Business conflict, e.g. the user already has an active assessment."""

    kind = "conflict"


__all__ = [
    "WorkflowError",
    "NotFoundError",
    "UnauthorizedError",
    "InvalidStateError",
    "ValidationFailureError",
    "StaleStateError",
    "ConflictError",
]
