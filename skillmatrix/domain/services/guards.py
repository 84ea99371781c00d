"""Single authorization guard shared by every workflow transition."""

from __future__ import annotations

import enum

from skillmatrix.domain.errors import NotFoundError, UnauthorizedError
from skillmatrix.domain.models import UserRecord
from skillmatrix.infrastructure.db.models import AssessmentRequest, UserRole
from skillmatrix.infrastructure.repositories import UserDirectory


class Relationship(str, enum.Enum):
    """Actor constraints expressed relative to an assessment."""

    SUBJECT = "subject"  # the person being assessed
    SCORER = "scorer"  # the lead, or initiating HR when the subject has no lead


Requirement = UserRole | Relationship


def scorer_for(assessment: AssessmentRequest, subject: UserRecord) -> str:
    """User who writes scores: the subject's lead, else the initiating HR user."""
    return subject.lead_id or assessment.initiated_by


class AuthorizationGuard:
    """Checks ``(required role | required relationship, actor, aggregate)``."""

    def __init__(self, directory: UserDirectory) -> None:
        self.directory = directory

    async def authorize(
        self,
        actor_id: str,
        requirement: Requirement,
        *,
        assessment: AssessmentRequest | None = None,
        action: str = "perform this action",
    ) -> UserRecord:
        actor = await self.directory.get(actor_id)
        if actor is None:
            raise UnauthorizedError(f"Unknown user {actor_id} cannot {action}")

        if isinstance(requirement, UserRole):
            if actor.role != requirement:
                raise UnauthorizedError(f"Only {requirement.value} users can {action}")
            return actor

        if assessment is None:
            raise ValueError("Relationship checks need the assessment they relate to")

        expected = await self.expected_actor(requirement, assessment)
        if actor.id != expected:
            raise UnauthorizedError(f"You are not authorized to {action}")
        return actor

    async def expected_actor(
        self, relationship: Relationship, assessment: AssessmentRequest
    ) -> str:
        if relationship is Relationship.SUBJECT:
            return assessment.user_id
        subject = await self.subject_of(assessment)
        return scorer_for(assessment, subject)

    async def subject_of(self, assessment: AssessmentRequest) -> UserRecord:
        subject = await self.directory.get(assessment.user_id)
        if subject is None:
            raise NotFoundError(f"User {assessment.user_id} not found")
        return subject
