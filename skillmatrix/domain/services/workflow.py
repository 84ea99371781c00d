"""
Assessment workflow engine.

HR initiates, the scorer (team lead) writes scores, the employee accepts or
disputes, HR finalizes. Every command runs in one unit of work: the status
change, score rows and audit entry commit together or not at all.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime

import structlog
from skillmatrix.core.config import get_settings
from skillmatrix.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    ValidationFailureError,
)
from skillmatrix.domain.models import UserRecord
from skillmatrix.domain.services.guards import AuthorizationGuard, Relationship, scorer_for
from skillmatrix.domain.services.scheduling import (
    Clock,
    ensure_utc,
    is_accessible,
    next_recurrence,
    utcnow,
)
from skillmatrix.domain.services.transitions import apply_transition
from skillmatrix.domain.services.views import AssessmentView, AssessmentViewBuilder
from skillmatrix.infrastructure.db.models import (
    AssessmentRequest,
    AssessmentStatus,
    AuditType,
    CycleStatus,
    HrDecision,
    UserRole,
)
from skillmatrix.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()

HR_REVIEWABLE = (AssessmentStatus.EMPLOYEE_APPROVED, AssessmentStatus.HR_FINAL_REVIEW)


class AssessmentWorkflowService:
    """Role-gated transitions of a single assessment aggregate."""

    def __init__(self, uow: UnitOfWork, *, clock: Clock = utcnow) -> None:
        self.uow = uow
        self.clock = clock
        self.guard = AuthorizationGuard(uow.users)
        self.views = AssessmentViewBuilder(uow, clock=clock)
        self.settings = get_settings()

    async def initiate(
        self,
        *,
        hr_id: str,
        target_user_id: str,
        skill_ids: Sequence[int],
        scheduled_date: datetime | None = None,
        comments: str = "",
    ) -> AssessmentView:
        """Start an assessment for one employee or lead on behalf of HR."""
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="initiate assessments")
            skill_ids = await self.validate_skills(skill_ids)
            target = await self.uow.users.get(target_user_id)
            if target is None:
                raise NotFoundError(f"Target user {target_user_id} not found")
            assessment = await self.open_request(
                subject=target,
                initiated_by=hr_id,
                skill_ids=skill_ids,
                scheduled_date=scheduled_date,
                comments=comments,
            )
            return await self.views.build(assessment.id)

    async def write_lead_assessment(
        self,
        *,
        lead_id: str,
        assessment_id: str,
        scores: Mapping[int, int],
        comments: str = "",
    ) -> AssessmentView:
        """
        Record the scorer's scores and hand the assessment to the employee.

        The submission is validated as a whole: one bad score rejects all of them
        and nothing is written.
        """
        async with self.uow:
            assessment = await self._load(assessment_id)
            await self.guard.authorize(
                lead_id, Relationship.SCORER, assessment=assessment, action="write this assessment"
            )
            subject = await self.guard.subject_of(assessment)
            self._ensure_writable(assessment, subject)

            existing = await self.uow.scores.for_assessment(assessment.id)
            validated = self._validate_scores(scores, {row.skill_id for row in existing})

            now = self.clock()
            await apply_transition(
                self.uow,
                assessment,
                to=AssessmentStatus.EMPLOYEE_REVIEW,
                actor_id=lead_id,
                audit_type=AuditType.LEAD_ASSESSMENT_WRITTEN,
                comments=comments,
                next_approver=assessment.user_id,
                lead_assessment_date=now,
            )
            await self.uow.scores.write_lead_scores(assessment.id, validated)
            return await self.views.build(assessment.id)

    async def employee_review(
        self,
        *,
        employee_id: str,
        assessment_id: str,
        approved: bool,
        comments: str = "",
    ) -> AssessmentView:
        """Employee accepts the scores or disputes them."""
        async with self.uow:
            assessment = await self._load(assessment_id)
            await self.guard.authorize(
                employee_id,
                Relationship.SUBJECT,
                assessment=assessment,
                action="review this assessment",
            )
            self._ensure_status(assessment, (AssessmentStatus.EMPLOYEE_REVIEW,), "reviewable")

            if approved:
                target, audit_type = AssessmentStatus.EMPLOYEE_APPROVED, AuditType.EMPLOYEE_APPROVED
                next_approver = assessment.initiated_by
            else:
                target, audit_type = AssessmentStatus.EMPLOYEE_REJECTED, AuditType.EMPLOYEE_REJECTED
                next_approver = await self.guard.expected_actor(Relationship.SCORER, assessment)

            await apply_transition(
                self.uow,
                assessment,
                to=target,
                actor_id=employee_id,
                audit_type=audit_type,
                comments=comments,
                next_approver=next_approver,
                employee_response_date=self.clock(),
                employee_approved=approved,
                employee_comments=comments,
            )
            return await self.views.build(assessment.id)

    async def resolve_dispute(
        self,
        *,
        lead_id: str,
        assessment_id: str,
        escalate: bool,
        comments: str = "",
    ) -> AssessmentView:
        """Scorer answers an employee rejection: rework the scores or hand it to HR."""
        async with self.uow:
            assessment = await self._load(assessment_id)
            await self.guard.authorize(
                lead_id,
                Relationship.SCORER,
                assessment=assessment,
                action="resolve this dispute",
            )
            self._ensure_status(assessment, (AssessmentStatus.EMPLOYEE_REJECTED,), "disputed")

            if escalate:
                await apply_transition(
                    self.uow,
                    assessment,
                    to=AssessmentStatus.HR_FINAL_REVIEW,
                    actor_id=lead_id,
                    audit_type=AuditType.DISPUTE_ESCALATED,
                    comments=comments,
                    next_approver=assessment.initiated_by,
                )
            else:
                await apply_transition(
                    self.uow,
                    assessment,
                    to=AssessmentStatus.LEAD_WRITING,
                    actor_id=lead_id,
                    audit_type=AuditType.DISPUTE_REOPENED,
                    comments=comments,
                    next_approver=lead_id,
                )
            return await self.views.build(assessment.id)

    async def hr_final_review(
        self,
        *,
        hr_id: str,
        assessment_id: str,
        approved: bool,
        comments: str = "",
    ) -> AssessmentView:
        """
        HR closes the assessment or sends it back to the scorer for rework.

        Approval rolls up the batch cycle and schedules the next recurrence when
        the assessment carries a next scheduled date.
        """
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="perform final review")
            assessment = await self._load(assessment_id)
            if assessment.status not in HR_REVIEWABLE:
                raise InvalidStateError("Assessment is not ready for HR final review")

            if approved:
                subject = await self.guard.subject_of(assessment)
                await apply_transition(
                    self.uow,
                    assessment,
                    to=AssessmentStatus.COMPLETED,
                    actor_id=hr_id,
                    audit_type=AuditType.HR_APPROVED,
                    comments=comments,
                    next_approver=None,
                    completed_at=self.clock(),
                    hr_final_decision=HrDecision.APPROVED,
                    hr_comments=comments,
                )
                if assessment.cycle_id:
                    await self._roll_up_cycle(assessment.cycle_id)
                if assessment.next_scheduled_date:
                    await self._schedule_recurrence(assessment, subject)
            else:
                next_approver = await self.guard.expected_actor(Relationship.SCORER, assessment)
                # audit entry carries the rework cycle number
                await apply_transition(
                    self.uow,
                    assessment,
                    to=AssessmentStatus.LEAD_WRITING,
                    actor_id=hr_id,
                    audit_type=AuditType.HR_REJECTED,
                    comments=comments,
                    current_cycle=assessment.current_cycle + 1,
                    next_approver=next_approver,
                    hr_final_decision=HrDecision.REJECTED,
                    hr_comments=comments,
                )
                await logger.ainfo(
                    "assessment_sent_back_for_rework",
                    assessment_id=assessment.id,
                    cycle=assessment.current_cycle,
                    next_approver=next_approver,
                )
            return await self.views.build(assessment.id)

    async def cancel(self, *, hr_id: str, assessment_id: str, comments: str = "") -> AssessmentView:
        """Cancel a non-terminal assessment on behalf of HR."""
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="cancel assessments")
            assessment = await self._load(assessment_id)
            await self.cancel_request(assessment, actor_id=hr_id, comments=comments)
            return await self.views.build(assessment.id)

    async def validate_skills(self, skill_ids: Sequence[int]) -> list[int]:
        """Return sorted, de-duplicated skill ids after checking every one exists."""
        if not skill_ids:
            raise ValidationFailureError("At least one skill id is required")
        if any(isinstance(skill_id, bool) or not isinstance(skill_id, int) for skill_id in skill_ids):
            raise ValidationFailureError("Skill ids must be integers")
        unique_ids = sorted(set(skill_ids))
        found = {skill.id for skill in await self.uow.skills.get_many(unique_ids)}
        missing = [skill_id for skill_id in unique_ids if skill_id not in found]
        if missing:
            raise NotFoundError(f"Skill(s) not found: {', '.join(map(str, missing))}")
        return unique_ids

    async def open_request(
        self,
        *,
        subject: UserRecord,
        initiated_by: str,
        skill_ids: Sequence[int],
        scheduled_date: datetime | None = None,
        comments: str = "",
        cycle_id: str | None = None,
        audit_comments: str | None = None,
    ) -> AssessmentRequest:
        """Create an assessment for ``subject``; callers authorize and validate skills."""
        if subject.role not in UserRole.assessable():
            raise ValidationFailureError(
                "HR can only initiate assessments for employees and team leads"
            )
        if await self.uow.assessments.find_active_for_user(subject.id) is not None:
            raise ConflictError(f"User {subject.id} already has an active assessment")

        now = self.clock()
        next_scheduled = (
            next_recurrence(scheduled_date, self.settings.recurrence_interval_days)
            if scheduled_date
            else None
        )
        # a subject with a lead goes straight to the lead; otherwise HR scores from INITIATED
        status = AssessmentStatus.LEAD_WRITING if subject.has_lead else AssessmentStatus.INITIATED
        assessment = await self.uow.assessments.add(
            AssessmentRequest(
                user_id=subject.id,
                cycle_id=cycle_id,
                status=status,
                initiated_by=initiated_by,
                next_approver=subject.lead_id or initiated_by,
                scheduled_date=ensure_utc(scheduled_date) if scheduled_date else now,
                next_scheduled_date=next_scheduled,
                current_cycle=1,
                comments=comments or None,
                requested_at=now,
            )
        )
        await self.uow.scores.create_empty(assessment.id, skill_ids)
        await self.uow.audit.record(
            assessment_id=assessment.id,
            audit_type=AuditType.INITIATED.value,
            editor_id=initiated_by,
            cycle_number=1,
            comments=audit_comments if audit_comments is not None else comments,
        )
        await logger.ainfo(
            "assessment_initiated",
            assessment_id=assessment.id,
            user_id=subject.id,
            initiated_by=initiated_by,
            status=status.value,
            cycle_id=assessment.cycle_id,
            skills=list(skill_ids),
        )
        return assessment

    async def cancel_request(
        self, assessment: AssessmentRequest, *, actor_id: str, comments: str = ""
    ) -> None:
        """Move ``assessment`` to CANCELLED; completed and cancelled ones are final."""
        if assessment.status is AssessmentStatus.COMPLETED:
            raise InvalidStateError("Cannot cancel completed assessment")
        if assessment.status is AssessmentStatus.CANCELLED:
            raise InvalidStateError("Assessment is already cancelled")
        await apply_transition(
            self.uow,
            assessment,
            to=AssessmentStatus.CANCELLED,
            actor_id=actor_id,
            audit_type=AuditType.CANCELLED,
            comments=comments or "Assessment cancelled",
            next_approver=None,
        )

    async def _load(self, assessment_id: str) -> AssessmentRequest:
        assessment = await self.uow.assessments.get(assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        return assessment

    def _ensure_status(
        self,
        assessment: AssessmentRequest,
        allowed: Sequence[AssessmentStatus],
        description: str,
    ) -> None:
        if assessment.status not in allowed:
            raise InvalidStateError(
                f"Assessment is not in a {description} state (status {assessment.status.value})"
            )

    def _ensure_writable(self, assessment: AssessmentRequest, subject: UserRecord) -> None:
        if assessment.status is AssessmentStatus.LEAD_WRITING:
            return
        if assessment.status is AssessmentStatus.INITIATED and not subject.has_lead:
            if not is_accessible(
                status=assessment.status,
                scheduled_date=assessment.scheduled_date,
                now=self.clock(),
            ):
                raise InvalidStateError("Assessment is not accessible before its scheduled date")
            return
        raise InvalidStateError(
            f"Assessment is not in a writable state (status {assessment.status.value})"
        )

    def _validate_scores(self, scores: Mapping[int, int], skill_ids: set[int]) -> dict[int, int]:
        """All-or-nothing validation of a lead submission."""
        if not scores:
            raise ValidationFailureError("At least one skill score is required")
        low, high = self.settings.score_min, self.settings.score_max
        validated: dict[int, int] = {}
        for skill_id, value in scores.items():
            if skill_id not in skill_ids:
                raise ValidationFailureError(f"Skill {skill_id} is not part of this assessment")
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationFailureError(f"Score for skill {skill_id} must be an integer")
            if not low <= value <= high:
                raise ValidationFailureError(
                    f"Invalid lead score for skill {skill_id}. Must be between {low} and {high}"
                )
            validated[skill_id] = value
        missing = sorted(skill_ids - validated.keys())
        if missing:
            raise ValidationFailureError(
                f"Missing scores for skill(s): {', '.join(map(str, missing))}"
            )
        return validated

    async def _roll_up_cycle(self, cycle_id: str) -> None:
        await self.uow.cycles.increment_completed(cycle_id)
        cycle = await self.uow.cycles.get(cycle_id)
        if cycle is None or cycle.status is not CycleStatus.ACTIVE:
            return
        if await self.uow.assessments.count_active_in_cycle(cycle_id) == 0:
            await self.uow.cycles.transition(
                cycle_id, expected=CycleStatus.ACTIVE, status=CycleStatus.COMPLETED
            )
            await logger.ainfo("assessment_cycle_completed", cycle_id=cycle_id)

    async def _schedule_recurrence(
        self, completed: AssessmentRequest, subject: UserRecord
    ) -> AssessmentRequest:
        scheduled_date = ensure_utc(completed.next_scheduled_date)
        skill_ids = [row.skill_id for row in await self.uow.scores.for_assessment(completed.id)]
        follow_up = await self.uow.assessments.add(
            AssessmentRequest(
                user_id=completed.user_id,
                status=AssessmentStatus.INITIATED,
                initiated_by=completed.initiated_by,
                next_approver=scorer_for(completed, subject),
                scheduled_date=scheduled_date,
                next_scheduled_date=next_recurrence(
                    scheduled_date, self.settings.recurrence_interval_days
                ),
                current_cycle=1,
                requested_at=self.clock(),
            )
        )
        await self.uow.scores.create_empty(follow_up.id, skill_ids)
        await self.uow.audit.record(
            assessment_id=follow_up.id,
            audit_type=AuditType.SCHEDULED.value,
            editor_id=completed.initiated_by,
            cycle_number=1,
            comments=f"Automatically scheduled after completion of assessment {completed.id}",
        )
        await logger.ainfo(
            "assessment_recurrence_scheduled",
            completed_id=completed.id,
            assessment_id=follow_up.id,
            user_id=completed.user_id,
            scheduled_date=scheduled_date.isoformat(),
        )
        return follow_up
