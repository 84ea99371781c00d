from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from skillmatrix.domain.errors import NotFoundError
from skillmatrix.domain.services.scheduling import Clock, ensure_utc, is_accessible, utcnow
from skillmatrix.infrastructure.db.models import AssessmentRequest
from skillmatrix.infrastructure.repositories import UnitOfWork


@dataclass(slots=True)
class ScoreDetail:
    skill_id: int
    skill_name: str
    lead_score: int | None


@dataclass(slots=True)
class HistoryEntry:
    audit_type: str
    editor_id: str
    cycle_number: int
    comments: str | None
    audited_at: datetime


@dataclass(slots=True)
class AssessmentView:
    """Reconstructed aggregate returned by every command and query."""

    id: str
    user_id: str
    status: str
    initiated_by: str
    next_approver: str | None
    scheduled_date: datetime | None
    next_scheduled_date: datetime | None
    current_cycle: int
    cycle_id: str | None
    comments: str | None
    lead_assessment_date: datetime | None
    employee_response_date: datetime | None
    employee_approved: bool | None
    employee_comments: str | None
    hr_final_decision: str | None
    hr_comments: str | None
    completed_at: datetime | None
    requested_at: datetime
    detailed_scores: list[ScoreDetail]
    history: list[HistoryEntry]
    is_accessible: bool


def _utc_or_none(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def to_view(assessment: AssessmentRequest, *, now: datetime) -> AssessmentView:
    return AssessmentView(
        id=assessment.id,
        user_id=assessment.user_id,
        status=assessment.status.value,
        initiated_by=assessment.initiated_by,
        next_approver=assessment.next_approver,
        scheduled_date=_utc_or_none(assessment.scheduled_date),
        next_scheduled_date=_utc_or_none(assessment.next_scheduled_date),
        current_cycle=assessment.current_cycle,
        cycle_id=assessment.cycle_id,
        comments=assessment.comments,
        lead_assessment_date=_utc_or_none(assessment.lead_assessment_date),
        employee_response_date=_utc_or_none(assessment.employee_response_date),
        employee_approved=assessment.employee_approved,
        employee_comments=assessment.employee_comments,
        hr_final_decision=(
            assessment.hr_final_decision.value if assessment.hr_final_decision else None
        ),
        hr_comments=assessment.hr_comments,
        completed_at=_utc_or_none(assessment.completed_at),
        requested_at=ensure_utc(assessment.requested_at),
        detailed_scores=[
            ScoreDetail(
                skill_id=score.skill_id,
                skill_name=score.skill.name,
                lead_score=score.lead_score,
            )
            for score in assessment.scores
        ],
        history=[
            HistoryEntry(
                audit_type=entry.audit_type,
                editor_id=entry.editor_id,
                cycle_number=entry.cycle_number,
                comments=entry.comments,
                audited_at=ensure_utc(entry.audited_at),
            )
            for entry in assessment.audit_entries
        ],
        is_accessible=is_accessible(
            status=assessment.status,
            scheduled_date=assessment.scheduled_date,
            now=now,
        ),
    )


class AssessmentViewBuilder:
    def __init__(self, uow: UnitOfWork, *, clock: Clock = utcnow) -> None:
        self.uow = uow
        self.clock = clock

    async def build(self, assessment_id: str) -> AssessmentView:
        assessment = await self.uow.assessments.get_with_details(assessment_id)
        if assessment is None:
            raise NotFoundError(f"Assessment {assessment_id} not found")
        return to_view(assessment, now=self.clock())

    def build_many(self, assessments: Sequence[AssessmentRequest]) -> list[AssessmentView]:
        now = self.clock()
        return [to_view(assessment, now=now) for assessment in assessments]
