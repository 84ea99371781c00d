"""
Unit tests for the assessment workflow state machine.

Covers the HR-initiated flow end to end, guard failures, score validation,
rework cycles, disputes, cancellation and recurrence.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from skillmatrix.domain.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    ValidationFailureError,
)
from skillmatrix.domain.services import AssessmentView, AssessmentWorkflowService
from skillmatrix.infrastructure.db.models import (
    AssessmentRequest,
    AssessmentStatus,
    AuditEntry,
)
from skillmatrix.infrastructure.repositories import ScoreRepository, UnitOfWork

from tests.utils import EMP_1, EMP_2, HR_1, HR_2, LEAD_1, LEAD_2, SOLO, FixedClock


@pytest.fixture()
def workflow(uow: UnitOfWork, clock: FixedClock) -> AssessmentWorkflowService:
    return AssessmentWorkflowService(uow, clock=clock)


async def start(
    workflow: AssessmentWorkflowService, user_id: str = EMP_1, **kwargs
) -> AssessmentView:
    kwargs.setdefault("skill_ids", [1, 2])
    return await workflow.initiate(hr_id=HR_1, target_user_id=user_id, **kwargs)


async def score(
    workflow: AssessmentWorkflowService,
    assessment_id: str,
    scores: dict[int, int] | None = None,
    lead_id: str = LEAD_1,
) -> AssessmentView:
    return await workflow.write_lead_assessment(
        lead_id=lead_id,
        assessment_id=assessment_id,
        scores=scores or {1: 3, 2: 4},
        comments="Solid quarter",
    )


def audit_types(view: AssessmentView) -> list[str]:
    return [entry.audit_type for entry in view.history]


class TestInitiate:
    async def test_subject_with_lead_goes_to_lead_writing(
        self, workflow: AssessmentWorkflowService, clock: FixedClock
    ) -> None:
        view = await start(workflow)

        assert view.status == "LEAD_WRITING"
        assert view.next_approver == LEAD_1
        assert view.initiated_by == HR_1
        assert view.current_cycle == 1
        assert view.scheduled_date == clock.now
        assert view.next_scheduled_date is None
        assert [(s.skill_id, s.skill_name, s.lead_score) for s in view.detailed_scores] == [
            (1, "Python", None),
            (2, "SQL", None),
        ]
        assert audit_types(view) == ["INITIATED"]
        assert view.history[0].editor_id == HR_1
        assert view.is_accessible is True

    async def test_explicit_schedule_sets_next_recurrence(
        self, workflow: AssessmentWorkflowService, clock: FixedClock
    ) -> None:
        scheduled = clock.now + timedelta(days=7)

        view = await start(workflow, scheduled_date=scheduled)

        assert view.scheduled_date == scheduled
        assert view.next_scheduled_date == scheduled + timedelta(days=90)
        assert view.is_accessible is False

    async def test_subject_without_lead_stays_initiated_with_hr_as_scorer(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow, user_id=SOLO)

        assert view.status == "INITIATED"
        assert view.next_approver == HR_1

    async def test_only_hr_can_initiate(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(UnauthorizedError):
            await workflow.initiate(hr_id=LEAD_1, target_user_id=EMP_1, skill_ids=[1])

    async def test_unknown_actor_is_unauthorized(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(UnauthorizedError):
            await workflow.initiate(hr_id="ghost", target_user_id=EMP_1, skill_ids=[1])

    async def test_hr_cannot_be_assessed(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(ValidationFailureError):
            await start(workflow, user_id=HR_2)

    async def test_unknown_target_is_not_found(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(NotFoundError):
            await start(workflow, user_id="ghost")

    async def test_unknown_skill_is_not_found(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(NotFoundError):
            await start(workflow, skill_ids=[1, 99])

    async def test_empty_skill_list_is_rejected(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(ValidationFailureError):
            await start(workflow, skill_ids=[])

    async def test_second_active_assessment_conflicts(
        self, workflow: AssessmentWorkflowService, uow: UnitOfWork
    ) -> None:
        await start(workflow)

        with pytest.raises(ConflictError):
            await start(workflow)

        count = await uow.session.scalar(
            select(func.count(AssessmentRequest.id)).where(AssessmentRequest.user_id == EMP_1)
        )
        assert count == 1

    async def test_reinitiation_after_cancel_is_allowed(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        first = await start(workflow)
        await workflow.cancel(hr_id=HR_1, assessment_id=first.id)

        second = await start(workflow)

        assert second.id != first.id
        assert second.status == "LEAD_WRITING"


class TestLeadAssessment:
    async def test_valid_scores_move_to_employee_review(
        self, workflow: AssessmentWorkflowService, clock: FixedClock
    ) -> None:
        view = await start(workflow)

        view = await score(workflow, view.id)

        assert view.status == "EMPLOYEE_REVIEW"
        assert view.next_approver == EMP_1
        assert view.lead_assessment_date == clock.now
        assert {s.skill_id: s.lead_score for s in view.detailed_scores} == {1: 3, 2: 4}
        assert audit_types(view) == ["INITIATED", "LEAD_ASSESSMENT_WRITTEN"]
        assert view.history[-1].editor_id == LEAD_1
        assert view.history[-1].comments == "Solid quarter"

    async def test_out_of_range_score_changes_nothing(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow)

        with pytest.raises(ValidationFailureError):
            await score(workflow, view.id, {1: 3, 2: 5})

        reloaded = await workflow.views.build(view.id)
        assert reloaded.status == "LEAD_WRITING"
        assert [s.lead_score for s in reloaded.detailed_scores] == [None, None]
        assert audit_types(reloaded) == ["INITIATED"]

    async def test_storage_failure_after_transition_rolls_back_the_command(
        self, workflow: AssessmentWorkflowService, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        view = await start(workflow)

        async def broken_write(self, assessment_id, scores) -> None:  # noqa: ANN001
            raise OperationalError("UPDATE scores", {}, Exception("disk I/O error"))

        monkeypatch.setattr(ScoreRepository, "write_lead_scores", broken_write)

        with pytest.raises(OperationalError):
            await score(workflow, view.id)

        reloaded = await workflow.views.build(view.id)
        assert reloaded.status == "LEAD_WRITING"
        assert reloaded.next_approver == LEAD_1
        assert reloaded.lead_assessment_date is None
        assert [s.lead_score for s in reloaded.detailed_scores] == [None, None]
        assert audit_types(reloaded) == ["INITIATED"]

    @pytest.mark.parametrize(
        "scores",
        [
            {1: 0, 2: 3},
            {1: 3},
            {1: 3, 2: 3, 3: 3},
            {1: 3, 2: "4"},
        ],
        ids=["below-range", "missing-skill", "foreign-skill", "non-integer"],
    )
    async def test_invalid_submission_is_rejected(
        self, workflow: AssessmentWorkflowService, scores: dict
    ) -> None:
        view = await start(workflow)

        with pytest.raises(ValidationFailureError):
            await score(workflow, view.id, scores)

    async def test_only_assigned_lead_can_write(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow)

        with pytest.raises(UnauthorizedError):
            await score(workflow, view.id, lead_id=LEAD_2)
        with pytest.raises(UnauthorizedError):
            await score(workflow, view.id, lead_id=HR_1)

    async def test_cannot_write_twice(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)
        await score(workflow, view.id)

        with pytest.raises(InvalidStateError):
            await score(workflow, view.id)

    async def test_unknown_assessment(self, workflow: AssessmentWorkflowService) -> None:
        with pytest.raises(NotFoundError):
            await score(workflow, "missing")

    async def test_hr_scores_subject_without_lead(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow, user_id=SOLO)

        view = await score(workflow, view.id, lead_id=HR_1)

        assert view.status == "EMPLOYEE_REVIEW"
        assert view.next_approver == SOLO

    async def test_hr_cannot_score_before_schedule(
        self, workflow: AssessmentWorkflowService, clock: FixedClock
    ) -> None:
        view = await start(workflow, user_id=SOLO, scheduled_date=clock.now + timedelta(days=3))

        with pytest.raises(InvalidStateError):
            await score(workflow, view.id, lead_id=HR_1)


class TestEmployeeReview:
    async def test_approval_routes_to_initiating_hr(
        self, workflow: AssessmentWorkflowService, clock: FixedClock
    ) -> None:
        view = await start(workflow)
        await score(workflow, view.id)

        view = await workflow.employee_review(
            employee_id=EMP_1, assessment_id=view.id, approved=True, comments="Agreed"
        )

        assert view.status == "EMPLOYEE_APPROVED"
        assert view.next_approver == HR_1
        assert view.employee_approved is True
        assert view.employee_comments == "Agreed"
        assert view.employee_response_date == clock.now

    async def test_rejection_routes_back_to_scorer(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow)
        await score(workflow, view.id)

        view = await workflow.employee_review(
            employee_id=EMP_1, assessment_id=view.id, approved=False, comments="Too low"
        )

        assert view.status == "EMPLOYEE_REJECTED"
        assert view.next_approver == LEAD_1
        assert audit_types(view)[-1] == "EMPLOYEE_REJECTED"

    async def test_only_subject_can_review(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)
        await score(workflow, view.id)

        with pytest.raises(UnauthorizedError):
            await workflow.employee_review(employee_id=EMP_2, assessment_id=view.id, approved=True)

    async def test_review_before_scores_is_invalid(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await start(workflow)

        with pytest.raises(InvalidStateError):
            await workflow.employee_review(employee_id=EMP_1, assessment_id=view.id, approved=True)


class TestDisputeResolution:
    async def _disputed(self, workflow: AssessmentWorkflowService) -> AssessmentView:
        view = await start(workflow)
        await score(workflow, view.id)
        return await workflow.employee_review(
            employee_id=EMP_1, assessment_id=view.id, approved=False
        )

    async def test_escalation_reaches_hr_who_can_finalize(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await self._disputed(workflow)

        view = await workflow.resolve_dispute(
            lead_id=LEAD_1, assessment_id=view.id, escalate=True, comments="HR please decide"
        )
        assert view.status == "HR_FINAL_REVIEW"
        assert view.next_approver == HR_1

        view = await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=True)
        assert view.status == "COMPLETED"
        assert audit_types(view) == [
            "INITIATED",
            "LEAD_ASSESSMENT_WRITTEN",
            "EMPLOYEE_REJECTED",
            "DISPUTE_ESCALATED",
            "HR_APPROVED",
        ]

    async def test_reopen_returns_to_scorer(self, workflow: AssessmentWorkflowService) -> None:
        view = await self._disputed(workflow)

        view = await workflow.resolve_dispute(lead_id=LEAD_1, assessment_id=view.id, escalate=False)

        assert view.status == "LEAD_WRITING"
        assert view.next_approver == LEAD_1
        assert view.current_cycle == 1
        view = await score(workflow, view.id, {1: 4, 2: 4})
        assert view.status == "EMPLOYEE_REVIEW"

    async def test_only_scorer_resolves(self, workflow: AssessmentWorkflowService) -> None:
        view = await self._disputed(workflow)

        with pytest.raises(UnauthorizedError):
            await workflow.resolve_dispute(lead_id=HR_1, assessment_id=view.id, escalate=True)

    async def test_requires_rejected_status(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)

        with pytest.raises(InvalidStateError):
            await workflow.resolve_dispute(lead_id=LEAD_1, assessment_id=view.id, escalate=True)


class TestHrFinalReview:
    async def _approved_by_employee(
        self, workflow: AssessmentWorkflowService, **kwargs
    ) -> AssessmentView:
        view = await start(workflow, **kwargs)
        await score(workflow, view.id)
        return await workflow.employee_review(
            employee_id=EMP_1, assessment_id=view.id, approved=True
        )

    async def test_approval_completes(
        self, workflow: AssessmentWorkflowService, clock: FixedClock, uow: UnitOfWork
    ) -> None:
        view = await self._approved_by_employee(workflow)

        view = await workflow.hr_final_review(
            hr_id=HR_2, assessment_id=view.id, approved=True, comments="Well done"
        )

        assert view.status == "COMPLETED"
        assert view.next_approver is None
        assert view.completed_at == clock.now
        assert view.hr_final_decision == "APPROVED"
        assert view.hr_comments == "Well done"
        assert view.is_accessible is False
        assert audit_types(view) == [
            "INITIATED",
            "LEAD_ASSESSMENT_WRITTEN",
            "EMPLOYEE_APPROVED",
            "HR_APPROVED",
        ]
        assert view.history[-1].editor_id == HR_2
        # no explicit schedule, so no follow-up
        assert await uow.assessments.find_active_for_user(EMP_1) is None

    async def test_rejection_starts_rework_cycle(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await self._approved_by_employee(workflow)

        view = await workflow.hr_final_review(
            hr_id=HR_1, assessment_id=view.id, approved=False, comments="Recheck SQL"
        )

        assert view.status == "LEAD_WRITING"
        assert view.current_cycle == 2
        assert view.next_approver == LEAD_1
        assert view.hr_final_decision == "REJECTED"
        assert view.history[-1].audit_type == "HR_REJECTED"
        assert view.history[-1].cycle_number == 2

    async def test_cycle_counter_increases_once_per_rejection(
        self, workflow: AssessmentWorkflowService
    ) -> None:
        view = await self._approved_by_employee(workflow)
        seen = [view.current_cycle]
        for _ in range(2):
            view = await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=False)
            seen.append(view.current_cycle)
            await score(workflow, view.id)
            view = await workflow.employee_review(
                employee_id=EMP_1, assessment_id=view.id, approved=True
            )
            seen.append(view.current_cycle)

        assert seen == [1, 2, 2, 3, 3]
        assert [entry.cycle_number for entry in view.history] == [1, 1, 1, 2, 2, 2, 3, 3, 3]

    async def test_not_ready_for_hr(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)

        with pytest.raises(InvalidStateError):
            await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=True)

    async def test_only_hr_finalizes(self, workflow: AssessmentWorkflowService) -> None:
        view = await self._approved_by_employee(workflow)

        with pytest.raises(UnauthorizedError):
            await workflow.hr_final_review(hr_id=LEAD_1, assessment_id=view.id, approved=True)

    async def test_approval_schedules_recurrence(
        self, workflow: AssessmentWorkflowService, clock: FixedClock, uow: UnitOfWork
    ) -> None:
        scheduled = clock.now
        view = await self._approved_by_employee(workflow, scheduled_date=scheduled)
        next_date = scheduled + timedelta(days=90)
        assert view.next_scheduled_date == next_date

        view = await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=True)

        assert view.status == "COMPLETED"
        follow_up = await uow.assessments.find_active_for_user(EMP_1)
        assert follow_up is not None
        follow_view = await workflow.views.build(follow_up.id)
        assert follow_view.status == "INITIATED"
        assert follow_view.scheduled_date == next_date
        assert follow_view.next_scheduled_date == next_date + timedelta(days=90)
        assert follow_view.current_cycle == 1
        assert follow_view.initiated_by == HR_1
        assert follow_view.next_approver == LEAD_1
        assert follow_view.cycle_id is None
        assert [s.skill_id for s in follow_view.detailed_scores] == [1, 2]
        assert all(s.lead_score is None for s in follow_view.detailed_scores)
        assert audit_types(follow_view) == ["SCHEDULED"]
        assert follow_view.is_accessible is False

    async def test_recurrence_is_not_writable_until_activated(
        self, workflow: AssessmentWorkflowService, clock: FixedClock, uow: UnitOfWork
    ) -> None:
        view = await self._approved_by_employee(workflow, scheduled_date=clock.now)
        await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=True)
        follow_up = await uow.assessments.find_active_for_user(EMP_1)

        with pytest.raises(InvalidStateError):
            await score(workflow, follow_up.id)


class TestCancel:
    async def test_cancel_active_assessment(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)

        view = await workflow.cancel(hr_id=HR_2, assessment_id=view.id, comments="Left team")

        assert view.status == "CANCELLED"
        assert view.next_approver is None
        assert view.history[-1].audit_type == "CANCELLED"
        assert view.history[-1].editor_id == HR_2
        assert view.history[-1].comments == "Left team"

    async def test_cancel_completed_is_invalid(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)
        await score(workflow, view.id)
        await workflow.employee_review(employee_id=EMP_1, assessment_id=view.id, approved=True)
        await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=True)

        with pytest.raises(InvalidStateError):
            await workflow.cancel(hr_id=HR_1, assessment_id=view.id)

    async def test_cancel_twice_is_invalid(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)
        await workflow.cancel(hr_id=HR_1, assessment_id=view.id)

        with pytest.raises(InvalidStateError):
            await workflow.cancel(hr_id=HR_1, assessment_id=view.id)

    async def test_only_hr_cancels(self, workflow: AssessmentWorkflowService) -> None:
        view = await start(workflow)

        with pytest.raises(UnauthorizedError):
            await workflow.cancel(hr_id=LEAD_1, assessment_id=view.id)


class TestInvariants:
    async def test_every_transition_appends_exactly_one_audit_entry(
        self, workflow: AssessmentWorkflowService, uow: UnitOfWork
    ) -> None:
        async def audit_count(assessment_id: str) -> int:
            return await uow.session.scalar(
                select(func.count(AuditEntry.id)).where(AuditEntry.assessment_id == assessment_id)
            )

        view = await start(workflow)
        assert await audit_count(view.id) == 1
        await score(workflow, view.id)
        assert await audit_count(view.id) == 2
        await workflow.employee_review(employee_id=EMP_1, assessment_id=view.id, approved=True)
        assert await audit_count(view.id) == 3
        await workflow.hr_final_review(hr_id=HR_1, assessment_id=view.id, approved=False)
        assert await audit_count(view.id) == 4

        with pytest.raises(InvalidStateError):
            await workflow.employee_review(employee_id=EMP_1, assessment_id=view.id, approved=True)
        assert await audit_count(view.id) == 4

    async def test_next_approver_null_only_when_terminal(
        self, workflow: AssessmentWorkflowService, uow: UnitOfWork
    ) -> None:
        done = await start(workflow, user_id=EMP_1)
        await score(workflow, done.id)
        await workflow.employee_review(employee_id=EMP_1, assessment_id=done.id, approved=True)
        await workflow.hr_final_review(hr_id=HR_1, assessment_id=done.id, approved=True)
        cancelled = await start(workflow, user_id=EMP_2)
        await workflow.cancel(hr_id=HR_1, assessment_id=cancelled.id)
        await start(workflow, user_id=SOLO)
        await start(workflow, user_id=EMP_1)

        rows = (await uow.session.execute(select(AssessmentRequest))).scalars().all()
        assert len(rows) == 4
        for row in rows:
            assert (row.next_approver is None) == row.status.is_terminal

        active = [row for row in rows if row.status in AssessmentStatus.active_statuses()]
        assert sorted(row.user_id for row in active) == sorted([EMP_1, SOLO])
