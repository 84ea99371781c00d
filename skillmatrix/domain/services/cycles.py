"""Bulk initiation into named assessment cycles, and cycle cancellation."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog
from skillmatrix.domain.errors import (
    InvalidStateError,
    NotFoundError,
    ValidationFailureError,
    WorkflowError,
)
from skillmatrix.domain.services.guards import AuthorizationGuard
from skillmatrix.domain.services.scheduling import Clock, ensure_utc, utcnow
from skillmatrix.domain.services.workflow import AssessmentWorkflowService
from skillmatrix.infrastructure.db.models import (
    AssessmentCycle,
    AssessmentStatus,
    CycleStatus,
    UserRole,
)
from skillmatrix.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()

ALL_TEAMS = "all"


@dataclass(slots=True)
class TargetOutcome:
    """One line of a batch report."""

    user_id: str | None
    outcome: str  # created | skipped | failed | cancelled | note
    reason: str | None = None
    assessment_id: str | None = None


@dataclass(slots=True)
class CycleSkill:
    id: int
    name: str


@dataclass(slots=True)
class BulkInitiationResult:
    cycle_id: str
    title: str
    target_count: int
    total_assessments: int
    skills: list[CycleSkill]
    created_at: datetime
    report: list[TargetOutcome] = field(default_factory=list)


@dataclass(slots=True)
class CycleCancellationResult:
    cycle_id: str
    title: str
    cancelled_assessments: int
    report: list[TargetOutcome] = field(default_factory=list)


@dataclass(slots=True)
class CycleView:
    id: str
    title: str
    created_by: str
    status: str
    scheduled_date: datetime | None
    comments: str | None
    target_teams: list[str]
    excluded_users: list[str]
    total_assessments: int
    completed_assessments: int
    completion_rate: float
    skills: list[CycleSkill]
    created_at: datetime
    updated_at: datetime


def _cycle_view(cycle: AssessmentCycle) -> CycleView:
    return CycleView(
        id=cycle.id,
        title=cycle.title,
        created_by=cycle.created_by,
        status=cycle.status.value,
        scheduled_date=ensure_utc(cycle.scheduled_date) if cycle.scheduled_date else None,
        comments=cycle.comments,
        target_teams=list(cycle.target_teams or []),
        excluded_users=list(cycle.excluded_users or []),
        total_assessments=cycle.total_assessments,
        completed_assessments=cycle.completed_assessments,
        completion_rate=cycle.completion_rate,
        skills=[CycleSkill(id=skill.id, name=skill.name) for skill in cycle.skills],
        created_at=ensure_utc(cycle.created_at),
        updated_at=ensure_utc(cycle.updated_at),
    )


class CycleOrchestrator:
    """Fans HR batch actions out to individual assessment aggregates."""

    def __init__(self, uow: UnitOfWork, *, clock: Clock = utcnow) -> None:
        self.uow = uow
        self.clock = clock
        self.guard = AuthorizationGuard(uow.users)
        self.workflow = AssessmentWorkflowService(uow, clock=clock)

    async def initiate_bulk(
        self,
        *,
        hr_id: str,
        skill_ids: Sequence[int],
        title: str,
        include_teams: Sequence[str] = (),
        exclude_users: Sequence[str] = (),
        scheduled_date: datetime | None = None,
        comments: str = "",
    ) -> BulkInitiationResult:
        """
        Create one cycle and an assessment for every eligible target.

        Args:
            include_teams: Team ids to target; empty or ``"all"`` targets everyone.
            exclude_users: User ids removed from the target population.

        Returns:
            Summary with a per-target report. Users that already have an active
            assessment are skipped, and a child that fails is rolled back and
            reported without being counted.
        """
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="initiate bulk assessments")
            if not title or not title.strip():
                raise ValidationFailureError("Cycle title is required")
            skill_ids = await self.workflow.validate_skills(skill_ids)
            skills = await self.uow.skills.get_many(skill_ids)

            teams = [team for team in include_teams if team]
            everyone = not teams or ALL_TEAMS in teams
            population = await self.uow.users.assessable_users(
                team_ids=None if everyone else teams
            )
            excluded = set(exclude_users)
            targets = [user for user in population if user.id not in excluded]
            busy = await self.uow.assessments.users_with_active_assessments(
                user.id for user in targets
            )

            cycle = await self.uow.cycles.add(
                AssessmentCycle(
                    title=title.strip(),
                    created_by=hr_id,
                    scheduled_date=ensure_utc(scheduled_date) if scheduled_date else None,
                    status=CycleStatus.ACTIVE,
                    comments=comments or None,
                    target_teams=[ALL_TEAMS] if everyone else teams,
                    excluded_users=sorted(excluded),
                    total_assessments=0,
                    completed_assessments=0,
                    created_at=self.clock(),
                    updated_at=self.clock(),
                )
            )
            cycle_id, cycle_title, created_at = cycle.id, cycle.title, ensure_utc(cycle.created_at)
            await self.uow.cycles.link_skills(cycle_id, skill_ids)

            report: list[TargetOutcome] = []
            created = 0
            for target in targets:
                if target.id in busy:
                    report.append(
                        TargetOutcome(
                            user_id=target.id,
                            outcome="skipped",
                            reason="User already has an active assessment",
                        )
                    )
                    continue
                try:
                    async with self.uow.savepoint():
                        assessment = await self.workflow.open_request(
                            subject=target,
                            initiated_by=hr_id,
                            skill_ids=skill_ids,
                            scheduled_date=scheduled_date,
                            comments=comments,
                            cycle_id=cycle_id,
                            audit_comments=f"Bulk assessment initiated: {cycle_title}",
                        )
                except WorkflowError as exc:
                    await logger.awarning(
                        "bulk_initiation_target_failed",
                        cycle_id=cycle_id,
                        user_id=target.id,
                        kind=exc.kind,
                        error=exc.message,
                    )
                    report.append(
                        TargetOutcome(user_id=target.id, outcome="failed", reason=exc.message)
                    )
                    continue
                created += 1
                report.append(
                    TargetOutcome(
                        user_id=target.id, outcome="created", assessment_id=assessment.id
                    )
                )

            if not report:
                report.append(
                    TargetOutcome(
                        user_id=None,
                        outcome="note",
                        reason="No eligible users matched the selected teams",
                    )
                )

            await self.uow.cycles.set_total(cycle_id, created)
            await logger.ainfo(
                "bulk_assessment_initiated",
                cycle_id=cycle_id,
                title=cycle_title,
                targets=len(targets),
                created=created,
                skipped=sum(1 for line in report if line.outcome == "skipped"),
                failed=sum(1 for line in report if line.outcome == "failed"),
            )
            return BulkInitiationResult(
                cycle_id=cycle_id,
                title=cycle_title,
                target_count=len(targets),
                total_assessments=created,
                skills=[CycleSkill(id=skill.id, name=skill.name) for skill in skills],
                created_at=created_at,
                report=report,
            )

    async def cancel_cycle(
        self, *, hr_id: str, cycle_id: str, comments: str = ""
    ) -> CycleCancellationResult:
        """
        Cancel an active cycle and every non-terminal assessment in it.

        Each child is cancelled in its own savepoint; a child that fails is
        reported and keeps its status while the rest of the cycle is cancelled.
        """
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="cancel assessment cycles")
            cycle = await self.uow.cycles.get(cycle_id)
            if cycle is None:
                raise NotFoundError(f"Assessment cycle {cycle_id} not found")
            if cycle.status is not CycleStatus.ACTIVE:
                raise InvalidStateError(f"Assessment cycle is already {cycle.status.value}")

            note = comments or "Assessment cycle cancelled"
            cycle_title, previous_comments = cycle.title, cycle.comments
            children = await self.uow.assessments.list_for_cycle(
                cycle_id, statuses=AssessmentStatus.active_statuses()
            )
            report: list[TargetOutcome] = []
            cancelled = 0
            for child in children:
                child_id, subject_id = child.id, child.user_id
                try:
                    async with self.uow.savepoint():
                        await self.workflow.cancel_request(
                            child, actor_id=hr_id, comments=f"Cycle cancelled: {note}"
                        )
                except WorkflowError as exc:
                    report.append(
                        TargetOutcome(
                            user_id=subject_id,
                            outcome="failed",
                            reason=exc.message,
                            assessment_id=child_id,
                        )
                    )
                    continue
                cancelled += 1
                report.append(
                    TargetOutcome(
                        user_id=subject_id, outcome="cancelled", assessment_id=child_id
                    )
                )
            if not report:
                report.append(
                    TargetOutcome(
                        user_id=None, outcome="note", reason="No active assessments to cancel"
                    )
                )

            existing = f"{previous_comments}\n\n" if previous_comments else ""
            await self.uow.cycles.transition(
                cycle_id,
                expected=CycleStatus.ACTIVE,
                status=CycleStatus.CANCELLED,
                comments=f"{existing}CANCELLED: {note}",
                updated_at=self.clock(),
            )
            await logger.ainfo(
                "assessment_cycle_cancelled",
                cycle_id=cycle_id,
                cancelled=cancelled,
                failed=sum(1 for line in report if line.outcome == "failed"),
            )
            return CycleCancellationResult(
                cycle_id=cycle_id,
                title=cycle_title,
                cancelled_assessments=cancelled,
                report=report,
            )

    async def list_cycles(self, *, hr_id: str) -> list[CycleView]:
        """All cycles, newest first."""
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="view assessment cycles")
            return [_cycle_view(cycle) for cycle in await self.uow.cycles.list_all()]

    async def get_cycle(self, *, hr_id: str, cycle_id: str) -> CycleView:
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="view assessment cycles")
            cycle = await self.uow.cycles.get(cycle_id)
            if cycle is None:
                raise NotFoundError(f"Assessment cycle {cycle_id} not found")
            return _cycle_view(cycle)
