from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from skillmatrix.domain.errors import NotFoundError, UnauthorizedError
from skillmatrix.domain.models import UserRecord
from skillmatrix.domain.services.guards import AuthorizationGuard, scorer_for
from skillmatrix.domain.services.scheduling import Clock, ensure_utc, is_accessible, utcnow
from skillmatrix.domain.services.views import AssessmentView, AssessmentViewBuilder
from skillmatrix.infrastructure.db.models import AssessmentStatus, UserRole
from skillmatrix.infrastructure.repositories import UnitOfWork

PENDING_TEAM_STATUSES = (
    AssessmentStatus.INITIATED,
    AssessmentStatus.LEAD_WRITING,
    AssessmentStatus.EMPLOYEE_REVIEW,
)
RECENT_WINDOW = timedelta(days=30)
SUMMARY_RECENT_LIMIT = 10


@dataclass(slots=True)
class TeamStatistics:
    team_size: int
    total_assessments: int
    by_status: dict[str, int]
    pending_actions: int
    recent_assessments: int


@dataclass(slots=True)
class TeamSummary:
    team_id: str
    member_count: int
    members: list[UserRecord]
    total_assessments: int
    by_status: dict[str, int]
    active_assessments: int
    recent: list[AssessmentView] = field(default_factory=list)


@dataclass(slots=True)
class LatestScore:
    skill_id: int
    skill_name: str
    lead_score: int
    assessment_id: str
    completed_at: datetime | None


def _status_counts(statuses: list[AssessmentStatus]) -> dict[str, int]:
    counts = Counter(status.value for status in statuses)
    return {status.value: counts.get(status.value, 0) for status in AssessmentStatus}


class AssessmentQueryService:
    """Role-scoped read side of the workflow."""

    def __init__(self, uow: UnitOfWork, *, clock: Clock = utcnow) -> None:
        self.uow = uow
        self.clock = clock
        self.guard = AuthorizationGuard(uow.users)
        self.views = AssessmentViewBuilder(uow, clock=clock)

    async def assessments_for_role(self, *, user_id: str, role: UserRole) -> list[AssessmentView]:
        """HR sees everything, a lead sees direct reports, an employee sees their own."""
        async with self.uow:
            if role is UserRole.HR:
                rows = await self.uow.assessments.list_with_details()
            elif role is UserRole.LEAD:
                reports = await self.uow.users.direct_reports(user_id)
                rows = await self.uow.assessments.list_with_details(
                    user_ids=[member.id for member in reports]
                )
            else:
                rows = await self.uow.assessments.list_with_details(user_ids=[user_id])
            return self.views.build_many(rows)

    async def assessments_requiring_action(self, *, user_id: str) -> list[AssessmentView]:
        """Accessible assessments waiting on ``user_id``, oldest first.

        INITIATED requests of subjects with a lead wait for the activation sweep
        and only show up once they reach LEAD_WRITING.
        """
        async with self.uow:
            rows = await self.uow.assessments.list_with_details(
                next_approver=user_id,
                statuses=AssessmentStatus.active_statuses(),
                newest_first=False,
            )
            subjects = await self.uow.users.get_many(row.user_id for row in rows)
            now = self.clock()
            due = [
                row
                for row in rows
                if is_accessible(status=row.status, scheduled_date=row.scheduled_date, now=now)
                and not (
                    row.status is AssessmentStatus.INITIATED
                    and row.user_id in subjects
                    and subjects[row.user_id].has_lead
                )
            ]
            return self.views.build_many(due)

    async def get_assessment(self, *, viewer_id: str, assessment_id: str) -> AssessmentView:
        async with self.uow:
            assessment = await self.uow.assessments.get(assessment_id)
            if assessment is None:
                raise NotFoundError(f"Assessment {assessment_id} not found")
            viewer = await self.uow.users.get(viewer_id)
            if viewer is None:
                raise UnauthorizedError(f"Unknown user {viewer_id} cannot view assessments")
            if viewer.role is not UserRole.HR and viewer.id != assessment.user_id:
                subject = await self.guard.subject_of(assessment)
                if viewer.id != scorer_for(assessment, subject):
                    raise UnauthorizedError("You are not authorized to view this assessment")
            return await self.views.build(assessment.id)

    async def team_assessments(
        self, *, lead_id: str, pending_only: bool = False
    ) -> list[AssessmentView]:
        async with self.uow:
            await self.guard.authorize(lead_id, UserRole.LEAD, action="view team assessments")
            reports = await self.uow.users.direct_reports(lead_id)
            if not reports:
                return []
            rows = await self.uow.assessments.list_with_details(
                user_ids=[member.id for member in reports],
                statuses=PENDING_TEAM_STATUSES if pending_only else None,
            )
            return self.views.build_many(rows)

    async def team_statistics(self, *, lead_id: str) -> TeamStatistics:
        async with self.uow:
            await self.guard.authorize(lead_id, UserRole.LEAD, action="view team statistics")
            reports = await self.uow.users.direct_reports(lead_id)
            rows = (
                await self.uow.assessments.list_with_details(
                    user_ids=[member.id for member in reports]
                )
                if reports
                else []
            )
            now = self.clock()
            since = now - RECENT_WINDOW
            return TeamStatistics(
                team_size=len(reports),
                total_assessments=len(rows),
                by_status=_status_counts([row.status for row in rows]),
                pending_actions=sum(
                    1
                    for row in rows
                    if row.next_approver == lead_id
                    and is_accessible(status=row.status, scheduled_date=row.scheduled_date, now=now)
                ),
                recent_assessments=sum(
                    1 for row in rows if ensure_utc(row.requested_at) >= since
                ),
            )

    async def team_summary(self, *, hr_id: str, team_id: str) -> TeamSummary:
        async with self.uow:
            await self.guard.authorize(hr_id, UserRole.HR, action="view team summaries")
            members = await self.uow.users.team_members(team_id)
            if not members:
                raise NotFoundError(f"Team {team_id} has no members")
            rows = await self.uow.assessments.list_with_details(
                user_ids=[member.id for member in members]
            )
            return TeamSummary(
                team_id=team_id,
                member_count=len(members),
                members=members,
                total_assessments=len(rows),
                by_status=_status_counts([row.status for row in rows]),
                active_assessments=sum(1 for row in rows if not row.status.is_terminal),
                recent=self.views.build_many(rows[:SUMMARY_RECENT_LIMIT]),
            )

    async def latest_approved_scores(self, *, viewer_id: str, user_id: str) -> list[LatestScore]:
        """Per skill, the lead score of the most recent completed assessment that scored it."""
        async with self.uow:
            viewer = await self.uow.users.get(viewer_id)
            subject = await self.uow.users.get(user_id)
            if subject is None:
                raise NotFoundError(f"User {user_id} not found")
            if viewer is None or not (
                viewer.role is UserRole.HR
                or viewer.id == subject.id
                or viewer.id == subject.lead_id
            ):
                raise UnauthorizedError("You are not authorized to view these scores")

            latest: dict[int, LatestScore] = {}
            for assessment in await self.uow.assessments.completed_for_user(user_id):
                for score in assessment.scores:
                    if score.lead_score is None or score.skill_id in latest:
                        continue
                    latest[score.skill_id] = LatestScore(
                        skill_id=score.skill_id,
                        skill_name=score.skill.name,
                        lead_score=score.lead_score,
                        assessment_id=assessment.id,
                        completed_at=(
                            ensure_utc(assessment.completed_at) if assessment.completed_at else None
                        ),
                    )
            return [latest[skill_id] for skill_id in sorted(latest)]
