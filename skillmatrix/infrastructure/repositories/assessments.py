"""Persistence contracts for the assessment aggregate: requests, scores, audit."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value
from skillmatrix.domain.errors import StaleStateError
from skillmatrix.infrastructure.db.models import (
    AssessmentRequest,
    AssessmentStatus,
    AuditEntry,
    Score,
)

if TYPE_CHECKING:
    from sqlalchemy import Select

logger = structlog.get_logger()

_DETAIL_OPTIONS = (
    selectinload(AssessmentRequest.scores).joinedload(Score.skill),
    selectinload(AssessmentRequest.audit_entries),
)


@dataclass
class AssessmentRepository:
    """Reads and conditional writes for ``assessment_requests`` rows."""

    session: AsyncSession

    async def add(self, assessment: AssessmentRequest) -> AssessmentRequest:
        self.session.add(assessment)
        await self.session.flush()
        return assessment

    async def get(self, assessment_id: str) -> AssessmentRequest | None:
        stmt = (
            select(AssessmentRequest)
            .where(AssessmentRequest.id == assessment_id)
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def get_with_details(self, assessment_id: str) -> AssessmentRequest | None:
        stmt = (
            select(AssessmentRequest)
            .where(AssessmentRequest.id == assessment_id)
            .options(*_DETAIL_OPTIONS)
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def find_active_for_user(self, user_id: str) -> AssessmentRequest | None:
        stmt: Select[tuple[AssessmentRequest]] = (
            select(AssessmentRequest)
            .where(
                AssessmentRequest.user_id == user_id,
                AssessmentRequest.status.in_(AssessmentStatus.active_statuses()),
            )
            .order_by(AssessmentRequest.requested_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)

    async def users_with_active_assessments(self, user_ids: Iterable[str]) -> set[str]:
        ids = list(set(user_ids))
        if not ids:
            return set()
        stmt = select(AssessmentRequest.user_id).where(
            AssessmentRequest.user_id.in_(ids),
            AssessmentRequest.status.in_(AssessmentStatus.active_statuses()),
        )
        return set((await self.session.execute(stmt)).scalars().all())

    async def list_with_details(
        self,
        *,
        user_ids: Sequence[str] | None = None,
        next_approver: str | None = None,
        statuses: Sequence[AssessmentStatus] | None = None,
        cycle_id: str | None = None,
        newest_first: bool = True,
        limit: int | None = None,
    ) -> list[AssessmentRequest]:
        stmt = select(AssessmentRequest).options(*_DETAIL_OPTIONS)
        if user_ids is not None:
            stmt = stmt.where(AssessmentRequest.user_id.in_(list(user_ids)))
        if next_approver is not None:
            stmt = stmt.where(AssessmentRequest.next_approver == next_approver)
        if statuses is not None:
            stmt = stmt.where(AssessmentRequest.status.in_(list(statuses)))
        if cycle_id is not None:
            stmt = stmt.where(AssessmentRequest.cycle_id == cycle_id)
        order = AssessmentRequest.requested_at
        stmt = stmt.order_by(order.desc() if newest_first else order.asc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return list((await self.session.execute(stmt)).scalars().all())

    async def list_for_cycle(
        self, cycle_id: str, *, statuses: Sequence[AssessmentStatus] | None = None
    ) -> list[AssessmentRequest]:
        stmt = select(AssessmentRequest).where(AssessmentRequest.cycle_id == cycle_id)
        if statuses is not None:
            stmt = stmt.where(AssessmentRequest.status.in_(list(statuses)))
        stmt = stmt.order_by(AssessmentRequest.requested_at)
        return list((await self.session.execute(stmt)).scalars().all())

    async def count_active_in_cycle(self, cycle_id: str) -> int:
        stmt = select(func.count(AssessmentRequest.id)).where(
            AssessmentRequest.cycle_id == cycle_id,
            AssessmentRequest.status.in_(AssessmentStatus.active_statuses()),
        )
        return int(await self.session.scalar(stmt) or 0)

    async def initiated_due_before(self, cutoff: datetime) -> list[AssessmentRequest]:
        """INITIATED requests scheduled before ``cutoff`` (activation sweep candidates)."""
        stmt = (
            select(AssessmentRequest)
            .where(
                AssessmentRequest.status == AssessmentStatus.INITIATED,
                AssessmentRequest.scheduled_date < cutoff,
            )
            .order_by(AssessmentRequest.scheduled_date)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def completed_for_user(self, user_id: str) -> list[AssessmentRequest]:
        stmt = (
            select(AssessmentRequest)
            .where(
                AssessmentRequest.user_id == user_id,
                AssessmentRequest.status == AssessmentStatus.COMPLETED,
            )
            .options(selectinload(AssessmentRequest.scores).joinedload(Score.skill))
            .order_by(AssessmentRequest.completed_at.desc(), AssessmentRequest.requested_at.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def transition(
        self,
        assessment: AssessmentRequest,
        *,
        expected: AssessmentStatus,
        values: Mapping[str, Any],
    ) -> None:
        """Apply ``values`` only if the stored status still equals ``expected``.

        Raises StaleStateError when another writer moved the aggregate first.
        """
        stmt = (
            update(AssessmentRequest)
            .where(
                AssessmentRequest.id == assessment.id,
                AssessmentRequest.status == expected,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            logger.warning(
                "assessment_stale_transition",
                assessment_id=assessment.id,
                expected=expected.value,
            )
            raise StaleStateError(
                f"Assessment {assessment.id} is no longer in status {expected.value}"
            )
        for key, value in values.items():
            set_committed_value(assessment, key, value)


@dataclass
class ScoreRepository:
    session: AsyncSession

    async def create_empty(self, assessment_id: str, skill_ids: Iterable[int]) -> list[Score]:
        scores = [
            Score(assessment_id=assessment_id, skill_id=skill_id, lead_score=None)
            for skill_id in sorted(set(skill_ids))
        ]
        self.session.add_all(scores)
        await self.session.flush()
        return scores

    async def for_assessment(self, assessment_id: str) -> list[Score]:
        stmt = (
            select(Score)
            .where(Score.assessment_id == assessment_id)
            .order_by(Score.skill_id)
            .execution_options(populate_existing=True)
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def write_lead_scores(self, assessment_id: str, scores: Mapping[int, int]) -> None:
        """Persist already-validated scores; caller guarantees every skill exists."""
        rows = {row.skill_id: row for row in await self.for_assessment(assessment_id)}
        for skill_id, value in scores.items():
            rows[skill_id].lead_score = value
        await self.session.flush()


@dataclass
class AuditTrail:
    """Append-only writer for ``audit_entries``."""

    session: AsyncSession

    async def record(
        self,
        *,
        assessment_id: str,
        audit_type: str,
        editor_id: str,
        cycle_number: int,
        comments: str | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            assessment_id=assessment_id,
            audit_type=audit_type,
            editor_id=editor_id,
            cycle_number=cycle_number,
            comments=comments,
            audited_at=datetime.now(UTC),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def for_assessment(self, assessment_id: str) -> list[AuditEntry]:
        stmt = (
            select(AuditEntry)
            .where(AuditEntry.assessment_id == assessment_id)
            .order_by(AuditEntry.id)
        )
        return list((await self.session.execute(stmt)).scalars().all())
