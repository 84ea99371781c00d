from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from sqlalchemy import insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from skillmatrix.domain.errors import StaleStateError
from skillmatrix.infrastructure.db.models import (
    AssessmentCycle,
    CycleStatus,
    assessment_cycle_skills,
)


@dataclass
class CycleRepository:
    """Persistence for bulk assessment cycles and their skill links."""

    session: AsyncSession

    async def add(self, cycle: AssessmentCycle) -> AssessmentCycle:
        self.session.add(cycle)
        await self.session.flush()
        return cycle

    async def get(self, cycle_id: str) -> AssessmentCycle | None:
        stmt = (
            select(AssessmentCycle)
            .where(AssessmentCycle.id == cycle_id)
            .options(selectinload(AssessmentCycle.skills))
            .execution_options(populate_existing=True)
        )
        return await self.session.scalar(stmt)

    async def list_all(self) -> list[AssessmentCycle]:
        stmt = (
            select(AssessmentCycle)
            .options(selectinload(AssessmentCycle.skills))
            .order_by(AssessmentCycle.created_at.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def link_skills(self, cycle_id: str, skill_ids: Sequence[int]) -> None:
        rows = [{"cycle_id": cycle_id, "skill_id": skill_id} for skill_id in sorted(set(skill_ids))]
        if rows:
            await self.session.execute(insert(assessment_cycle_skills), rows)

    async def set_total(self, cycle_id: str, total: int) -> None:
        await self.session.execute(
            update(AssessmentCycle)
            .where(AssessmentCycle.id == cycle_id)
            .values(total_assessments=total)
            .execution_options(synchronize_session=False)
        )

    async def increment_completed(self, cycle_id: str) -> None:
        await self.session.execute(
            update(AssessmentCycle)
            .where(AssessmentCycle.id == cycle_id)
            .values(completed_assessments=AssessmentCycle.completed_assessments + 1)
            .execution_options(synchronize_session=False)
        )

    async def transition(
        self,
        cycle_id: str,
        *,
        expected: CycleStatus,
        status: CycleStatus,
        **values: Any,
    ) -> None:
        stmt = (
            update(AssessmentCycle)
            .where(AssessmentCycle.id == cycle_id, AssessmentCycle.status == expected)
            .values(status=status, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        if result.rowcount != 1:
            raise StaleStateError(f"Assessment cycle {cycle_id} is no longer {expected.value}")
