"""Read-only adapters over the identity directory and the skill catalog."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from skillmatrix.domain.models import UserRecord
from skillmatrix.infrastructure.db.models import Skill, UserModel, UserRole


def _to_record(user: UserModel) -> UserRecord:
    return UserRecord(
        id=user.id,
        role=user.role,
        name=user.name,
        lead_id=user.lead_id,
        hr_id=user.hr_id,
        team_id=user.team_id,
    )


@dataclass
class UserDirectory:
    """Resolves user ids to ``{role, lead_id, hr_id, team_id}``."""

    session: AsyncSession

    async def get(self, user_id: str) -> UserRecord | None:
        user = await self.session.get(UserModel, user_id)
        return _to_record(user) if user is not None else None

    async def get_many(self, user_ids: Iterable[str]) -> dict[str, UserRecord]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        stmt = select(UserModel).where(UserModel.id.in_(ids))
        users = (await self.session.execute(stmt)).scalars().all()
        return {user.id: _to_record(user) for user in users}

    async def assessable_users(
        self, *, team_ids: Sequence[str] | None = None
    ) -> list[UserRecord]:
        """Employees and leads, optionally restricted to the given teams."""
        stmt = select(UserModel).where(UserModel.role.in_(UserRole.assessable()))
        if team_ids is not None:
            stmt = stmt.where(UserModel.team_id.in_(list(team_ids)))
        stmt = stmt.order_by(UserModel.name, UserModel.id)
        users = (await self.session.execute(stmt)).scalars().all()
        return [_to_record(user) for user in users]

    async def direct_reports(self, lead_id: str) -> list[UserRecord]:
        stmt = select(UserModel).where(UserModel.lead_id == lead_id).order_by(UserModel.name)
        users = (await self.session.execute(stmt)).scalars().all()
        return [_to_record(user) for user in users]

    async def team_members(self, team_id: str) -> list[UserRecord]:
        stmt = select(UserModel).where(UserModel.team_id == team_id).order_by(UserModel.name)
        users = (await self.session.execute(stmt)).scalars().all()
        return [_to_record(user) for user in users]


@dataclass
class SkillCatalog:
    session: AsyncSession

    async def get_many(self, skill_ids: Iterable[int]) -> list[Skill]:
        ids = list(set(skill_ids))
        if not ids:
            return []
        stmt = select(Skill).where(Skill.id.in_(ids)).order_by(Skill.id)
        return list((await self.session.execute(stmt)).scalars().all())
