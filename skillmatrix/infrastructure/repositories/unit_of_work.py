from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction
from skillmatrix.infrastructure.repositories.assessments import (
    AssessmentRepository,
    AuditTrail,
    ScoreRepository,
)
from skillmatrix.infrastructure.repositories.cycles import CycleRepository
from skillmatrix.infrastructure.repositories.directory import SkillCatalog, UserDirectory

logger = structlog.get_logger()


class UnitOfWork:
    """Groups the repositories of one request around a single transaction.

    ``async with uow:`` commits on success and rolls back on any exception, so a
    transition's score, audit and status writes become visible together or not
    at all.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = UserDirectory(session)
        self.skills = SkillCatalog(session)
        self.assessments = AssessmentRepository(session)
        self.scores = ScoreRepository(session)
        self.audit = AuditTrail(session)
        self.cycles = CycleRepository(session)

    async def __aenter__(self) -> UnitOfWork:
        logger.debug("uow_enter")
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if exc:
            await self.rollback()
        else:
            await self.commit()
        logger.debug("uow_exit", exc_type=str(exc_type) if exc_type else None)

    def savepoint(self) -> AsyncSessionTransaction:
        """Nested transaction for one child of a batch operation."""
        return self.session.begin_nested()

    async def commit(self) -> None:
        await self.session.commit()
        logger.debug("uow_commit")

    async def rollback(self) -> None:
        await self.session.rollback()
        logger.debug("uow_rollback")
