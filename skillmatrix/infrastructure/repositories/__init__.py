"""Repository adapters injected into the workflow services."""

from skillmatrix.infrastructure.repositories.assessments import (
    AssessmentRepository,
    AuditTrail,
    ScoreRepository,
)
from skillmatrix.infrastructure.repositories.cycles import CycleRepository
from skillmatrix.infrastructure.repositories.directory import SkillCatalog, UserDirectory
from skillmatrix.infrastructure.repositories.unit_of_work import UnitOfWork

__all__ = [
    "AssessmentRepository",
    "AuditTrail",
    "CycleRepository",
    "ScoreRepository",
    "SkillCatalog",
    "UnitOfWork",
    "UserDirectory",
]
