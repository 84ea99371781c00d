"""Domain services."""

from skillmatrix.domain.services.cycles import (
    BulkInitiationResult,
    CycleCancellationResult,
    CycleOrchestrator,
    CycleView,
    TargetOutcome,
)
from skillmatrix.domain.services.guards import AuthorizationGuard, Relationship
from skillmatrix.domain.services.queries import (
    AssessmentQueryService,
    LatestScore,
    TeamStatistics,
    TeamSummary,
)
from skillmatrix.domain.services.scheduling import (
    Activation,
    ActivationCandidate,
    ActivationSweep,
    SweepResult,
    activate_due_assessments,
    is_accessible,
)
from skillmatrix.domain.services.views import AssessmentView
from skillmatrix.domain.services.workflow import AssessmentWorkflowService

__all__ = [
    "Activation",
    "ActivationCandidate",
    "ActivationSweep",
    "AssessmentQueryService",
    "AssessmentView",
    "AssessmentWorkflowService",
    "AuthorizationGuard",
    "BulkInitiationResult",
    "CycleCancellationResult",
    "CycleOrchestrator",
    "CycleView",
    "LatestScore",
    "Relationship",
    "SweepResult",
    "TargetOutcome",
    "TeamStatistics",
    "TeamSummary",
    "activate_due_assessments",
    "is_accessible",
]
