from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from skillmatrix.api.deps import get_unit_of_work, require_roles
from skillmatrix.api.errors import to_http_exception
from skillmatrix.api.schemas.assessments import AssessmentResponse
from skillmatrix.api.schemas.teams import TeamStatisticsResponse, TeamSummaryResponse
from skillmatrix.domain import User
from skillmatrix.domain.errors import WorkflowError
from skillmatrix.domain.services import AssessmentQueryService
from skillmatrix.infrastructure.repositories import UnitOfWork

router = APIRouter(prefix="/teams", tags=["Teams"])


@router.get("/mine/assessments", response_model=list[AssessmentResponse])
async def my_team_assessments(
    pending_only: bool = Query(False, description="Only INITIATED, LEAD_WRITING, EMPLOYEE_REVIEW"),
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["lead"])),
) -> list[AssessmentResponse]:
    try:
        views = await AssessmentQueryService(uow).team_assessments(
            lead_id=user.user_id, pending_only=pending_only
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return [AssessmentResponse.model_validate(view, from_attributes=True) for view in views]


@router.get("/mine/statistics", response_model=TeamStatisticsResponse)
async def my_team_statistics(
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["lead"])),
) -> TeamStatisticsResponse:
    try:
        stats = await AssessmentQueryService(uow).team_statistics(lead_id=user.user_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TeamStatisticsResponse.model_validate(stats, from_attributes=True)


@router.get("/{team_id}/summary", response_model=TeamSummaryResponse)
async def team_summary(
    team_id: str,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> TeamSummaryResponse:
    try:
        summary = await AssessmentQueryService(uow).team_summary(
            hr_id=user.user_id, team_id=team_id
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return TeamSummaryResponse.model_validate(summary, from_attributes=True)
