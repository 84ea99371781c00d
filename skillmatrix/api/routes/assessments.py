from __future__ import annotations

from fastapi import APIRouter, Depends
from skillmatrix.api.deps import get_current_user, get_unit_of_work, require_roles
from skillmatrix.api.errors import to_http_exception
from skillmatrix.api.schemas.assessments import (
    AssessmentInitiateRequest,
    AssessmentResponse,
    BulkInitiateRequest,
    BulkInitiateResponse,
    CancelRequest,
    DisputeResolutionRequest,
    LatestScoreResponse,
    LeadAssessmentRequest,
    ReviewDecisionRequest,
)
from skillmatrix.domain import User
from skillmatrix.domain.errors import UnauthorizedError, ValidationFailureError, WorkflowError
from skillmatrix.domain.services import (
    AssessmentQueryService,
    AssessmentView,
    AssessmentWorkflowService,
    CycleOrchestrator,
)
from skillmatrix.infrastructure.repositories import UnitOfWork

router = APIRouter(prefix="/assessments", tags=["Assessments"])


def _to_response(view: AssessmentView) -> AssessmentResponse:
    return AssessmentResponse.model_validate(view, from_attributes=True)


@router.post("", response_model=AssessmentResponse, status_code=201)
async def initiate_assessment(
    payload: AssessmentInitiateRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> AssessmentResponse:
    service = AssessmentWorkflowService(uow)
    try:
        view = await service.initiate(
            hr_id=user.user_id,
            target_user_id=payload.user_id,
            skill_ids=payload.skill_ids,
            scheduled_date=payload.scheduled_date,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/bulk", response_model=BulkInitiateResponse, status_code=201)
async def initiate_bulk_assessment(
    payload: BulkInitiateRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> BulkInitiateResponse:
    """
    Create one assessment cycle and fan out an assessment per eligible user.

    Users that already have an active assessment are skipped and reported,
    they never fail the batch.
    """
    orchestrator = CycleOrchestrator(uow)
    try:
        result = await orchestrator.initiate_bulk(
            hr_id=user.user_id,
            skill_ids=payload.skill_ids,
            title=payload.title,
            include_teams=payload.include_teams,
            exclude_users=payload.exclude_users,
            scheduled_date=payload.scheduled_date,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return BulkInitiateResponse.model_validate(result, from_attributes=True)


@router.get("", response_model=list[AssessmentResponse])
async def list_assessments(
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(get_current_user),
) -> list[AssessmentResponse]:
    record = await uow.users.get(user.user_id)
    if record is None:
        raise to_http_exception(UnauthorizedError(f"Unknown user {user.user_id}"))
    views = await AssessmentQueryService(uow).assessments_for_role(
        user_id=record.id, role=record.role
    )
    return [_to_response(view) for view in views]


@router.get("/requiring-action", response_model=list[AssessmentResponse])
async def list_requiring_action(
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(get_current_user),
) -> list[AssessmentResponse]:
    views = await AssessmentQueryService(uow).assessments_requiring_action(user_id=user.user_id)
    return [_to_response(view) for view in views]


@router.get("/latest-scores/{user_id}", response_model=list[LatestScoreResponse])
async def latest_scores(
    user_id: str,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(get_current_user),
) -> list[LatestScoreResponse]:
    try:
        scores = await AssessmentQueryService(uow).latest_approved_scores(
            viewer_id=user.user_id, user_id=user_id
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return [LatestScoreResponse.model_validate(score, from_attributes=True) for score in scores]


@router.get("/{assessment_id}", response_model=AssessmentResponse)
async def get_assessment(
    assessment_id: str,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(get_current_user),
) -> AssessmentResponse:
    try:
        view = await AssessmentQueryService(uow).get_assessment(
            viewer_id=user.user_id, assessment_id=assessment_id
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/{assessment_id}/lead-assessment", response_model=AssessmentResponse)
async def write_lead_assessment(
    assessment_id: str,
    payload: LeadAssessmentRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["lead", "hr"])),
) -> AssessmentResponse:
    try:
        scores: dict[int, int] = {}
        for item in payload.scores:
            if item.skill_id in scores:
                raise ValidationFailureError(f"Duplicate score for skill {item.skill_id}")
            scores[item.skill_id] = item.score
        view = await AssessmentWorkflowService(uow).write_lead_assessment(
            lead_id=user.user_id,
            assessment_id=assessment_id,
            scores=scores,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/{assessment_id}/employee-review", response_model=AssessmentResponse)
async def employee_review(
    assessment_id: str,
    payload: ReviewDecisionRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["employee", "lead"])),
) -> AssessmentResponse:
    try:
        view = await AssessmentWorkflowService(uow).employee_review(
            employee_id=user.user_id,
            assessment_id=assessment_id,
            approved=payload.approved,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/{assessment_id}/dispute", response_model=AssessmentResponse)
async def resolve_dispute(
    assessment_id: str,
    payload: DisputeResolutionRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["lead", "hr"])),
) -> AssessmentResponse:
    try:
        view = await AssessmentWorkflowService(uow).resolve_dispute(
            lead_id=user.user_id,
            assessment_id=assessment_id,
            escalate=payload.escalate,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/{assessment_id}/hr-review", response_model=AssessmentResponse)
async def hr_final_review(
    assessment_id: str,
    payload: ReviewDecisionRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> AssessmentResponse:
    try:
        view = await AssessmentWorkflowService(uow).hr_final_review(
            hr_id=user.user_id,
            assessment_id=assessment_id,
            approved=payload.approved,
            comments=payload.comments,
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)


@router.post("/{assessment_id}/cancel", response_model=AssessmentResponse)
async def cancel_assessment(
    assessment_id: str,
    payload: CancelRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> AssessmentResponse:
    try:
        view = await AssessmentWorkflowService(uow).cancel(
            hr_id=user.user_id, assessment_id=assessment_id, comments=payload.comments
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return _to_response(view)
