from __future__ import annotations

from fastapi import APIRouter, Depends
from skillmatrix.api.deps import get_unit_of_work, require_roles
from skillmatrix.api.errors import to_http_exception
from skillmatrix.api.schemas.cycles import CycleCancelRequest, CycleCancelResponse, CycleResponse
from skillmatrix.domain import User
from skillmatrix.domain.errors import WorkflowError
from skillmatrix.domain.services import CycleOrchestrator
from skillmatrix.infrastructure.repositories import UnitOfWork

router = APIRouter(prefix="/cycles", tags=["Assessment Cycles"])


@router.get("", response_model=list[CycleResponse])
async def list_cycles(
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> list[CycleResponse]:
    try:
        cycles = await CycleOrchestrator(uow).list_cycles(hr_id=user.user_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return [CycleResponse.model_validate(cycle, from_attributes=True) for cycle in cycles]


@router.get("/{cycle_id}", response_model=CycleResponse)
async def get_cycle(
    cycle_id: str,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> CycleResponse:
    try:
        cycle = await CycleOrchestrator(uow).get_cycle(hr_id=user.user_id, cycle_id=cycle_id)
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return CycleResponse.model_validate(cycle, from_attributes=True)


@router.post("/{cycle_id}/cancel", response_model=CycleCancelResponse)
async def cancel_cycle(
    cycle_id: str,
    payload: CycleCancelRequest,
    uow: UnitOfWork = Depends(get_unit_of_work),
    user: User = Depends(require_roles(["hr"])),
) -> CycleCancelResponse:
    """Cancel the cycle and every still-active assessment in it."""
    try:
        result = await CycleOrchestrator(uow).cancel_cycle(
            hr_id=user.user_id, cycle_id=cycle_id, comments=payload.comments
        )
    except WorkflowError as exc:
        raise to_http_exception(exc) from exc
    return CycleCancelResponse.model_validate(result, from_attributes=True)
