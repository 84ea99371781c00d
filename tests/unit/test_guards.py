from __future__ import annotations

import pytest
from skillmatrix.domain.errors import UnauthorizedError
from skillmatrix.domain.services import AssessmentWorkflowService, AuthorizationGuard, Relationship
from skillmatrix.infrastructure.db.models import UserRole
from skillmatrix.infrastructure.repositories import UnitOfWork

from tests.utils import EMP_1, EMP_2, HR_1, HR_2, LEAD_1, LEAD_2, SOLO, FixedClock


@pytest.fixture()
def guard(uow: UnitOfWork) -> AuthorizationGuard:
    return AuthorizationGuard(uow.users)


async def test_role_requirement(guard: AuthorizationGuard) -> None:
    actor = await guard.authorize(HR_2, UserRole.HR)
    assert actor.id == HR_2

    with pytest.raises(UnauthorizedError, match="Only hr users"):
        await guard.authorize(LEAD_1, UserRole.HR, action="start assessments")


async def test_unknown_actor_is_unauthorized(guard: AuthorizationGuard) -> None:
    with pytest.raises(UnauthorizedError, match="Unknown user"):
        await guard.authorize("ghost", UserRole.EMPLOYEE)


async def test_relationships_follow_the_directory(
    guard: AuthorizationGuard, uow: UnitOfWork, clock: FixedClock
) -> None:
    workflow = AssessmentWorkflowService(uow, clock=clock)
    led = await workflow.initiate(hr_id=HR_1, target_user_id=EMP_1, skill_ids=[1])
    unled = await workflow.initiate(hr_id=HR_1, target_user_id=SOLO, skill_ids=[1])
    led_row = await uow.assessments.get(led.id)
    unled_row = await uow.assessments.get(unled.id)

    assert await guard.expected_actor(Relationship.SUBJECT, led_row) == EMP_1
    assert await guard.expected_actor(Relationship.SCORER, led_row) == LEAD_1
    # no lead: the initiating HR user scores
    assert await guard.expected_actor(Relationship.SCORER, unled_row) == HR_1

    for outsider in (EMP_2, LEAD_2):
        with pytest.raises(UnauthorizedError):
            await guard.authorize(outsider, Relationship.SCORER, assessment=led_row)


async def test_relationship_without_assessment_is_a_programming_error(
    guard: AuthorizationGuard,
) -> None:
    with pytest.raises(ValueError):
        await guard.authorize(LEAD_1, Relationship.SCORER)
