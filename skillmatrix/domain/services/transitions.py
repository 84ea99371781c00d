from __future__ import annotations

from typing import Any

import structlog
from skillmatrix.infrastructure.db.models import AssessmentRequest, AssessmentStatus, AuditType
from skillmatrix.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


async def apply_transition(
    uow: UnitOfWork,
    assessment: AssessmentRequest,
    *,
    to: AssessmentStatus,
    actor_id: str,
    audit_type: AuditType,
    comments: str | None = None,
    **values: Any,
) -> None:
    """Move ``assessment`` to ``to`` and append exactly one audit entry.

    The status write is conditional on the status the caller observed, so a
    concurrent writer makes this raise StaleStateError instead of overwriting.
    """
    source = assessment.status
    await uow.assessments.transition(
        assessment,
        expected=source,
        values={"status": to, **values},
    )
    await uow.audit.record(
        assessment_id=assessment.id,
        audit_type=audit_type.value,
        editor_id=actor_id,
        cycle_number=assessment.current_cycle,
        comments=comments,
    )
    logger.info(
        "assessment_transition",
        assessment_id=assessment.id,
        from_status=source.value,
        to_status=to.value,
        audit_type=audit_type.value,
        actor_id=actor_id,
        cycle=assessment.current_cycle,
    )
