from __future__ import annotations

import structlog
from fastapi import HTTPException, status
from skillmatrix.domain.errors import WorkflowError

logger = structlog.get_logger()

STATUS_BY_KIND: dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "unauthorized": status.HTTP_403_FORBIDDEN,
    "invalid_state": status.HTTP_409_CONFLICT,
    "validation_failure": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "stale_state": status.HTTP_409_CONFLICT,
    "conflict": status.HTTP_409_CONFLICT,
}


def to_http_exception(exc: WorkflowError) -> HTTPException:
    """Translate a workflow failure into ``{"detail": {"kind", "message"}}``."""
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    logger.info("workflow_error", kind=exc.kind, status_code=status_code, error=exc.message)
    return HTTPException(status_code=status_code, detail=exc.as_dict())
