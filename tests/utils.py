from __future__ import annotations

from datetime import datetime, timedelta

from skillmatrix.api.deps import issue_smoke_token
from skillmatrix.core.auth import Role

HR_1 = "hr-1"
HR_2 = "hr-2"
LEAD_1 = "lead-1"
LEAD_2 = "lead-2"
EMP_1 = "emp-1"
EMP_2 = "emp-2"
EMP_3 = "emp-3"
SOLO = "solo-1"  # employee without a lead


def auth_headers(user_id: str = EMP_1, role: Role = Role.EMPLOYEE) -> dict[str, str]:
    token = issue_smoke_token(user_id, role=role, email=f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


class FixedClock:
    """Manually advanced clock injected into the workflow services."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now
