from __future__ import annotations

from dataclasses import dataclass, field

from skillmatrix.infrastructure.db.models import UserRole


@dataclass(slots=True)
class User:
    """Represents the authenticated caller of an API request."""

    user_id: str
    email: str = ""
    roles: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class UserRecord:
    """Identity directory entry consumed by the workflow engine."""

    id: str
    role: UserRole
    name: str = ""
    lead_id: str | None = None
    hr_id: str | None = None
    team_id: str | None = None

    @property
    def has_lead(self) -> bool:
        return bool(self.lead_id)
