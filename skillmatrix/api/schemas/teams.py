from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from skillmatrix.api.schemas.assessments import AssessmentResponse
from skillmatrix.infrastructure.db.models import UserRole


class TeamStatisticsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_size: int
    total_assessments: int
    by_status: dict[str, int]
    pending_actions: int
    recent_assessments: int


class TeamMemberResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    role: UserRole
    lead_id: str | None = None


class TeamSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    team_id: str
    member_count: int
    members: list[TeamMemberResponse]
    total_assessments: int
    by_status: dict[str, int]
    active_assessments: int
    recent: list[AssessmentResponse]
