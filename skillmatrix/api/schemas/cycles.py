from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict
from skillmatrix.api.schemas.assessments import CycleSkillResponse, TargetOutcomeResponse


class CycleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    created_by: str
    status: str
    scheduled_date: datetime | None = None
    comments: str | None = None
    target_teams: list[str]
    excluded_users: list[str]
    total_assessments: int
    completed_assessments: int
    completion_rate: float
    skills: list[CycleSkillResponse]
    created_at: datetime
    updated_at: datetime


class CycleCancelRequest(BaseModel):
    comments: str = ""


class CycleCancelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cycle_id: str
    title: str
    cancelled_assessments: int
    report: list[TargetOutcomeResponse]
