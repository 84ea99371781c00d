from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class AssessmentInitiateRequest(BaseModel):
    user_id: str = Field(..., min_length=1, description="Employee or lead to assess")
    skill_ids: list[int] = Field(..., description="Skills to score, at least one")
    scheduled_date: datetime | None = Field(
        None, description="Earliest moment the assessment becomes actionable"
    )
    comments: str = ""


class BulkInitiateRequest(BaseModel):
    title: str
    skill_ids: list[int]
    include_teams: list[str] = Field(
        default_factory=list, description='Team ids; empty or "all" targets everyone'
    )
    exclude_users: list[str] = Field(default_factory=list)
    scheduled_date: datetime | None = None
    comments: str = ""


class SkillScoreInput(BaseModel):
    skill_id: int
    score: int


class LeadAssessmentRequest(BaseModel):
    scores: list[SkillScoreInput]
    comments: str = ""


class ReviewDecisionRequest(BaseModel):
    approved: bool
    comments: str = ""


class DisputeResolutionRequest(BaseModel):
    escalate: bool = Field(..., description="True hands the dispute to HR, False reopens scoring")
    comments: str = ""


class CancelRequest(BaseModel):
    comments: str = ""


class ScoreDetailResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    skill_id: int
    skill_name: str
    lead_score: int | None = None


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    audit_type: str
    editor_id: str
    cycle_number: int
    comments: str | None = None
    audited_at: datetime


class AssessmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    status: str
    initiated_by: str
    next_approver: str | None = None
    scheduled_date: datetime | None = None
    next_scheduled_date: datetime | None = None
    current_cycle: int
    cycle_id: str | None = None
    comments: str | None = None
    lead_assessment_date: datetime | None = None
    employee_response_date: datetime | None = None
    employee_approved: bool | None = None
    employee_comments: str | None = None
    hr_final_decision: str | None = None
    hr_comments: str | None = None
    completed_at: datetime | None = None
    requested_at: datetime
    detailed_scores: list[ScoreDetailResponse]
    history: list[HistoryEntryResponse]
    is_accessible: bool


class TargetOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: str | None = None
    outcome: str
    reason: str | None = None
    assessment_id: str | None = None


class CycleSkillResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class BulkInitiateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    cycle_id: str
    title: str
    target_count: int
    total_assessments: int
    skills: list[CycleSkillResponse]
    created_at: datetime
    report: list[TargetOutcomeResponse]


class LatestScoreResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    skill_id: int
    skill_name: str
    lead_score: int
    assessment_id: str
    completed_at: datetime | None = None
