from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _uuid() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    """Organisation roles resolved by the identity directory."""

    EMPLOYEE = "employee"
    LEAD = "lead"
    HR = "hr"

    @classmethod
    def assessable(cls) -> tuple[UserRole, ...]:
        return (cls.EMPLOYEE, cls.LEAD)


class AssessmentStatus(str, enum.Enum):
    """Assessment workflow status enum.

    Note: Must use name='assessment_status' in Enum() to match database enum type.
    """

    INITIATED = "INITIATED"
    LEAD_WRITING = "LEAD_WRITING"
    EMPLOYEE_REVIEW = "EMPLOYEE_REVIEW"
    EMPLOYEE_APPROVED = "EMPLOYEE_APPROVED"
    EMPLOYEE_REJECTED = "EMPLOYEE_REJECTED"
    HR_FINAL_REVIEW = "HR_FINAL_REVIEW"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @classmethod
    def active_statuses(cls) -> tuple[AssessmentStatus, ...]:
        return (
            cls.INITIATED,
            cls.LEAD_WRITING,
            cls.EMPLOYEE_REVIEW,
            cls.EMPLOYEE_APPROVED,
            cls.EMPLOYEE_REJECTED,
            cls.HR_FINAL_REVIEW,
        )

    @classmethod
    def terminal_statuses(cls) -> tuple[AssessmentStatus, ...]:
        return (cls.COMPLETED, cls.CANCELLED)

    @property
    def is_terminal(self) -> bool:
        return self in self.terminal_statuses()


class CycleStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class HrDecision(str, enum.Enum):
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class AuditType(str, enum.Enum):
    """Tags written to the audit trail, one per workflow transition."""

    INITIATED = "INITIATED"
    LEAD_ASSESSMENT_WRITTEN = "LEAD_ASSESSMENT_WRITTEN"
    EMPLOYEE_APPROVED = "EMPLOYEE_APPROVED"
    EMPLOYEE_REJECTED = "EMPLOYEE_REJECTED"
    DISPUTE_REOPENED = "DISPUTE_REOPENED"
    DISPUTE_ESCALATED = "DISPUTE_ESCALATED"
    HR_APPROVED = "HR_APPROVED"
    HR_REJECTED = "HR_REJECTED"
    CANCELLED = "CANCELLED"
    SCHEDULED = "SCHEDULED"
    ACTIVATED = "ACTIVATED"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


class UserModel(Base):
    """Directory view of an organisation member (owned by the identity service)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=_enum_values),
        default=UserRole.EMPLOYEE,
        nullable=False,
    )
    lead_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    hr_id: Mapped[str | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    team_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<UserModel(id={self.id}, role={self.role.value}, lead_id={self.lead_id})>"


class Skill(Base):
    __tablename__ = "skills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    # Level descriptors shown next to the 1-4 scale
    low: Mapped[str | None] = mapped_column(Text)
    medium: Mapped[str | None] = mapped_column(Text)
    average: Mapped[str | None] = mapped_column(Text)
    high: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )


assessment_cycle_skills = Table(
    "assessment_cycle_skills",
    Base.metadata,
    Column(
        "cycle_id",
        ForeignKey("assessment_cycles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column("skill_id", ForeignKey("skills.id", ondelete="CASCADE"), primary_key=True),
)


class AssessmentCycle(Base):
    """A named batch of assessment requests created by one bulk initiation."""

    __tablename__ = "assessment_cycles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by: Mapped[str] = mapped_column(String(64), nullable=False)
    scheduled_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[CycleStatus] = mapped_column(
        Enum(CycleStatus, name="cycle_status", values_callable=_enum_values),
        default=CycleStatus.ACTIVE,
        nullable=False,
        index=True,
    )
    comments: Mapped[str | None] = mapped_column(Text)
    target_teams: Mapped[list[str] | None] = mapped_column(JSON)
    excluded_users: Mapped[list[str] | None] = mapped_column(JSON)
    total_assessments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_assessments: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    skills: Mapped[list[Skill]] = relationship(
        secondary=assessment_cycle_skills, order_by="Skill.id"
    )
    assessments: Mapped[list[AssessmentRequest]] = relationship(back_populates="cycle")

    @property
    def completion_rate(self) -> float:
        if not self.total_assessments:
            return 0.0
        return round(self.completed_assessments / self.total_assessments * 100, 2)


class AssessmentRequest(Base):
    """Aggregate root: one assessment of one user for one recurrence."""

    __tablename__ = "assessment_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    user_id: Mapped[str] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    cycle_id: Mapped[str | None] = mapped_column(
        ForeignKey("assessment_cycles.id", ondelete="SET NULL"), nullable=True, index=True
    )
    status: Mapped[AssessmentStatus] = mapped_column(
        Enum(AssessmentStatus, name="assessment_status", values_callable=_enum_values),
        default=AssessmentStatus.INITIATED,
        nullable=False,
        index=True,
    )
    initiated_by: Mapped[str] = mapped_column(String(64), nullable=False)
    next_approver: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    scheduled_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    next_scheduled_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    current_cycle: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text)
    lead_assessment_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    employee_response_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    employee_approved: Mapped[bool | None] = mapped_column(Boolean)
    employee_comments: Mapped[str | None] = mapped_column(Text)
    hr_final_decision: Mapped[HrDecision | None] = mapped_column(
        Enum(HrDecision, name="hr_final_decision", values_callable=_enum_values)
    )
    hr_comments: Mapped[str | None] = mapped_column(Text)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    requested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    subject: Mapped[UserModel] = relationship()
    cycle: Mapped[AssessmentCycle | None] = relationship(back_populates="assessments")
    scores: Mapped[list[Score]] = relationship(
        back_populates="assessment",
        cascade="all,delete-orphan",
        order_by="Score.skill_id",
    )
    audit_entries: Mapped[list[AuditEntry]] = relationship(
        back_populates="assessment",
        cascade="all,delete-orphan",
        order_by="AuditEntry.id",
    )


class Score(Base):
    """Lead-assigned score for one skill of one assessment."""

    __tablename__ = "scores"
    __table_args__ = (
        UniqueConstraint("assessment_id", "skill_id", name="uq_score_per_skill"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    assessment_id: Mapped[str] = mapped_column(
        ForeignKey("assessment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    skill_id: Mapped[int] = mapped_column(
        ForeignKey("skills.id", ondelete="CASCADE"), nullable=False
    )
    lead_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False
    )

    assessment: Mapped[AssessmentRequest] = relationship(back_populates="scores")
    skill: Mapped[Skill] = relationship(lazy="joined")


class AuditEntry(Base):
    """Append-only history row; never updated or deleted by the workflow."""

    __tablename__ = "audit_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assessment_id: Mapped[str] = mapped_column(
        ForeignKey("assessment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    audit_type: Mapped[str] = mapped_column(String(64), nullable=False)
    editor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    cycle_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    comments: Mapped[str | None] = mapped_column(Text)
    audited_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, nullable=False
    )

    assessment: Mapped[AssessmentRequest] = relationship(back_populates="audit_entries")


__all__ = [
    "UserRole",
    "AssessmentStatus",
    "CycleStatus",
    "HrDecision",
    "AuditType",
    "UserModel",
    "Skill",
    "AssessmentCycle",
    "AssessmentRequest",
    "Score",
    "AuditEntry",
    "assessment_cycle_skills",
]
