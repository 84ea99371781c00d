"""Initial schema for users, skills, assessment requests and cycles

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None

user_role_enum = sa.Enum("employee", "lead", "hr", name="user_role")
assessment_status_enum = sa.Enum(
    "INITIATED",
    "LEAD_WRITING",
    "EMPLOYEE_REVIEW",
    "EMPLOYEE_APPROVED",
    "EMPLOYEE_REJECTED",
    "HR_FINAL_REVIEW",
    "COMPLETED",
    "CANCELLED",
    name="assessment_status",
)
cycle_status_enum = sa.Enum("ACTIVE", "COMPLETED", "CANCELLED", name="cycle_status")
hr_decision_enum = sa.Enum("APPROVED", "REJECTED", name="hr_final_decision")


def _timestamp(name: str) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True, index=True),
        sa.Column("role", user_role_enum, nullable=False),
        sa.Column(
            "lead_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column(
            "hr_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("team_id", sa.String(length=64), nullable=True, index=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "skills",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("low", sa.Text(), nullable=True),
        sa.Column("medium", sa.Text(), nullable=True),
        sa.Column("average", sa.Text(), nullable=True),
        sa.Column("high", sa.Text(), nullable=True),
        _timestamp("created_at"),
    )

    op.create_table(
        "assessment_cycles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", cycle_status_enum, nullable=False, index=True),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("target_teams", sa.JSON(), nullable=True),
        sa.Column("excluded_users", sa.JSON(), nullable=True),
        sa.Column("total_assessments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_assessments", sa.Integer(), nullable=False, server_default="0"),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "assessment_cycle_skills",
        sa.Column(
            "cycle_id",
            sa.String(length=36),
            sa.ForeignKey("assessment_cycles.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "skill_id",
            sa.Integer(),
            sa.ForeignKey("skills.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "assessment_requests",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(length=64),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "cycle_id",
            sa.String(length=36),
            sa.ForeignKey("assessment_cycles.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        ),
        sa.Column("status", assessment_status_enum, nullable=False, index=True),
        sa.Column("initiated_by", sa.String(length=64), nullable=False),
        sa.Column("next_approver", sa.String(length=64), nullable=True, index=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("next_scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_cycle", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("comments", sa.Text(), nullable=True),
        sa.Column("lead_assessment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("employee_response_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("employee_approved", sa.Boolean(), nullable=True),
        sa.Column("employee_comments", sa.Text(), nullable=True),
        sa.Column("hr_final_decision", hr_decision_enum, nullable=True),
        sa.Column("hr_comments", sa.Text(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _timestamp("requested_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "scores",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assessment_id",
            sa.String(length=36),
            sa.ForeignKey("assessment_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "skill_id",
            sa.Integer(),
            sa.ForeignKey("skills.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lead_score", sa.Integer(), nullable=True),
        _timestamp("updated_at"),
        sa.UniqueConstraint("assessment_id", "skill_id", name="uq_score_per_skill"),
    )

    op.create_table(
        "audit_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "assessment_id",
            sa.String(length=36),
            sa.ForeignKey("assessment_requests.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("audit_type", sa.String(length=64), nullable=False),
        sa.Column("editor_id", sa.String(length=64), nullable=False),
        sa.Column("cycle_number", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("comments", sa.Text(), nullable=True),
        _timestamp("audited_at"),
    )

    skills = [
        {
            "name": "Python",
            "low": "Reads and tweaks existing scripts",
            "medium": "Writes small modules with tests",
            "average": "Designs packages and reviews others' code",
            "high": "Sets standards and mentors across teams",
        },
        {
            "name": "SQL",
            "low": "Runs simple selects",
            "medium": "Writes joins and aggregations",
            "average": "Tunes queries and designs schemas",
            "high": "Owns data modelling for a domain",
        },
        {
            "name": "Communication",
            "low": "Shares status when asked",
            "medium": "Communicates clearly inside the team",
            "average": "Drives alignment across teams",
            "high": "Represents the organisation externally",
        },
    ]
    op.bulk_insert(
        sa.table(
            "skills",
            sa.column("name", sa.String()),
            sa.column("low", sa.Text()),
            sa.column("medium", sa.Text()),
            sa.column("average", sa.Text()),
            sa.column("high", sa.Text()),
        ),
        skills,
    )


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("scores")
    op.drop_table("assessment_requests")
    op.drop_table("assessment_cycle_skills")
    op.drop_table("assessment_cycles")
    op.drop_table("skills")
    op.drop_table("users")

    bind = op.get_bind()
    hr_decision_enum.drop(bind, checkfirst=True)
    cycle_status_enum.drop(bind, checkfirst=True)
    assessment_status_enum.drop(bind, checkfirst=True)
    user_role_enum.drop(bind, checkfirst=True)
