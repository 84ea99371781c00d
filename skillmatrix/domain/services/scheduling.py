"""
Scheduling rules for assessments.

- accessibility predicate used by action queues and views
- recurrence dates (fixed offset after a scheduled assessment)
- daily activation: a pure selection function plus the sweep that applies it

The timer that calls the sweep lives in ``skillmatrix.workers``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

import structlog
from skillmatrix.domain.errors import StaleStateError
from skillmatrix.domain.services.transitions import apply_transition
from skillmatrix.infrastructure.db.models import AssessmentStatus, AuditType
from skillmatrix.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored value is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_accessible(*, status: AssessmentStatus, scheduled_date: datetime | None, now: datetime) -> bool:
    if status.is_terminal:
        return False
    if scheduled_date is None:
        return True
    return ensure_utc(now) >= ensure_utc(scheduled_date)


def next_recurrence(scheduled_date: datetime, interval_days: int) -> datetime:
    return ensure_utc(scheduled_date) + timedelta(days=interval_days)


def day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Start and end (exclusive) of the UTC day containing ``now``."""
    start = ensure_utc(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return start, start + timedelta(days=1)


@dataclass(slots=True, frozen=True)
class ActivationCandidate:
    assessment_id: str
    status: AssessmentStatus
    scheduled_date: datetime
    lead_id: str | None
    initiated_by: str
    current_cycle: int


@dataclass(slots=True, frozen=True)
class Activation:
    """One INITIATED → LEAD_WRITING move decided by the daily sweep."""

    assessment_id: str
    next_approver: str
    editor_id: str
    cycle_number: int


def activate_due_assessments(
    now: datetime, candidates: Iterable[ActivationCandidate]
) -> list[Activation]:
    """Pick the candidates whose activation is due today.

    A candidate qualifies when it is still INITIATED, its scheduled date falls
    within the UTC day of ``now`` and its subject has a lead on file. Anything
    else is filtered out, which makes repeated runs no-ops.
    """
    start, end = day_bounds(now)
    activations: list[Activation] = []
    for candidate in candidates:
        if candidate.status is not AssessmentStatus.INITIATED:
            continue
        if not candidate.lead_id:
            continue
        scheduled = ensure_utc(candidate.scheduled_date)
        if not start <= scheduled < end:
            continue
        activations.append(
            Activation(
                assessment_id=candidate.assessment_id,
                next_approver=candidate.lead_id,
                editor_id=candidate.initiated_by,
                cycle_number=candidate.current_cycle,
            )
        )
    return activations


@dataclass(slots=True)
class SweepResult:
    run_at: datetime
    activated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)


class ActivationSweep:
    """Applies ``activate_due_assessments`` against storage, one aggregate at a time."""

    def __init__(self, uow: UnitOfWork, *, clock: Clock = utcnow) -> None:
        self.uow = uow
        self.clock = clock

    async def run(self, now: datetime | None = None) -> SweepResult:
        now = ensure_utc(now or self.clock())
        _, day_end = day_bounds(now)
        result = SweepResult(run_at=now)

        async with self.uow:
            rows = await self.uow.assessments.initiated_due_before(day_end)
            subjects = await self.uow.users.get_many(row.user_id for row in rows)
            by_id = {row.id: row for row in rows}
            candidates = [
                ActivationCandidate(
                    assessment_id=row.id,
                    status=row.status,
                    scheduled_date=row.scheduled_date,
                    lead_id=subjects[row.user_id].lead_id if row.user_id in subjects else None,
                    initiated_by=row.initiated_by,
                    current_cycle=row.current_cycle,
                )
                for row in rows
            ]

            for activation in activate_due_assessments(now, candidates):
                assessment = by_id[activation.assessment_id]
                try:
                    async with self.uow.savepoint():
                        await apply_transition(
                            self.uow,
                            assessment,
                            to=AssessmentStatus.LEAD_WRITING,
                            actor_id=activation.editor_id,
                            audit_type=AuditType.ACTIVATED,
                            comments="Assessment automatically activated on its scheduled date",
                            next_approver=activation.next_approver,
                        )
                except StaleStateError:
                    result.skipped.append(activation.assessment_id)
                    continue
                result.activated.append(activation.assessment_id)

        await logger.ainfo(
            "activation_sweep_finished",
            run_at=now.isoformat(),
            candidates=len(candidates),
            activated=len(result.activated),
            skipped=len(result.skipped),
        )
        return result
