"""
Jobs executed by the rq worker.

The activation sweep runs once a day; every run schedules the next one so a
single bootstrap enqueue keeps the chain going.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from redis import Redis
from rq import Queue
from skillmatrix.core.config import get_settings
from skillmatrix.domain.services.scheduling import ActivationSweep
from skillmatrix.infrastructure.db.session import dispose_engine, get_session_factory
from skillmatrix.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


def activate_due_assessments_job(run_at: str | None = None) -> dict[str, Any]:
    """Entry point for the daily activation sweep.

    Args:
        run_at: Optional ISO timestamp to evaluate instead of the current time.

    Returns:
        Summary with the activated and skipped assessment ids.
    """
    now = datetime.fromisoformat(run_at) if run_at else None
    result = asyncio.run(_run_sweep(now))
    schedule_next_sweep()
    return result


async def _run_sweep(now: datetime | None) -> dict[str, Any]:
    try:
        async with get_session_factory()() as session:
            result = await ActivationSweep(UnitOfWork(session)).run(now)
    finally:
        # each job gets its own event loop, pooled connections cannot outlive it
        await dispose_engine()
    return {
        "run_at": result.run_at.isoformat(),
        "activated": result.activated,
        "skipped": result.skipped,
    }


def next_sweep_time(now: datetime, hour: int) -> datetime:
    """Next occurrence of ``hour``:00 UTC strictly after ``now``."""
    candidate = now.astimezone(UTC).replace(hour=hour, minute=0, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def schedule_next_sweep(connection: Redis | None = None) -> datetime:
    settings = get_settings()
    connection = connection or Redis.from_url(settings.redis_url)
    run_at = next_sweep_time(datetime.now(UTC), settings.activation_sweep_hour)
    queue = Queue(settings.sweep_queue_name, connection=connection)
    # one job id per day so a worker restart does not fork the chain
    queue.enqueue_at(
        run_at, activate_due_assessments_job, job_id=f"activation-sweep-{run_at:%Y%m%d}"
    )
    logger.info("activation_sweep_scheduled", run_at=run_at.isoformat())
    return run_at
