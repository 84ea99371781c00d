from __future__ import annotations

import asyncio
from collections.abc import Sequence

import structlog
from redis import Redis
from rq import Queue, Worker
from skillmatrix.core.config import get_settings
from skillmatrix.core.logging import setup_logging
from skillmatrix.workers import jobs

logger = structlog.get_logger()

REGISTERED_JOBS = {
    "activate_due_assessments": jobs.activate_due_assessments_job,
}


async def main() -> None:
    """Bootstrap the worker and make sure a sweep is on the schedule."""
    setup_logging()
    settings = get_settings()
    redis_connection = Redis.from_url(settings.redis_url)
    queue_names = (settings.sweep_queue_name,)
    logger.info(
        "worker_bootstrap",
        queues=list(queue_names),
        jobs=list(REGISTERED_JOBS.keys()),
    )
    jobs.schedule_next_sweep(redis_connection)

    await asyncio.to_thread(_run_worker, redis_connection, queue_names)


def _run_worker(connection: Redis, queue_names: Sequence[str]) -> None:
    queues = [Queue(name, connection=connection) for name in queue_names]
    worker = Worker(queues, connection=connection, name="skillmatrix-worker")
    worker.work(with_scheduler=True)


if __name__ == "__main__":
    asyncio.run(main())
