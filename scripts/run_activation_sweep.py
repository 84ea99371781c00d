#!/usr/bin/env python
"""
Run the activation sweep once, in-process.

Useful for development without a redis-backed worker. Pass an ISO timestamp
to evaluate a different day than today.

Usage:
    python scripts/run_activation_sweep.py [2026-03-02T09:00:00+00:00]
"""

from __future__ import annotations

import asyncio
import sys
from datetime import datetime

from skillmatrix.core.config import get_settings
from skillmatrix.core.logging import setup_logging
from skillmatrix.domain.services.scheduling import ActivationSweep
from skillmatrix.infrastructure.db.session import dispose_engine, get_session_factory
from skillmatrix.infrastructure.repositories import UnitOfWork


async def run_sweep(now: datetime | None) -> None:
    settings = get_settings()
    host = settings.database_url.split("@")[1] if "@" in settings.database_url else "local"
    print(f"Running activation sweep against {host}")

    try:
        async with get_session_factory()() as session:
            result = await ActivationSweep(UnitOfWork(session)).run(now)
    finally:
        await dispose_engine()

    print(f"Evaluated at {result.run_at.isoformat()}")
    print(f"Activated: {len(result.activated)}")
    for assessment_id in result.activated:
        print(f"   - {assessment_id}")
    if result.skipped:
        print(f"Skipped (changed concurrently): {', '.join(result.skipped)}")


def main() -> None:
    setup_logging()
    now = datetime.fromisoformat(sys.argv[1]) if len(sys.argv) > 1 else None
    asyncio.run(run_sweep(now))


if __name__ == "__main__":
    main()
