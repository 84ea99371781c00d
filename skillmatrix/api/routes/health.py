from __future__ import annotations

from datetime import UTC, datetime

import redis.asyncio as aioredis
import structlog
from fastapi import APIRouter
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from skillmatrix.core.config import get_settings
from skillmatrix.infrastructure.db.session import get_session_factory

router = APIRouter(tags=["Observability"])
logger = structlog.get_logger()


async def check_database() -> dict:
    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as exc:
        return {"status": "error", "message": str(exc)[:100]}
    return {"status": "ok"}


async def check_redis() -> dict:
    """The activation sweep queue lives in Redis."""
    client = aioredis.from_url(get_settings().redis_url)
    try:
        await client.ping()
    except (RedisError, OSError) as exc:
        return {"status": "error", "message": str(exc)[:100]}
    finally:
        await client.aclose()
    return {"status": "ok"}


@router.get("/health", summary="Service health probe")
async def health_check() -> dict:
    """Return basic service and datastore status information."""
    settings = get_settings()
    database_status = await check_database()
    redis_status = await check_redis()

    healthy = database_status["status"] == "ok" and redis_status["status"] == "ok"
    payload = {
        "service": settings.app_name,
        "version": settings.version,
        "status": "ok" if healthy else "degraded",
        "timestamp": datetime.now(UTC).isoformat(),
        "datastores": {
            "database": database_status,
            "redis": redis_status,
        },
    }
    logger.info("health_probe", **payload)
    return payload
