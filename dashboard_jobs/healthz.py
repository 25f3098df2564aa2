import time
from datetime import UTC, datetime

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends
from pydantic import BaseModel
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from dashboard_jobs.config.settings import Settings, SettingsDep
from dashboard_jobs.core.exceptions import create_success_response
from dashboard_jobs.infra.database import get_session
from dashboard_jobs.infra.redis import get_redis

router = APIRouter()


class DependencyHealth(BaseModel):
    """Connectivity status of one backing service."""

    connected: bool
    response_time_ms: float | None = None
    error: str | None = None


class HealthResponse(BaseModel):
    ok: bool
    version: str
    environment: str
    timestamp: str
    database: DependencyHealth
    queue: DependencyHealth


@router.get("/healthz", response_model=dict)
async def health_check(
    settings: Settings = SettingsDep,
    session: AsyncSession = Depends(get_session),
    redis: aioredis.Redis = Depends(get_redis),
):
    """Health check covering the database and the Redis queue store."""

    database = await _check_database_health(session)
    queue = await _check_queue_health(redis)

    health = HealthResponse(
        ok=database.connected and queue.connected,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        database=database,
        queue=queue,
    )
    return create_success_response(data=health.model_dump())


async def _check_database_health(session: AsyncSession) -> DependencyHealth:
    started = time.perf_counter()
    try:
        await session.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return DependencyHealth(connected=False, error=str(e))

    return DependencyHealth(
        connected=True, response_time_ms=round((time.perf_counter() - started) * 1000, 2)
    )


async def _check_queue_health(redis: aioredis.Redis) -> DependencyHealth:
    started = time.perf_counter()
    try:
        await redis.ping()
    except (RedisError, OSError) as e:
        return DependencyHealth(connected=False, error=str(e))

    return DependencyHealth(
        connected=True, response_time_ms=round((time.perf_counter() - started) * 1000, 2)
    )
