"""
Producer and inspection endpoints for the job queue.

Enqueue is the only write; dead-letter lists are read-only.
"""

import logging
from typing import Any

import redis.asyncio as aioredis
from fastapi import APIRouter, Body, Depends, Query

from dashboard_jobs.config.settings import Settings, SettingsDep
from dashboard_jobs.core.exceptions import create_success_response
from dashboard_jobs.infra.redis import get_redis
from dashboard_jobs.jobs.dead_letters import DeadLetterService
from dashboard_jobs.jobs.producer import JobProducer
from dashboard_jobs.jobs.queue_store import RedisQueueStore
from dashboard_jobs.jobs.schemas import DeadLetterListResponse, JobEnqueueResponse, JobType

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_queue_store(
    redis: aioredis.Redis = Depends(get_redis), settings: Settings = SettingsDep
) -> RedisQueueStore:
    return RedisQueueStore(redis, key_prefix=settings.queue_key_prefix)


@router.post("/{job_type}", response_model=dict, status_code=202)
async def enqueue_job(
    job_type: JobType,
    payload: dict[str, Any] = Body(...),
    queue_store: RedisQueueStore = Depends(get_queue_store),
) -> dict[str, Any]:
    """Validate a payload and push it onto the job type's ready queue."""

    envelope = await JobProducer(queue_store).enqueue(job_type, payload)

    logger.info(
        "Job enqueued via API",
        extra={"envelope_id": envelope.id, "job_type": job_type.value},
    )
    response = JobEnqueueResponse(
        envelope_id=envelope.id,
        job_type=job_type,
        queue=queue_store.keys(job_type).ready,
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{job_type}/dead-letters", response_model=dict)
async def list_dead_letters(
    job_type: JobType,
    start: int = Query(default=0, ge=0, description="Offset into the dead-letter list"),
    count: int = Query(default=50, ge=1, le=500, description="Maximum entries"),
    queue_store: RedisQueueStore = Depends(get_queue_store),
) -> dict[str, Any]:
    """List dead-lettered envelopes, oldest first."""

    entries = await DeadLetterService(queue_store).list(job_type, start, count)
    depths = await queue_store.queue_depths(job_type)

    response = DeadLetterListResponse(
        job_type=job_type,
        total=depths.dead,
        start=start,
        entries=[entry.model_dump(mode="json", by_alias=True) for entry in entries],
    )
    return create_success_response(data=response.model_dump(mode="json"))


@router.get("/{job_type}/depths", response_model=dict)
async def get_queue_depths(
    job_type: JobType,
    queue_store: RedisQueueStore = Depends(get_queue_store),
) -> dict[str, Any]:
    depths = await queue_store.queue_depths(job_type)
    return create_success_response(data=depths.model_dump(mode="json"))
