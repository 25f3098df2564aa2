import logging

import redis.asyncio as aioredis
from fastapi import Depends
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from dashboard_jobs.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def create_redis_client(settings: Settings) -> aioredis.Redis:
    """Create the Redis client shared by every processor and retry scheduler.

    The socket timeout must outlive the BLPOP timeout, otherwise an idle
    blocking pop is reported as a connection failure.
    """
    return aioredis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.dequeue_timeout_s + 5,
        socket_connect_timeout=5,
        health_check_interval=30,
        retry=Retry(ExponentialBackoff(cap=2, base=0.05), retries=3),
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )


async def check_redis_connection(client: aioredis.Redis) -> bool:
    """Ping Redis, logging rather than raising on failure."""
    try:
        await client.ping()
        logger.info("Redis connection test successful")
        return True
    except (RedisConnectionError, RedisTimeoutError, OSError) as e:
        logger.error("Redis connection test failed", extra={"error": str(e)})
        return False


async def close_redis_client(client: aioredis.Redis) -> None:
    await client.aclose()
    logger.info("Redis client disconnected")


# Redis client used by the HTTP surface
_redis_client: aioredis.Redis | None = None


def get_redis(settings: Settings = Depends(get_settings)) -> aioredis.Redis:
    """Get or create the API process Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = create_redis_client(settings)
    return _redis_client


async def close_api_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await close_redis_client(_redis_client)
        _redis_client = None
