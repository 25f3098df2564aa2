"""Connection helpers shared by CLI commands"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from dashboard_jobs.config.settings import Settings
from dashboard_jobs.infra.database import Database
from dashboard_jobs.infra.redis import close_redis_client, create_redis_client
from dashboard_jobs.jobs.queue_store import RedisQueueStore


@asynccontextmanager
async def queue_store_session(settings: Settings) -> AsyncIterator[RedisQueueStore]:
    """Open a Redis-backed queue store for the duration of one command"""
    client = create_redis_client(settings)
    try:
        yield RedisQueueStore(client, key_prefix=settings.queue_key_prefix)
    finally:
        await close_redis_client(client)


@asynccontextmanager
async def database_session(settings: Settings) -> AsyncIterator[Database]:
    database = Database(settings)
    try:
        yield database
    finally:
        await database.close()
