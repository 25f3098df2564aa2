"""
Redis-backed queue store.

Per job type the store keeps three keys:

- ``{prefix}:{job_type}:ready``   list, FIFO of envelopes waiting for a worker
- ``{prefix}:{job_type}:delayed`` sorted set of retry entries scored by due time (ms)
- ``{prefix}:{job_type}:dead``    list of dead-letter entries, never consumed automatically

Every operation maps to native Redis commands on one shared client. Popping
due retries runs as a single Lua script so that concurrent retry schedulers
can never both claim the same entry.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import redis.asyncio as aioredis
from pydantic import ValidationError
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from dashboard_jobs.core.exceptions import QueueUnavailable
from dashboard_jobs.jobs.schemas import (
    DeadLetterEntry,
    DelayedEntry,
    Envelope,
    JobType,
    QueueDepths,
)

logger = logging.getLogger(__name__)

# Range-fetch and remove in one server-side step; returns the removed members.
POP_DUE_SCRIPT = """
local due = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, ARGV[2])
if #due > 0 then
    redis.call('ZREM', KEYS[1], unpack(due))
end
return due
"""


@dataclass(frozen=True)
class QueueKeys:
    ready: str
    delayed: str
    dead: str


def queue_keys(prefix: str, job_type: JobType) -> QueueKeys:
    base = f"{prefix}:{JobType(job_type).value}"
    return QueueKeys(ready=f"{base}:ready", delayed=f"{base}:delayed", dead=f"{base}:dead")


class QueueStore(Protocol):
    """Queue primitives the job processor and retry scheduler rely on."""

    async def enqueue_ready(self, envelope: Envelope) -> None: ...

    async def dequeue_ready(self, job_type: JobType, timeout_s: float) -> str | None: ...

    async def schedule_delayed(self, entry: DelayedEntry) -> None: ...

    async def pop_due_delayed(
        self, job_type: JobType, now_ms: int, limit: int
    ) -> list[DelayedEntry]: ...

    async def enqueue_dead_letter(self, entry: DeadLetterEntry) -> None: ...

    async def list_dead_letters(
        self, job_type: JobType, start: int = 0, count: int = 50
    ) -> list[DeadLetterEntry]: ...

    async def queue_depths(self, job_type: JobType) -> QueueDepths: ...


@asynccontextmanager
async def _translate_errors(operation: str, key: str) -> AsyncIterator[None]:
    """Surface connectivity failures as QueueUnavailable."""
    try:
        yield
    except (RedisConnectionError, RedisTimeoutError, OSError) as e:
        raise QueueUnavailable(
            f"Queue store unavailable during {operation}",
            details={"key": key, "error": str(e)},
        ) from e


class RedisQueueStore:
    """QueueStore implementation over a ``redis.asyncio`` client."""

    def __init__(self, redis: aioredis.Redis, key_prefix: str = "jobs"):
        self.redis = redis
        self.key_prefix = key_prefix
        self._pop_due = redis.register_script(POP_DUE_SCRIPT)

    def keys(self, job_type: JobType) -> QueueKeys:
        return queue_keys(self.key_prefix, job_type)

    async def ping(self) -> bool:
        async with _translate_errors("ping", self.key_prefix):
            return bool(await self.redis.ping())

    async def enqueue_ready(self, envelope: Envelope) -> None:
        """Append an envelope to the tail of its ready list."""
        key = self.keys(envelope.job_type).ready
        async with _translate_errors("enqueue_ready", key):
            await self.redis.rpush(key, envelope.to_json())

    async def dequeue_ready(self, job_type: JobType, timeout_s: float) -> str | None:
        """
        Pop the head of the ready list, blocking up to ``timeout_s``.

        Returns the raw message so the caller can tell a malformed message
        apart from an empty queue. ``None`` means the timeout elapsed.
        """
        key = self.keys(job_type).ready
        async with _translate_errors("dequeue_ready", key):
            result = await self.redis.blpop([key], timeout=timeout_s)

        if result is None:
            return None
        _, message = result
        return message

    async def schedule_delayed(self, entry: DelayedEntry) -> None:
        key = self.keys(entry.envelope.job_type).delayed
        async with _translate_errors("schedule_delayed", key):
            await self.redis.zadd(key, {entry.to_json(): entry.due_at_epoch_millis})

    async def pop_due_delayed(
        self, job_type: JobType, now_ms: int, limit: int
    ) -> list[DelayedEntry]:
        """
        Atomically remove and return up to ``limit`` entries due at ``now_ms``.

        Members that no longer decode are dropped from the set and logged so
        they cannot block the head of the schedule.
        """
        key = self.keys(job_type).delayed
        async with _translate_errors("pop_due_delayed", key):
            members = await self._pop_due(keys=[key], args=[now_ms, limit])

        entries: list[DelayedEntry] = []
        for member in members or []:
            try:
                entries.append(DelayedEntry.model_validate_json(member))
            except ValidationError as e:
                logger.error(
                    "Discarding undecodable delayed entry",
                    extra={"key": key, "member": member, "error": str(e)},
                )
        return entries

    async def enqueue_dead_letter(self, entry: DeadLetterEntry) -> None:
        key = self.keys(entry.envelope.job_type).dead
        async with _translate_errors("enqueue_dead_letter", key):
            await self.redis.rpush(key, entry.to_json())

    async def list_dead_letters(
        self, job_type: JobType, start: int = 0, count: int = 50
    ) -> list[DeadLetterEntry]:
        """Read-only page of the dead-letter list, oldest first."""
        key = self.keys(job_type).dead
        async with _translate_errors("list_dead_letters", key):
            raw_entries = await self.redis.lrange(key, start, start + count - 1)

        entries = []
        for raw in raw_entries:
            try:
                entries.append(DeadLetterEntry.model_validate_json(raw))
            except ValidationError:
                logger.warning("Skipping undecodable dead-letter entry", extra={"key": key})
        return entries

    async def queue_depths(self, job_type: JobType) -> QueueDepths:
        keys = self.keys(job_type)
        async with _translate_errors("queue_depths", keys.ready):
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.llen(keys.ready)
                pipe.zcard(keys.delayed)
                pipe.llen(keys.dead)
                ready, delayed, dead = await pipe.execute()

        return QueueDepths(job_type=job_type, ready=ready, delayed=delayed, dead=dead)
