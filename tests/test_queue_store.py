import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from dashboard_jobs.core.exceptions import QueueUnavailable
from dashboard_jobs.jobs.queue_store import POP_DUE_SCRIPT, RedisQueueStore, queue_keys
from dashboard_jobs.jobs.schemas import DeadLetterEntry, DelayedEntry, Envelope, JobType


@pytest.fixture
def redis_client():
    client = MagicMock()
    client.pop_due_script = AsyncMock(return_value=[])
    client.register_script.return_value = client.pop_due_script
    client.rpush = AsyncMock(return_value=1)
    client.blpop = AsyncMock(return_value=None)
    client.zadd = AsyncMock(return_value=1)
    client.lrange = AsyncMock(return_value=[])
    client.ping = AsyncMock(return_value=True)
    return client


@pytest.fixture
def store(redis_client) -> RedisQueueStore:
    return RedisQueueStore(redis_client, key_prefix="jobs")


def make_envelope(**overrides) -> Envelope:
    data = {"job_type": JobType.E2E_REPORT, "payload": {"date": "2024-01-15"}}
    data.update(overrides)
    return Envelope(**data)


def test_queue_keys_per_job_type():
    keys = queue_keys("jobs", JobType.E2E_REPORT)

    assert keys.ready == "jobs:e2e_report:ready"
    assert keys.delayed == "jobs:e2e_report:delayed"
    assert keys.dead == "jobs:e2e_report:dead"


def test_registers_pop_script(redis_client, store):
    redis_client.register_script.assert_called_once_with(POP_DUE_SCRIPT)


async def test_enqueue_ready_pushes_camel_case_json(redis_client, store):
    envelope = make_envelope()

    await store.enqueue_ready(envelope)

    key, message = redis_client.rpush.await_args.args
    assert key == "jobs:e2e_report:ready"
    data = json.loads(message)
    assert data["id"] == envelope.id
    assert data["jobType"] == "e2e_report"
    assert data["retryCount"] == 0
    assert "enqueuedAt" in data


async def test_dequeue_returns_raw_message(redis_client, store):
    redis_client.blpop.return_value = ("jobs:e2e_report:ready", "raw-message")

    assert await store.dequeue_ready(JobType.E2E_REPORT, 5) == "raw-message"
    redis_client.blpop.assert_awaited_once_with(["jobs:e2e_report:ready"], timeout=5)


async def test_dequeue_timeout_returns_none(redis_client, store):
    assert await store.dequeue_ready(JobType.E2E_REPORT, 5) is None


async def test_schedule_delayed_scores_by_due_time(redis_client, store):
    entry = DelayedEntry(
        envelope=make_envelope(retry_count=1), due_at_epoch_millis=12345, last_error="boom"
    )

    await store.schedule_delayed(entry)

    key, mapping = redis_client.zadd.await_args.args
    assert key == "jobs:e2e_report:delayed"
    [(member, score)] = mapping.items()
    assert score == 12345
    assert json.loads(member)["dueAtEpochMillis"] == 12345


async def test_pop_due_delayed_runs_script_and_skips_garbage(redis_client, store):
    entry = DelayedEntry(
        envelope=make_envelope(retry_count=2), due_at_epoch_millis=100, last_error="boom"
    )
    redis_client.pop_due_script.return_value = [entry.to_json(), "{broken"]

    entries = await store.pop_due_delayed(JobType.E2E_REPORT, now_ms=500, limit=10)

    redis_client.pop_due_script.assert_awaited_once_with(
        keys=["jobs:e2e_report:delayed"], args=[500, 10]
    )
    assert [e.envelope.id for e in entries] == [entry.envelope.id]
    assert entries[0].envelope.retry_count == 2


async def test_dead_letter_list_is_read_only_page(redis_client, store):
    entry = DeadLetterEntry(
        envelope=make_envelope(retry_count=3),
        last_error="boom",
        moved_at="2024-01-15T00:00:00+00:00",
    )
    redis_client.lrange.return_value = [entry.to_json()]

    entries = await store.list_dead_letters(JobType.E2E_REPORT, start=10, count=5)

    redis_client.lrange.assert_awaited_once_with("jobs:e2e_report:dead", 10, 14)
    assert entries[0].last_error == "boom"
    redis_client.rpush.assert_not_called()


async def test_queue_depths_uses_pipeline(redis_client, store):
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[3, 2, 1])
    redis_client.pipeline.return_value.__aenter__ = AsyncMock(return_value=pipe)
    redis_client.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)

    depths = await store.queue_depths(JobType.NOTIFICATION)

    pipe.llen.assert_any_call("jobs:notification:ready")
    pipe.zcard.assert_called_once_with("jobs:notification:delayed")
    assert (depths.ready, depths.delayed, depths.dead) == (3, 2, 1)


@pytest.mark.parametrize(
    "error", [RedisConnectionError("refused"), RedisTimeoutError("timed out")]
)
async def test_connectivity_errors_become_queue_unavailable(redis_client, store, error):
    redis_client.blpop.side_effect = error

    with pytest.raises(QueueUnavailable) as exc_info:
        await store.dequeue_ready(JobType.E2E_REPORT, 5)

    assert exc_info.value.details["key"] == "jobs:e2e_report:ready"
    assert exc_info.value.status_code == 503


async def test_script_failure_becomes_queue_unavailable(redis_client, store):
    redis_client.pop_due_script.side_effect = RedisConnectionError("refused")

    with pytest.raises(QueueUnavailable):
        await store.pop_due_delayed(JobType.E2E_REPORT, now_ms=1, limit=10)
