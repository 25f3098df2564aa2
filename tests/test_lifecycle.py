import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from dashboard_jobs.core.exceptions import QueueUnavailable, UnknownJobTypeError
from dashboard_jobs.core.registries import JobRegistry
from dashboard_jobs.jobs.lifecycle import LifecycleManager
from dashboard_jobs.jobs.schemas import Envelope, JobType, NotificationPayload


class CollectingHandler:
    payload_model = NotificationPayload

    def __init__(self):
        self.titles: list[str] = []

    async def handle(self, payload: NotificationPayload) -> None:
        self.titles.append(payload.title)


@pytest.fixture
def handler() -> CollectingHandler:
    return CollectingHandler()


@pytest.fixture
def registry(handler) -> JobRegistry:
    registry = JobRegistry()
    registry.register(JobType.NOTIFICATION, handler)
    registry.freeze()
    return registry


async def wait_for(condition, timeout: float = 2.0) -> None:
    async def _poll():
        while not condition():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(_poll(), timeout=timeout)


async def test_start_runs_processors_and_schedulers(settings, queue_store, registry, handler):
    settings = settings.model_copy(update={"workers_per_job_type": 2})
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION]
    )
    await queue_store.enqueue_ready(
        Envelope(job_type=JobType.NOTIFICATION, payload={"title": "hello", "message": "m"})
    )

    await manager.start()
    try:
        assert manager.started is True
        assert len(manager.processors) == 2
        assert len(manager.schedulers) == 1
        assert sorted(p.worker_id[-len("notification-0"):] for p in manager.processors) == [
            "notification-0",
            "notification-1",
        ]
        await wait_for(lambda: handler.titles == ["hello"])
    finally:
        await manager.stop()

    assert manager.started is False
    assert all(not p.running for p in manager.processors)


async def test_start_twice_is_rejected(settings, queue_store, registry):
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION]
    )
    await manager.start()
    try:
        with pytest.raises(RuntimeError, match="already started"):
            await manager.start()
    finally:
        await manager.stop()


async def test_missing_handler_is_rejected(settings, queue_store, registry):
    manager = LifecycleManager(settings, queue_store, registry, job_types=[JobType.E2E_REPORT])

    with pytest.raises(UnknownJobTypeError) as exc_info:
        await manager.start()

    assert exc_info.value.details == {"job_type": "e2e_report"}
    assert manager.started is False


async def test_unreachable_redis_blocks_start(settings, queue_store, registry):
    redis = MagicMock()
    redis.ping = AsyncMock(side_effect=RedisConnectionError("connection refused"))
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION], redis=redis
    )

    with pytest.raises(QueueUnavailable):
        await manager.start()

    assert manager.processors == []


async def test_stop_closes_owned_resources(settings, queue_store, registry):
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.aclose = AsyncMock()
    http_client = MagicMock()
    http_client.aclose = AsyncMock()
    manager = LifecycleManager(
        settings,
        queue_store,
        registry,
        job_types=[JobType.NOTIFICATION],
        redis=redis,
        http_clients=[http_client],
    )

    await manager.start()
    await manager.stop()

    http_client.aclose.assert_awaited_once()
    redis.aclose.assert_awaited_once()


async def test_run_forever_exits_on_shutdown_request(settings, queue_store, registry):
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION]
    )
    task = asyncio.create_task(manager.run_forever())

    await wait_for(lambda: manager.started)
    manager.request_shutdown()
    await asyncio.wait_for(task, timeout=5)

    assert manager.started is False


async def test_stop_right_after_start_returns(settings, queue_store, registry):
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION]
    )

    await asyncio.wait_for(manager.start(), timeout=3)
    await asyncio.wait_for(manager.stop(), timeout=3)

    assert manager.started is False


async def test_shutdown_requested_during_start_is_honoured(settings, queue_store, registry):
    manager = LifecycleManager(
        settings, queue_store, registry, job_types=[JobType.NOTIFICATION]
    )
    manager.request_shutdown()

    await asyncio.wait_for(manager.run_forever(), timeout=5)

    assert manager.started is False
