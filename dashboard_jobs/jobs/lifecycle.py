"""
Worker process lifecycle: owns connections, processors and retry schedulers.
"""

import asyncio
import signal
from collections.abc import Iterable, Sequence
from typing import Any

import redis.asyncio as aioredis

from dashboard_jobs.config.logging import get_logger
from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import (
    DashboardJobsError,
    QueueUnavailable,
    UnknownJobTypeError,
)
from dashboard_jobs.core.registries import JobRegistry
from dashboard_jobs.infra.database import Database
from dashboard_jobs.infra.redis import (
    check_redis_connection,
    close_redis_client,
    create_redis_client,
)
from dashboard_jobs.integrations.cypress import CypressDashboardClient
from dashboard_jobs.integrations.github import GitHubClient
from dashboard_jobs.jobs.processor import JobProcessor
from dashboard_jobs.jobs.queue_store import QueueStore, RedisQueueStore
from dashboard_jobs.jobs.registry_init import build_job_registry
from dashboard_jobs.jobs.retry_scheduler import RetryScheduler
from dashboard_jobs.jobs.schemas import JobType

logger = get_logger(__name__)


class LifecycleManager:
    """
    Starts and stops every loop of a worker process.

    For each job type it runs ``workers_per_job_type`` competing processors
    and one retry scheduler, all as tasks on the current event loop and all
    sharing one queue store. Resources passed in as ``redis``, ``database``
    and ``http_clients`` are owned by the manager and closed on ``stop()``.
    """

    def __init__(
        self,
        settings: Settings,
        queue_store: QueueStore,
        registry: JobRegistry,
        job_types: Iterable[JobType] | None = None,
        redis: aioredis.Redis | None = None,
        database: Database | None = None,
        http_clients: Sequence[Any] = (),
    ):
        self.settings = settings
        self.queue_store = queue_store
        self.registry = registry
        self.job_types = [JobType(t) for t in (job_types or list(JobType))]
        self.redis = redis
        self.database = database
        self.http_clients = list(http_clients)

        self.processors: list[JobProcessor] = []
        self.schedulers: list[RetryScheduler] = []
        self._tasks: list[asyncio.Task] = []
        self._shutdown = asyncio.Event()
        self.started = False

    @classmethod
    def from_settings(
        cls, settings: Settings, job_types: Iterable[JobType] | None = None
    ) -> "LifecycleManager":
        """Build the production wiring: Redis, database and HTTP clients."""
        redis = create_redis_client(settings)
        database = Database(settings)
        ci_client = CypressDashboardClient.from_settings(settings)
        github = GitHubClient.from_settings(settings)

        registry = build_job_registry(settings, database.SessionLocal, ci_client, github)
        return cls(
            settings,
            RedisQueueStore(redis, key_prefix=settings.queue_key_prefix),
            registry,
            job_types=job_types,
            redis=redis,
            database=database,
            http_clients=[ci_client, github],
        )

    def build_loops(self) -> None:
        """Create processor and scheduler instances for every configured job type."""
        self.processors = []
        self.schedulers = []

        for job_type in self.job_types:
            try:
                handler = self.registry.get(job_type)
            except KeyError as e:
                raise UnknownJobTypeError(
                    f"No handler registered for job type {job_type.value}",
                    details={"job_type": job_type.value},
                ) from e

            for index in range(self.settings.workers_per_job_type):
                self.processors.append(
                    JobProcessor(
                        job_type,
                        handler,
                        self.queue_store,
                        self.settings,
                        worker_index=index,
                    )
                )
            self.schedulers.append(RetryScheduler(job_type, self.queue_store, self.settings))

    async def start(self) -> None:
        """Verify dependencies, then start every loop as a task."""
        if self.started:
            raise RuntimeError("Lifecycle manager is already started")

        if self.redis is not None and not await check_redis_connection(self.redis):
            raise QueueUnavailable(
                "Redis is not reachable", details={"redis_url": self.settings.redis_url}
            )
        if self.database is not None and not await self.database.check_connection():
            raise DashboardJobsError("Database is not reachable")

        self.build_loops()

        for processor in self.processors:
            self._tasks.append(
                asyncio.create_task(processor.run(), name=f"processor:{processor.worker_id}")
            )
        for scheduler in self.schedulers:
            self._tasks.append(
                asyncio.create_task(
                    scheduler.run(), name=f"retry-scheduler:{scheduler.job_type.value}"
                )
            )

        self.started = True
        logger.info(
            "Job workers started",
            job_types=[t.value for t in self.job_types],
            processors=len(self.processors),
            schedulers=len(self.schedulers),
        )

    async def stop(self) -> None:
        """
        Stop all loops and release resources.

        Processors finish the handler they are running before exiting; the
        longest wait is one handler timeout or one dequeue timeout.
        """
        logger.info("Stopping job workers", tasks=len(self._tasks))

        for processor in self.processors:
            processor.stop()
        for scheduler in self.schedulers:
            scheduler.stop()

        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for task, result in zip(self._tasks, results, strict=True):
            if isinstance(result, BaseException) and not isinstance(
                result, asyncio.CancelledError
            ):
                logger.error(
                    "Worker task exited with error",
                    task=task.get_name(),
                    error=str(result),
                )
        self._tasks = []

        for client in self.http_clients:
            await client.aclose()
        if self.redis is not None:
            await close_redis_client(self.redis)
        if self.database is not None:
            await self.database.close()

        self.started = False
        logger.info("Job workers stopped")

    def request_shutdown(self) -> None:
        self._shutdown.set()

    async def run_forever(self) -> None:
        """Run until SIGINT/SIGTERM (or ``request_shutdown()``), then stop cleanly."""
        loop = asyncio.get_running_loop()
        signals = (signal.SIGINT, signal.SIGTERM)
        for sig in signals:
            loop.add_signal_handler(sig, self.request_shutdown)

        try:
            await self.start()
            await self._shutdown.wait()
            logger.info("Shutdown requested")
        finally:
            for sig in signals:
                loop.remove_signal_handler(sig)
            await self.stop()
