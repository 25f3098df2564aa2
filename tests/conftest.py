import asyncio
from collections import defaultdict
from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import insert

from dashboard_jobs.apps import models as app_models
from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import QueueUnavailable
from dashboard_jobs.infra.database import Database
from dashboard_jobs.jobs.queue_store import QueueKeys, queue_keys
from dashboard_jobs.jobs.schemas import (
    DeadLetterEntry,
    DelayedEntry,
    Envelope,
    JobType,
    QueueDepths,
)

# Import models to ensure they're registered
from dashboard_jobs.notifications import models as notification_models  # noqa: F401
from dashboard_jobs.pull_requests import models as pull_request_models  # noqa: F401
from dashboard_jobs.reports import models as report_models  # noqa: F401


class InMemoryQueueStore:
    """QueueStore double with the same ordering and pop semantics as Redis.

    ``pop_due_delayed`` never awaits between reading and removing, so it is
    atomic with respect to other coroutines on the loop.
    """

    def __init__(self, key_prefix: str = "jobs"):
        self.key_prefix = key_prefix
        self.ready: dict[JobType, list[str]] = defaultdict(list)
        self.delayed: dict[JobType, list[tuple[int, str]]] = defaultdict(list)
        self.dead: dict[JobType, list[str]] = defaultdict(list)
        self.failures_remaining = 0

    def keys(self, job_type: JobType) -> QueueKeys:
        return queue_keys(self.key_prefix, job_type)

    def fail_next(self, times: int = 1) -> None:
        self.failures_remaining = times

    def _maybe_fail(self, operation: str) -> None:
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise QueueUnavailable(
                f"Queue store unavailable during {operation}",
                details={"error": "connection refused"},
            )

    async def enqueue_ready(self, envelope: Envelope) -> None:
        self._maybe_fail("enqueue_ready")
        self.ready[envelope.job_type].append(envelope.to_json())

    def push_raw(self, job_type: JobType, raw: str) -> None:
        self.ready[job_type].append(raw)

    async def dequeue_ready(self, job_type: JobType, timeout_s: float) -> str | None:
        self._maybe_fail("dequeue_ready")
        if self.ready[job_type]:
            return self.ready[job_type].pop(0)
        await asyncio.sleep(min(timeout_s, 0.01))
        return None

    async def schedule_delayed(self, entry: DelayedEntry) -> None:
        self._maybe_fail("schedule_delayed")
        self.delayed[entry.envelope.job_type].append(
            (entry.due_at_epoch_millis, entry.to_json())
        )
        self.delayed[entry.envelope.job_type].sort(key=lambda item: item[0])

    async def pop_due_delayed(
        self, job_type: JobType, now_ms: int, limit: int
    ) -> list[DelayedEntry]:
        self._maybe_fail("pop_due_delayed")
        due = [item for item in self.delayed[job_type] if item[0] <= now_ms][:limit]
        for item in due:
            self.delayed[job_type].remove(item)
        return [DelayedEntry.model_validate_json(member) for _, member in due]

    async def enqueue_dead_letter(self, entry: DeadLetterEntry) -> None:
        self._maybe_fail("enqueue_dead_letter")
        self.dead[entry.envelope.job_type].append(entry.to_json())

    async def list_dead_letters(
        self, job_type: JobType, start: int = 0, count: int = 50
    ) -> list[DeadLetterEntry]:
        return [
            DeadLetterEntry.model_validate_json(raw)
            for raw in self.dead[job_type][start : start + count]
        ]

    async def queue_depths(self, job_type: JobType) -> QueueDepths:
        return QueueDepths(
            job_type=job_type,
            ready=len(self.ready[job_type]),
            delayed=len(self.delayed[job_type]),
            dead=len(self.dead[job_type]),
        )

    def delayed_entries(self, job_type: JobType) -> list[DelayedEntry]:
        return [DelayedEntry.model_validate_json(m) for _, m in self.delayed[job_type]]

    def dead_entries(self, job_type: JobType) -> list[DeadLetterEntry]:
        return [DeadLetterEntry.model_validate_json(raw) for raw in self.dead[job_type]]


class FakeClock:
    """Controllable replacement for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with a file-backed SQLite database and fast store backoff."""
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}",
        cypress_api_key="test-key",
        dequeue_timeout_s=1,
        handler_timeout_s=2.0,
        retry_poll_interval_ms=10,
        store_backoff_base_ms=1,
        store_backoff_max_s=0.01,
    )


@pytest.fixture
def queue_store() -> InMemoryQueueStore:
    return InMemoryQueueStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
async def database(settings: Settings) -> AsyncGenerator[Database, None]:
    """Create a fresh schema per test."""
    db = Database(settings)
    await db.create_all()
    yield db
    await db.close()


@pytest.fixture
def session_factory(database: Database):
    return database.SessionLocal


@pytest.fixture
def add_applications(database: Database):
    """Insert ``(id, code, name, watching)`` application rows."""

    async def _add(*apps: tuple[int, str, str, bool]) -> None:
        async with database.SessionLocal() as session:
            await session.execute(
                insert(app_models.Application),
                [
                    {"id": app_id, "code": code, "name": name, "watching": watching}
                    for app_id, code, name, watching in apps
                ],
            )
            await session.commit()

    return _add
