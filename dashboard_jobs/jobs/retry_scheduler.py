"""
Retry scheduler: moves due entries from the delayed set back to the ready queue.
"""

import asyncio
import time
from collections.abc import Callable

from dashboard_jobs.config.logging import get_logger
from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import QueueUnavailable
from dashboard_jobs.jobs.queue_store import QueueStore
from dashboard_jobs.jobs.schemas import DelayedEntry, JobType

logger = get_logger(__name__)


class RetryScheduler:
    """
    Periodically re-injects due retries for one job type.

    Safe to run as several instances: entries are claimed by the store's
    atomic pop, so each due entry is re-queued by exactly one scheduler.
    """

    def __init__(
        self,
        job_type: JobType,
        queue_store: QueueStore,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.job_type = JobType(job_type)
        self.queue_store = queue_store
        self.settings = settings
        self.clock = clock
        self.running = False
        self._stop_event = asyncio.Event()
        self.log = logger.bind(job_type=self.job_type.value, component="retry_scheduler")

    async def run(self) -> None:
        """Tick every ``retry_poll_interval_ms`` until stopped."""
        if self.running:
            raise RuntimeError("Retry scheduler is already running")

        if self._stop_event.is_set():
            self.log.info("Retry scheduler stopped before it started")
            return

        self.running = True
        interval_s = self.settings.retry_poll_interval_ms / 1000
        backoff_s = self.settings.store_backoff_base_ms / 1000
        self.log.info("Starting retry scheduler", interval_s=interval_s)

        try:
            while not self._stop_event.is_set():
                try:
                    await self.tick()
                    backoff_s = self.settings.store_backoff_base_ms / 1000
                    await self._sleep(interval_s)
                except asyncio.CancelledError:
                    raise
                except QueueUnavailable as e:
                    self.log.warning(
                        "Queue store unavailable, backing off",
                        error=str(e.details.get("error", e.message)),
                        retry_in_s=backoff_s,
                    )
                    await self._sleep(backoff_s)
                    backoff_s = min(backoff_s * 2, self.settings.store_backoff_max_s)
                except Exception:
                    self.log.exception("Error in retry scheduler loop")
                    await self._sleep(interval_s)
        finally:
            self.running = False
            self.log.info("Retry scheduler stopped")

    def stop(self) -> None:
        self._stop_event.set()

    async def tick(self) -> int:
        """Move every currently due entry (up to the batch limit) to the ready queue.

        Returns the number of envelopes re-queued.
        """
        now_ms = int(self.clock() * 1000)
        entries = await self.queue_store.pop_due_delayed(
            self.job_type, now_ms, self.settings.retry_batch_limit
        )

        requeued = 0
        for entry in entries:
            await self._requeue(entry)
            requeued += 1

        if requeued:
            self.log.info("Moved due retries to ready queue", count=requeued)
        return requeued

    async def _requeue(self, entry: DelayedEntry) -> None:
        # The entry is already out of the delayed set; keep trying until the
        # envelope is back on the ready queue.
        delay = self.settings.store_backoff_base_ms / 1000
        while True:
            try:
                await self.queue_store.enqueue_ready(entry.envelope)
                break
            except QueueUnavailable as e:
                self.log.warning(
                    "Could not re-queue retry, backing off",
                    envelope_id=entry.envelope.id,
                    error=str(e.details.get("error", e.message)),
                    retry_in_s=delay,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self.settings.store_backoff_max_s)

        self.log.debug(
            "Retry re-queued",
            envelope_id=entry.envelope.id,
            retry_count=entry.envelope.retry_count,
            last_error=entry.last_error,
        )

    async def _sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass
