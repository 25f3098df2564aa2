"""
Generic job processor: one sequential dequeue -> handle loop per instance.
"""

import asyncio
import os
import socket
import time
import traceback
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TypeVar

from pydantic import ValidationError

from dashboard_jobs.config.logging import bind_job_context, clear_job_context, get_logger
from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import (
    ConfigurationError,
    MalformedEnvelopeError,
    QueueUnavailable,
)
from dashboard_jobs.core.registries import JobHandler
from dashboard_jobs.jobs.queue_store import QueueStore
from dashboard_jobs.jobs.schemas import DeadLetterEntry, DelayedEntry, Envelope, JobType

logger = get_logger(__name__)

T = TypeVar("T")


class ProcessingOutcome(str, Enum):
    """Terminal state of one dequeued message."""

    SUCCEEDED = "succeeded"
    RETRY_SCHEDULED = "retry_scheduled"
    DEAD_LETTERED = "dead_lettered"
    DROPPED = "dropped"


def compute_backoff_ms(retry_count: int, base_delay_ms: int) -> int:
    """Delay before the next attempt: base * 2^retry_count (5s, 10s, 20s...)."""
    return base_delay_ms * (2**retry_count)


def describe_error(error: BaseException, handler_timeout_s: float | None = None) -> str:
    if isinstance(error, TimeoutError) and not str(error):
        return f"Handler timed out after {handler_timeout_s}s"
    return str(error) or error.__class__.__name__


class JobProcessor:
    """
    Consumes one job type's ready queue and runs its handler.

    Per message: Received -> Handling -> Succeeded | RetryScheduled | DeadLettered.
    Messages that cannot be decoded are dropped: they can never succeed, so
    they are neither retried nor dead-lettered.

    Several processors may consume the same ready queue; the store's pop is
    the only coordination between them.
    """

    def __init__(
        self,
        job_type: JobType,
        handler: JobHandler,
        queue_store: QueueStore,
        settings: Settings,
        worker_index: int = 0,
        clock: Callable[[], float] = time.time,
    ):
        self.job_type = JobType(job_type)
        self.handler = handler
        self.queue_store = queue_store
        self.settings = settings
        self.clock = clock
        self.worker_id = (
            f"{socket.gethostname()}-{os.getpid()}-{self.job_type.value}-{worker_index}"
        )
        self.running = False
        self.in_flight: Envelope | None = None
        self._stop_event = asyncio.Event()
        self.log = logger.bind(job_type=self.job_type.value, worker_id=self.worker_id)

    @property
    def max_retries(self) -> int:
        return self.settings.job_max_retries

    async def run(self) -> None:
        """Run the dequeue loop until ``stop()`` is called."""
        if self.running:
            raise RuntimeError("Processor is already running")

        if self._stop_event.is_set():
            self.log.info("Job processor stopped before it started")
            return

        self.running = True
        self.log.info(
            "Starting job processor",
            dequeue_timeout_s=self.settings.dequeue_timeout_s,
            max_retries=self.max_retries,
        )

        try:
            while not self._stop_event.is_set():
                try:
                    await self.process_next()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    # Process-level fault, not a job failure
                    self.log.exception("Error in processor loop")
                    await self._sleep(self.settings.store_backoff_base_ms / 1000)
        finally:
            self.running = False
            self.log.info("Job processor stopped")

    def stop(self) -> None:
        """Stop accepting new messages; an in-flight handler runs to completion.

        Takes effect even when called before ``run()`` has started.
        """
        self._stop_event.set()

    async def process_next(self) -> ProcessingOutcome | None:
        """Dequeue and process one message. Returns None when nothing was dequeued."""
        raw = await self._dequeue()
        if raw is None:
            return None
        return await self.process_message(raw)

    async def process_message(self, raw: str) -> ProcessingOutcome:
        try:
            envelope, payload = self._decode(raw)
        except MalformedEnvelopeError as e:
            self.log.error(
                "Dropping malformed message",
                error=e.message,
                details=e.details,
            )
            return ProcessingOutcome.DROPPED

        self.in_flight = envelope
        bind_job_context(
            job_type=self.job_type.value,
            envelope_id=envelope.id,
            retry_count=envelope.retry_count,
            request_id=envelope.payload.get("requestId"),
        )
        try:
            return await self._handle(envelope, payload)
        finally:
            self.in_flight = None
            clear_job_context()

    def _decode(self, raw: str) -> tuple[Envelope, Any]:
        try:
            envelope = Envelope.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedEnvelopeError(
                "Message is not a valid envelope",
                details={"raw": raw[:500], "errors": e.errors(include_url=False)},
            ) from e

        if envelope.job_type != self.job_type:
            raise MalformedEnvelopeError(
                "Envelope job type does not match queue",
                details={"expected": self.job_type.value, "actual": envelope.job_type.value},
            )

        try:
            payload = self.handler.payload_model.model_validate(envelope.payload)
        except ValidationError as e:
            raise MalformedEnvelopeError(
                "Payload failed validation",
                details={"envelope_id": envelope.id, "errors": e.errors(include_url=False)},
            ) from e

        return envelope, payload

    async def _handle(self, envelope: Envelope, payload: Any) -> ProcessingOutcome:
        started = time.perf_counter()
        self.log.info("Processing job started")

        try:
            await asyncio.wait_for(
                self.handler.handle(payload), timeout=self.settings.handler_timeout_s
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return await self._handle_failure(envelope, e)

        self.log.info(
            "Processing job completed",
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        return ProcessingOutcome.SUCCEEDED

    async def _handle_failure(self, envelope: Envelope, error: Exception) -> ProcessingOutcome:
        last_error = describe_error(error, self.settings.handler_timeout_s)
        log_failure = (
            self.log.critical if isinstance(error, ConfigurationError) else self.log.error
        )
        log_failure(
            "Job processing failed",
            error=last_error,
            error_type=error.__class__.__name__,
            exc_info=error,
        )

        if envelope.retry_count < self.max_retries:
            delay_ms = compute_backoff_ms(
                envelope.retry_count, self.settings.job_backoff_base_ms
            )
            entry = DelayedEntry(
                envelope=envelope.next_attempt(),
                due_at_epoch_millis=self._now_ms() + delay_ms,
                last_error=last_error,
            )
            await self._call_store(
                "schedule_delayed", lambda: self.queue_store.schedule_delayed(entry)
            )
            self.log.info(
                "Job scheduled for retry",
                retry=entry.envelope.retry_count,
                max_retries=self.max_retries,
                delay_ms=delay_ms,
            )
            return ProcessingOutcome.RETRY_SCHEDULED

        dead_letter = DeadLetterEntry(
            envelope=envelope,
            last_error=last_error,
            error_stack="".join(traceback.format_exception(error)),
            moved_at=datetime.now(UTC).isoformat(),
        )
        await self._call_store(
            "enqueue_dead_letter", lambda: self.queue_store.enqueue_dead_letter(dead_letter)
        )
        self.log.error(
            "Job moved to dead-letter queue",
            retry_count=envelope.retry_count,
            last_error=last_error,
        )
        return ProcessingOutcome.DEAD_LETTERED

    async def _dequeue(self) -> str | None:
        return await self._call_store(
            "dequeue_ready",
            lambda: self.queue_store.dequeue_ready(
                self.job_type, self.settings.dequeue_timeout_s
            ),
            abandon_on_stop=True,
        )

    async def _call_store(
        self,
        operation: str,
        call: Callable[[], Awaitable[T]],
        abandon_on_stop: bool = False,
    ) -> T | None:
        """
        Run a queue store call, backing off while the store is unavailable.

        Writes for an already-popped envelope are retried until they succeed
        so the envelope is never lost; reads give up once the processor stops.
        """
        delay = self.settings.store_backoff_base_ms / 1000
        while True:
            if abandon_on_stop and self._stop_event.is_set():
                return None
            try:
                return await call()
            except QueueUnavailable as e:
                self.log.warning(
                    "Queue store unavailable, backing off",
                    operation=operation,
                    error=str(e.details.get("error", e.message)),
                    retry_in_s=delay,
                )
                if abandon_on_stop:
                    await self._sleep(delay)
                else:
                    await asyncio.sleep(delay)
                delay = min(delay * 2, self.settings.store_backoff_max_s)

    async def _sleep(self, seconds: float) -> None:
        """Sleep that returns early when the processor is stopped."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)
