import logging
from datetime import date
from typing import Any

from pydantic import BaseModel, ValidationError

from dashboard_jobs.core.exceptions import MalformedEnvelopeError
from dashboard_jobs.jobs.queue_store import QueueStore
from dashboard_jobs.jobs.schemas import (
    E2EReportPayload,
    Envelope,
    JobType,
    NotificationPayload,
    PullRequestSyncPayload,
)

logger = logging.getLogger(__name__)

PAYLOAD_MODELS: dict[JobType, type[BaseModel]] = {
    JobType.E2E_REPORT: E2EReportPayload,
    JobType.NOTIFICATION: NotificationPayload,
    JobType.PULL_REQUEST_SYNC: PullRequestSyncPayload,
}


class JobProducer:
    """
    Enqueue side of the job queue.

    Payloads are validated before they are pushed so that producers get an
    immediate error instead of a message the processor would drop.
    """

    def __init__(self, queue_store: QueueStore):
        self.queue_store = queue_store

    async def enqueue(self, job_type: JobType, payload: dict[str, Any] | BaseModel) -> Envelope:
        job_type = JobType(job_type)
        model = PAYLOAD_MODELS[job_type]

        if isinstance(payload, BaseModel):
            payload = payload.model_dump(mode="json", by_alias=True)

        try:
            validated = model.model_validate(payload)
        except ValidationError as e:
            raise MalformedEnvelopeError(
                f"Invalid payload for job type {job_type.value}",
                details={"errors": e.errors(include_url=False, include_context=False)},
            ) from e

        envelope = Envelope(
            job_type=job_type,
            payload=validated.model_dump(mode="json", by_alias=True, exclude_none=True),
        )
        await self.queue_store.enqueue_ready(envelope)

        logger.info(
            "Job enqueued",
            extra={"envelope_id": envelope.id, "job_type": job_type.value},
        )
        return envelope

    async def enqueue_e2e_report(
        self,
        report_date: date,
        request_id: str | None = None,
        force_recompute: bool = False,
    ) -> Envelope:
        return await self.enqueue(
            JobType.E2E_REPORT,
            E2EReportPayload(
                report_date=report_date,
                request_id=request_id,
                force_recompute=force_recompute,
            ),
        )
