"""
Dead-letter inspection and report reconciliation.

Dead-letter lists are only ever read here; nothing is re-enqueued.
"""

import logging
from dataclasses import dataclass, field
from datetime import date

from pydantic import ValidationError

from dashboard_jobs.jobs.queue_store import QueueStore
from dashboard_jobs.jobs.schemas import DeadLetterEntry, E2EReportPayload, JobType
from dashboard_jobs.reports.service import ReportStore

logger = logging.getLogger(__name__)

RECONCILE_PAGE_SIZE = 100


@dataclass
class ReconciliationResult:
    scanned: int = 0
    marked_failed: list[date] = field(default_factory=list)
    already_settled: list[date] = field(default_factory=list)


class DeadLetterService:
    def __init__(self, queue_store: QueueStore, reports: ReportStore | None = None):
        self.queue_store = queue_store
        self.reports = reports

    async def list(
        self, job_type: JobType, start: int = 0, count: int = 50
    ) -> list[DeadLetterEntry]:
        return await self.queue_store.list_dead_letters(JobType(job_type), start, count)

    async def reconcile_e2e_reports(self) -> ReconciliationResult:
        """
        Mark summaries ``failed`` when their report job was dead-lettered.

        Only ``pending`` summaries change; a summary that has since been
        completed by a later job stays ``ready``.
        """
        if self.reports is None:
            raise RuntimeError("Reconciliation requires a report store")

        result = ReconciliationResult()
        dates: set[date] = set()
        start = 0

        while True:
            page = await self.list(JobType.E2E_REPORT, start, RECONCILE_PAGE_SIZE)
            for entry in page:
                result.scanned += 1
                try:
                    payload = E2EReportPayload.model_validate(entry.envelope.payload)
                except ValidationError:
                    logger.warning(
                        "Dead-lettered report job has no usable date",
                        extra={"envelope_id": entry.envelope.id},
                    )
                    continue
                dates.add(payload.report_date)

            if not page:
                break
            start += RECONCILE_PAGE_SIZE

        for report_date in sorted(dates):
            if await self.reports.mark_failed_if_pending(report_date):
                result.marked_failed.append(report_date)
            else:
                result.already_settled.append(report_date)

        logger.info(
            "Dead-letter reconciliation finished",
            extra={
                "scanned": result.scanned,
                "marked_failed": len(result.marked_failed),
            },
        )
        return result
