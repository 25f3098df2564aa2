from datetime import UTC, date, datetime

import pytest

from dashboard_jobs.jobs.dead_letters import RECONCILE_PAGE_SIZE, DeadLetterService
from dashboard_jobs.jobs.schemas import DeadLetterEntry, Envelope, JobType
from dashboard_jobs.reports.service import SqlReportStore


async def dead_letter(queue_store, job_type: JobType, payload: dict) -> DeadLetterEntry:
    entry = DeadLetterEntry(
        envelope=Envelope(job_type=job_type, payload=payload, retry_count=3),
        last_error="CI dashboard returned 503",
        moved_at=datetime.now(UTC).isoformat(),
    )
    await queue_store.enqueue_dead_letter(entry)
    return entry


@pytest.fixture
def reports(session_factory) -> SqlReportStore:
    return SqlReportStore(session_factory)


async def test_list_pages_through_dead_letters(queue_store):
    entries = [
        await dead_letter(queue_store, JobType.NOTIFICATION, {"title": f"n{i}", "message": "m"})
        for i in range(5)
    ]
    service = DeadLetterService(queue_store)

    page = await service.list(JobType.NOTIFICATION, start=2, count=2)

    assert [e.envelope.id for e in page] == [e.envelope.id for e in entries[2:4]]
    assert await service.list(JobType.E2E_REPORT) == []


async def test_reconcile_marks_pending_summaries_failed(queue_store, reports):
    await reports.create_summary(date(2024, 1, 15))
    ready = await reports.create_summary(date(2024, 1, 16))
    await reports.update_summary(ready.id, status="ready")

    await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-01-15"})
    await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-01-15"})
    await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-01-16"})
    await dead_letter(queue_store, JobType.E2E_REPORT, {"requestId": "no-date"})

    result = await DeadLetterService(queue_store, reports).reconcile_e2e_reports()

    assert result.scanned == 4
    assert result.marked_failed == [date(2024, 1, 15)]
    assert result.already_settled == [date(2024, 1, 16)]
    assert (await reports.get_summary_by_date(date(2024, 1, 15))).status == "failed"
    assert (await reports.get_summary_by_date(date(2024, 1, 16))).status == "ready"


async def test_reconcile_reads_every_page(queue_store, reports):
    await reports.create_summary(date(2024, 2, 1))
    for _ in range(RECONCILE_PAGE_SIZE):
        await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-01-01"})
    await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-02-01"})

    result = await DeadLetterService(queue_store, reports).reconcile_e2e_reports()

    assert result.scanned == RECONCILE_PAGE_SIZE + 1
    assert result.marked_failed == [date(2024, 2, 1)]


async def test_reconcile_leaves_dead_letters_in_place(queue_store, reports):
    await dead_letter(queue_store, JobType.E2E_REPORT, {"date": "2024-01-15"})

    await DeadLetterService(queue_store, reports).reconcile_e2e_reports()

    assert len(queue_store.dead[JobType.E2E_REPORT]) == 1
    assert queue_store.ready[JobType.E2E_REPORT] == []


async def test_reconcile_requires_report_store(queue_store):
    with pytest.raises(RuntimeError):
        await DeadLetterService(queue_store).reconcile_e2e_reports()
