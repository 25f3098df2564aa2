import json
from datetime import date

import pytest

from dashboard_jobs.core.exceptions import MalformedEnvelopeError
from dashboard_jobs.jobs.producer import JobProducer
from dashboard_jobs.jobs.schemas import JobType, NotificationPayload


@pytest.fixture
def producer(queue_store) -> JobProducer:
    return JobProducer(queue_store)


async def test_enqueue_pushes_camel_case_envelope(producer, queue_store):
    envelope = await producer.enqueue(
        JobType.PULL_REQUEST_SYNC,
        {"repository": "acme/dashboard", "pullRequestNumber": 42},
    )

    [raw] = queue_store.ready[JobType.PULL_REQUEST_SYNC]
    data = json.loads(raw)
    assert data["id"] == envelope.id
    assert data["jobType"] == "pull_request_sync"
    assert data["retryCount"] == 0
    assert data["payload"] == {
        "repository": "acme/dashboard",
        "pullRequestNumber": 42,
        "deleteIfMerged": True,
    }


async def test_enqueue_accepts_payload_models(producer, queue_store):
    await producer.enqueue(
        JobType.NOTIFICATION, NotificationPayload(title="Deploy", message="Deployed")
    )

    [raw] = queue_store.ready[JobType.NOTIFICATION]
    payload = json.loads(raw)["payload"]
    assert payload == {"title": "Deploy", "message": "Deployed", "type": "info"}


async def test_enqueue_e2e_report_uses_date_key(producer, queue_store):
    envelope = await producer.enqueue_e2e_report(
        date(2024, 1, 15), request_id="req-7", force_recompute=True
    )

    assert envelope.job_type == JobType.E2E_REPORT
    assert envelope.payload == {
        "date": "2024-01-15",
        "requestId": "req-7",
        "forceRecompute": True,
    }
    assert len(queue_store.ready[JobType.E2E_REPORT]) == 1


async def test_invalid_payload_is_rejected_before_enqueue(producer, queue_store):
    with pytest.raises(MalformedEnvelopeError) as exc_info:
        await producer.enqueue(JobType.NOTIFICATION, {"message": "no title"})

    assert exc_info.value.status_code == 422
    [error] = exc_info.value.details["errors"]
    assert error["loc"] == ("title",)
    assert queue_store.ready[JobType.NOTIFICATION] == []


async def test_unknown_job_type_is_rejected(producer):
    with pytest.raises(ValueError):
        await producer.enqueue("cleanup", {})
