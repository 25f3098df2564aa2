from datetime import UTC, datetime

import pytest
from sqlalchemy import select

from dashboard_jobs.core.exceptions import IntegrationError
from dashboard_jobs.integrations.github import PullRequestDetails
from dashboard_jobs.jobs.handlers import NotificationHandler, PullRequestSyncHandler
from dashboard_jobs.jobs.schemas import NotificationPayload, PullRequestSyncPayload
from dashboard_jobs.notifications.models import Notification
from dashboard_jobs.notifications.service import SqlNotificationStore
from dashboard_jobs.pull_requests.service import SqlPullRequestStore

REPOSITORY = "acme/dashboard"


class FakeGitHub:
    def __init__(self, details: PullRequestDetails | None = None, error=None):
        self.details = details
        self.error = error
        self.calls = []

    async def get_pull_request(self, repository, number):
        self.calls.append((repository, number))
        if self.error is not None:
            raise self.error
        return self.details


def pull_request(merged: bool = False, **overrides) -> PullRequestDetails:
    data = {
        "id": 101,
        "number": 42,
        "title": "Add retry scheduler",
        "state": "closed" if merged else "open",
        "draft": False,
        "merged": merged,
        "merged_at": datetime(2024, 1, 15, 12, 0, tzinfo=UTC) if merged else None,
    }
    data.update(overrides)
    return PullRequestDetails.model_validate(data)


def sync_payload(delete_if_merged: bool = True) -> PullRequestSyncPayload:
    return PullRequestSyncPayload.model_validate(
        {
            "repository": REPOSITORY,
            "pullRequestNumber": 42,
            "deleteIfMerged": delete_if_merged,
        }
    )


@pytest.fixture
def pull_requests(session_factory) -> SqlPullRequestStore:
    return SqlPullRequestStore(session_factory)


class TestNotificationHandler:
    async def test_creates_unread_notification(self, session_factory):
        handler = NotificationHandler(SqlNotificationStore(session_factory))
        payload = NotificationPayload.model_validate(
            {
                "title": "Nightly report ready",
                "message": "The E2E report for 2024-01-15 is available.",
                "link": "/reports/2024-01-15",
                "type": "success",
            }
        )

        await handler.handle(payload)

        async with session_factory() as session:
            [notification] = (await session.execute(select(Notification))).scalars().all()
        assert notification.title == "Nightly report ready"
        assert notification.type == "success"
        assert notification.is_read is False
        assert notification.link == "/reports/2024-01-15"

    async def test_each_job_creates_a_row(self, session_factory):
        handler = NotificationHandler(SqlNotificationStore(session_factory))
        payload = NotificationPayload(title="Deploy", message="Deployed")

        await handler.handle(payload)
        await handler.handle(payload)

        async with session_factory() as session:
            rows = (await session.execute(select(Notification))).scalars().all()
        assert len(rows) == 2
        assert {row.type for row in rows} == {"info"}


class TestPullRequestSyncHandler:
    async def test_open_pull_request_is_cached(self, pull_requests):
        github = FakeGitHub(pull_request(draft=True))

        await PullRequestSyncHandler(github, pull_requests).handle(sync_payload())

        assert github.calls == [(REPOSITORY, 42)]
        cached = await pull_requests.get(REPOSITORY, 42)
        assert cached.state == "open"
        assert cached.is_draft is True
        assert cached.merged is False
        assert cached.synced_at is not None

    async def test_state_is_refreshed_in_place(self, pull_requests):
        await PullRequestSyncHandler(FakeGitHub(pull_request()), pull_requests).handle(
            sync_payload()
        )
        first = await pull_requests.get(REPOSITORY, 42)

        renamed = FakeGitHub(pull_request(title="Add retry scheduler (v2)"))
        await PullRequestSyncHandler(renamed, pull_requests).handle(sync_payload())

        second = await pull_requests.get(REPOSITORY, 42)
        assert second.id == first.id
        assert second.title == "Add retry scheduler (v2)"

    async def test_merged_pull_request_is_deleted(self, pull_requests):
        await PullRequestSyncHandler(FakeGitHub(pull_request()), pull_requests).handle(
            sync_payload()
        )

        merged = FakeGitHub(pull_request(merged=True))
        await PullRequestSyncHandler(merged, pull_requests).handle(sync_payload())

        assert await pull_requests.get(REPOSITORY, 42) is None

    async def test_merged_pull_request_kept_when_requested(self, pull_requests):
        merged = FakeGitHub(pull_request(merged=True))

        await PullRequestSyncHandler(merged, pull_requests).handle(
            sync_payload(delete_if_merged=False)
        )

        cached = await pull_requests.get(REPOSITORY, 42)
        assert cached.merged is True
        assert cached.merged_at is not None

    async def test_github_error_propagates(self, pull_requests):
        github = FakeGitHub(error=IntegrationError("Failed to fetch pull request: 502"))

        with pytest.raises(IntegrationError):
            await PullRequestSyncHandler(github, pull_requests).handle(sync_payload())

        assert await pull_requests.get(REPOSITORY, 42) is None

    async def test_delete_of_uncached_pull_request_returns_false(self, pull_requests):
        assert await pull_requests.delete(REPOSITORY, 999) is False
