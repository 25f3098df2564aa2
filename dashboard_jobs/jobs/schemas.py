"""
Queue message schemas and job payload models.

Everything written to Redis is one of the models below serialized as JSON
with camelCase keys, so messages stay readable by the dashboard's other
services and by operators inspecting the dead-letter lists.
"""

import uuid
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class JobType(str, Enum):
    """Job types, one ready/delayed/dead key triple each."""

    E2E_REPORT = "e2e_report"
    NOTIFICATION = "notification"
    PULL_REQUEST_SYNC = "pull_request_sync"


class QueueMessage(BaseModel):
    """Base for models stored in the queue store."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class Envelope(QueueMessage):
    """Unit of queued work: payload plus delivery metadata."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    job_type: JobType
    payload: dict[str, Any] = Field(default_factory=dict)
    retry_count: int = Field(default=0, ge=0)
    enqueued_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def next_attempt(self) -> "Envelope":
        """Copy of this envelope for the next retry attempt."""
        return self.model_copy(update={"retry_count": self.retry_count + 1})


class DelayedEntry(QueueMessage):
    """Member of the delayed sorted set, scored by ``due_at_epoch_millis``."""

    envelope: Envelope
    due_at_epoch_millis: int
    last_error: str


class DeadLetterEntry(QueueMessage):
    """Terminal record of an envelope that exhausted its retries."""

    envelope: Envelope
    last_error: str
    error_stack: str | None = None
    moved_at: str = Field(description="ISO-8601 timestamp of the move")


# Job payloads


class E2EReportPayload(QueueMessage):
    """Request to generate the E2E report for one calendar date."""

    report_date: date = Field(..., alias="date")
    request_id: str | None = None
    force_recompute: bool = False


NotificationType = Literal["success", "error", "info", "warning"]


class NotificationPayload(QueueMessage):
    title: str = Field(..., min_length=1)
    message: str
    link: str | None = None
    type: NotificationType = "info"


class PullRequestSyncPayload(QueueMessage):
    repository: str = Field(..., pattern=r"^[^/\s]+/[^/\s]+$", description="owner/repo")
    pull_request_number: int = Field(..., gt=0)
    delete_if_merged: bool = True


# API schemas


class JobEnqueueResponse(BaseModel):
    """Response returned to producers after an enqueue."""

    envelope_id: str
    job_type: JobType
    queue: str


class DeadLetterListResponse(BaseModel):
    job_type: JobType
    total: int
    start: int
    entries: list[dict[str, Any]]


class QueueDepths(BaseModel):
    """Current size of each key for one job type."""

    job_type: JobType
    ready: int
    delayed: int
    dead: int
