"""
Cached pull request state.
"""

from datetime import datetime

from sqlalchemy import TIMESTAMP, Boolean, Integer, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from dashboard_jobs.infra.database import Base


class PullRequest(Base):
    """A pull request the dashboard follows, refreshed from GitHub."""

    __tablename__ = "pull_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pull_request_number: Mapped[int] = mapped_column(Integer, nullable=False)
    repository: Mapped[str] = mapped_column(
        String(255), nullable=False, comment="owner/repo"
    )
    title: Mapped[str | None] = mapped_column(String(500), nullable=True)
    state: Mapped[str | None] = mapped_column(
        String(20), nullable=True, comment="open|closed"
    )
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    merged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    merged_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    synced_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint(
            "repository", "pull_request_number", name="unique_repository_pull_request"
        ),
    )
