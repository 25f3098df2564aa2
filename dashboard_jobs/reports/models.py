"""
E2E report summary and detail models.
"""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import (
    TIMESTAMP,
    CheckConstraint,
    Date,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column

from dashboard_jobs.infra.database import Base


class ReportStatus(str, Enum):
    """Report summary status enumeration."""

    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


class E2EReportSummary(Base):
    """
    One row per report date with aggregate run counts.

    Created as ``pending`` by the E2E report job and moved to ``ready`` once
    every watched application has a detail row. ``failed`` is only set by the
    dead-letter reconciliation sweep.
    """

    __tablename__ = "e2e_report_summaries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_date: Mapped[date] = mapped_column(
        "date", Date, nullable=False, unique=True, comment="Report date (UTC)"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=ReportStatus.PENDING.value,
        comment="Report status: pending|ready|failed",
    )
    total_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, comment="Value between 0 and 1"
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'ready', 'failed')",
            name="e2e_report_summaries_status_check",
        ),
    )


class E2EReportDetail(Base):
    """Per-application run statistics for one report summary."""

    __tablename__ = "e2e_report_details"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    report_summary_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("e2e_report_summaries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    app_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    total_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    passed_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_runs: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_rate: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    last_run_status: Mapped[str] = mapped_column(
        String(50), nullable=False, comment="passed|failed|noTests"
    )
    last_failed_run_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    last_run_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("report_summary_id", "app_id", name="unique_report_app"),
    )
