"""
Report store: summary/detail persistence for generated E2E reports.
"""

import logging
from collections.abc import Collection
from datetime import date
from typing import Any, Protocol

from sqlalchemy import and_, delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from dashboard_jobs.reports.aggregation import AppRunStats
from dashboard_jobs.reports.models import E2EReportDetail, E2EReportSummary, ReportStatus

logger = logging.getLogger(__name__)


class ReportStore(Protocol):
    async def get_summary_by_date(self, report_date: date) -> E2EReportSummary | None: ...

    async def create_summary(self, report_date: date) -> E2EReportSummary: ...

    async def get_or_create_summary(self, report_date: date) -> E2EReportSummary: ...

    async def update_summary(self, summary_id: int, **fields: Any) -> None: ...

    async def create_or_update_detail(
        self, summary_id: int, app_id: int, stats: AppRunStats
    ) -> E2EReportDetail: ...

    async def delete_details_except(
        self, summary_id: int, app_ids: Collection[int]
    ) -> int: ...

    async def list_details(self, summary_id: int) -> list[E2EReportDetail]: ...

    async def mark_failed_if_pending(self, report_date: date) -> bool: ...


def _detail_fields(stats: AppRunStats) -> dict[str, Any]:
    return {
        "total_runs": stats.total_runs,
        "passed_runs": stats.passed_runs,
        "failed_runs": stats.failed_runs,
        "success_rate": stats.success_rate,
        "last_run_status": stats.last_run_status,
        "last_run_at": stats.last_run_at,
        "last_failed_run_at": stats.last_failed_run_at,
    }


class SqlReportStore:
    """ReportStore over SQLAlchemy; every public call runs in its own transaction."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def get_summary_by_date(self, report_date: date) -> E2EReportSummary | None:
        async with self.session_factory() as session:
            return await self._find_summary(session, report_date)

    async def create_summary(self, report_date: date) -> E2EReportSummary:
        """Insert a pending summary. Raises IntegrityError if the date exists."""
        async with self.session_factory() as session:
            summary = E2EReportSummary(
                report_date=report_date,
                status=ReportStatus.PENDING.value,
                total_runs=0,
                passed_runs=0,
                failed_runs=0,
                success_rate=0.0,
            )
            session.add(summary)
            await session.commit()
            await session.refresh(summary)

        logger.info(
            "Report summary created",
            extra={"summary_id": summary.id, "date": report_date.isoformat()},
        )
        return summary

    async def get_or_create_summary(self, report_date: date) -> E2EReportSummary:
        """
        Fetch the summary for ``report_date`` or create it as pending.

        Concurrent jobs for the same date race on the unique date column; the
        loser treats "already exists" as success and reads the winner's row.
        """
        existing = await self.get_summary_by_date(report_date)
        if existing is not None:
            return existing

        try:
            return await self.create_summary(report_date)
        except IntegrityError:
            logger.info(
                "Report summary created concurrently, reusing it",
                extra={"date": report_date.isoformat()},
            )
            existing = await self.get_summary_by_date(report_date)
            if existing is None:
                raise
            return existing

    async def update_summary(self, summary_id: int, **fields: Any) -> None:
        if not fields:
            return
        async with self.session_factory() as session:
            await session.execute(
                update(E2EReportSummary)
                .where(E2EReportSummary.id == summary_id)
                .values(**fields)
            )
            await session.commit()

    async def create_or_update_detail(
        self, summary_id: int, app_id: int, stats: AppRunStats
    ) -> E2EReportDetail:
        """Write one application's detail row in a single transaction."""
        fields = _detail_fields(stats)

        for attempt in range(2):
            async with self.session_factory() as session:
                detail = await self._find_detail(session, summary_id, app_id)
                if detail is None:
                    detail = E2EReportDetail(
                        report_summary_id=summary_id, app_id=app_id, **fields
                    )
                    session.add(detail)
                else:
                    for name, value in fields.items():
                        setattr(detail, name, value)

                try:
                    await session.commit()
                except IntegrityError:
                    # Another job inserted the same (summary, app) row first
                    await session.rollback()
                    if attempt:
                        raise
                    continue

                await session.refresh(detail)
                return detail

        raise RuntimeError("unreachable")

    async def delete_details_except(
        self, summary_id: int, app_ids: Collection[int]
    ) -> int:
        """Remove detail rows of applications that are no longer watched."""
        async with self.session_factory() as session:
            result = await session.execute(
                delete(E2EReportDetail).where(
                    and_(
                        E2EReportDetail.report_summary_id == summary_id,
                        E2EReportDetail.app_id.not_in(list(app_ids)),
                    )
                )
            )
            await session.commit()

        removed = result.rowcount or 0
        if removed:
            logger.info(
                "Removed stale report details",
                extra={"summary_id": summary_id, "removed": removed},
            )
        return removed

    async def list_details(self, summary_id: int) -> list[E2EReportDetail]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(E2EReportDetail)
                .where(E2EReportDetail.report_summary_id == summary_id)
                .order_by(E2EReportDetail.app_id)
            )
            return list(result.scalars().all())

    async def mark_failed_if_pending(self, report_date: date) -> bool:
        """Compare-and-set pending -> failed, used by dead-letter reconciliation."""
        async with self.session_factory() as session:
            result = await session.execute(
                update(E2EReportSummary)
                .where(
                    and_(
                        E2EReportSummary.report_date == report_date,
                        E2EReportSummary.status == ReportStatus.PENDING.value,
                    )
                )
                .values(status=ReportStatus.FAILED.value)
            )
            await session.commit()

        return (result.rowcount or 0) > 0

    async def _find_summary(
        self, session: AsyncSession, report_date: date
    ) -> E2EReportSummary | None:
        result = await session.execute(
            select(E2EReportSummary).where(E2EReportSummary.report_date == report_date)
        )
        return result.scalar_one_or_none()

    async def _find_detail(
        self, session: AsyncSession, summary_id: int, app_id: int
    ) -> E2EReportDetail | None:
        result = await session.execute(
            select(E2EReportDetail).where(
                and_(
                    E2EReportDetail.report_summary_id == summary_id,
                    E2EReportDetail.app_id == app_id,
                )
            )
        )
        return result.scalar_one_or_none()
