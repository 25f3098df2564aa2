"""
Client for the Cypress enterprise reporting API.

The ``spec-details`` report returns one JSON record per spec file execution.
Records carry the project name they belong to, which is how they are mapped
back onto dashboard applications.
"""

import logging
from collections import defaultdict
from collections.abc import Mapping
from datetime import date, timedelta
from typing import Any

import httpx
from pydantic import ValidationError

from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import ConfigurationError, IntegrationError
from dashboard_jobs.reports.aggregation import RunRecord

logger = logging.getLogger(__name__)


class CypressDashboardClient:
    """Async HTTP client for the CI test dashboard."""

    def __init__(
        self,
        api_key: str | None,
        base_url: str = "https://cloud.cypress.io/enterprise-reporting/report",
        branch: str | None = "master",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.branch = branch
        self.client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "CypressDashboardClient":
        return cls(
            api_key=settings.cypress_api_key,
            base_url=settings.cypress_base_url,
            branch=settings.cypress_branch,
            timeout=settings.http_timeout_s,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def aclose(self) -> None:
        await self.client.aclose()

    def _params(
        self,
        report_id: str,
        start_date: date,
        end_date: date | None = None,
        projects: list[str] | None = None,
    ) -> list[tuple[str, str]]:
        if not self.api_key:
            raise ConfigurationError(
                "CYPRESS_API_KEY is not configured",
                details={"setting": "cypress_api_key"},
            )

        params = [
            ("report_id", report_id),
            ("token", self.api_key),
            ("export_format", "json"),
            ("start_date", start_date.isoformat()),
        ]
        if end_date is not None:
            params.append(("end_date", end_date.isoformat()))
        if self.branch:
            params.append(("branch", self.branch))
        for project in projects or []:
            params.append(("projects", project))
        return params

    async def _get_report(self, params: list[tuple[str, str]]) -> list[dict[str, Any]]:
        report_id = dict(params)["report_id"]
        try:
            response = await self.client.get(self.base_url, params=params)
        except httpx.HTTPError as e:
            raise IntegrationError(
                "CI dashboard request failed",
                details={"report_id": report_id, "error": str(e)},
            ) from e

        if response.status_code >= 400:
            raise IntegrationError(
                f"CI dashboard returned {response.status_code}",
                details={"report_id": report_id, "status_code": response.status_code},
            )

        try:
            data = response.json()
        except ValueError as e:
            raise IntegrationError(
                "CI dashboard returned invalid JSON",
                details={"report_id": report_id},
            ) from e

        if not isinstance(data, list):
            raise IntegrationError(
                "Unexpected CI dashboard response shape",
                details={"report_id": report_id, "type": type(data).__name__},
            )
        return data

    async def get_daily_runs_per_application(
        self,
        report_date: date,
        projects: Mapping[str, str],
        lookback_days: int = 14,
    ) -> dict[str, list[RunRecord]]:
        """
        Fetch spec-details records for ``report_date`` and the preceding days.

        Args:
            report_date: Last day of the reporting window
            projects: Application code -> project name on the dashboard
            lookback_days: Size of the window before ``report_date``

        Returns:
            Run records keyed by application code. Every requested code is
            present, with an empty list when the dashboard has no records.
        """
        start_date = report_date - timedelta(days=lookback_days)
        codes_by_project = {name: code for code, name in projects.items()}

        logger.debug(
            "Fetching CI dashboard runs",
            extra={
                "projects": len(projects),
                "start_date": start_date.isoformat(),
                "end_date": report_date.isoformat(),
            },
        )
        rows = await self._get_report(
            self._params(
                "spec-details",
                start_date,
                end_date=report_date,
                projects=list(codes_by_project),
            )
        )

        runs: dict[str, list[RunRecord]] = defaultdict(list)
        for code in projects:
            runs[code] = []

        skipped = 0
        for row in rows:
            try:
                record = RunRecord.model_validate(row)
            except ValidationError:
                skipped += 1
                continue

            code = codes_by_project.get(record.project_name or "")
            if code is None:
                skipped += 1
                continue
            runs[code].append(record)

        if skipped:
            logger.warning(
                "Skipped unusable CI dashboard records", extra={"skipped": skipped}
            )
        return dict(runs)
