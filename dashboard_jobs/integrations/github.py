import logging
from datetime import datetime

import httpx
from pydantic import BaseModel, ConfigDict, Field

from dashboard_jobs.config.settings import Settings
from dashboard_jobs.core.exceptions import IntegrationError

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"


class PullRequestDetails(BaseModel):
    """Subset of the GitHub pull request resource cached by the dashboard."""

    model_config = ConfigDict(populate_by_name=True)

    id: int
    number: int
    title: str
    state: str
    is_draft: bool = Field(default=False, alias="draft")
    merged: bool = False
    merged_at: datetime | None = None
    html_url: str | None = None


class GitHubClient:
    """Async client for the GitHub REST API."""

    def __init__(
        self,
        token: str | None,
        base_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self.client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "GitHubClient":
        return cls(
            token=settings.github_token,
            base_url=settings.github_api_url,
            timeout=settings.http_timeout_s,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    async def get_pull_request(self, repository: str, number: int) -> PullRequestDetails:
        """Fetch one pull request. ``repository`` is ``owner/repo``."""
        owner, _, repo = repository.partition("/")
        path = f"/repos/{owner}/{repo}/pulls/{number}"

        try:
            response = await self.client.get(path)
        except httpx.HTTPError as e:
            raise IntegrationError(
                "GitHub request failed",
                details={"repository": repository, "number": number, "error": str(e)},
            ) from e

        if response.status_code != 200:
            raise IntegrationError(
                f"Failed to fetch pull request: {response.status_code}",
                details={
                    "repository": repository,
                    "number": number,
                    "status_code": response.status_code,
                },
            )

        details = PullRequestDetails.model_validate(response.json())
        logger.info(
            "Fetched pull request details",
            extra={"repository": repository, "number": number, "state": details.state},
        )
        return details
