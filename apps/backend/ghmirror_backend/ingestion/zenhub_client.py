"""ZenHub REST API client; addresses issues by GitHub repository id and issue number"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from ghmirror_backend.core.errors import MirrorError

from .github_client import parse_retry_after

if TYPE_CHECKING:
    from .rate_limiter import QuotaLimiter

logger = logging.getLogger(__name__)

ZENHUB_API_URL = "https://api.zenhub.com"
ZENHUB_RESOURCE = "zenhub"


class ZenHubAPIError(MirrorError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ZenHubNotFoundError(ZenHubAPIError):
    """The issue was never tracked by ZenHub."""

    def __init__(self, repo_id: int, issue_number: int):
        super().__init__(
            f"ZenHub has no data for issue {issue_number} in repository {repo_id}",
            status_code=404,
        )


@dataclass
class ZenHubIssueData:
    pipeline: str
    estimate: int | None = None
    is_epic: bool = False


class ZenHubClient:
    MAX_RETRIES: int = 3
    RETRY_DELAY_SECONDS: float = 1.0
    TIMEOUT_SECONDS: float = 30.0

    def __init__(
        self,
        token: str,
        base_url: str = ZENHUB_API_URL,
        limiter: QuotaLimiter | None = None,
    ):
        if not token:
            raise ValueError("ZenHub token is required")

        self._token = token
        self._base_url = base_url
        self._limiter = limiter
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> ZenHubClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self.TIMEOUT_SECONDS),
            headers={"X-Authentication-Token": self._token},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_issue_data(self, repo_id: int, issue_number: int) -> ZenHubIssueData:
        try:
            data = await self._get(f"/p1/repositories/{repo_id}/issues/{issue_number}")
        except ZenHubAPIError as e:
            if e.status_code == 404:
                raise ZenHubNotFoundError(repo_id, issue_number) from e
            raise

        return self._parse_issue_data(data)

    def _parse_issue_data(self, data: dict[str, Any]) -> ZenHubIssueData:
        pipeline = (data.get("pipeline") or {}).get("name") or ""
        estimate = (data.get("estimate") or {}).get("value")
        return ZenHubIssueData(
            pipeline=pipeline,
            estimate=estimate if isinstance(estimate, int) else None,
            is_epic=bool(data.get("is_epic", False)),
        )

    async def _get(self, path: str) -> dict[str, Any]:
        if not self._client:
            raise RuntimeError("Client not initialized; use async context manager")

        last_error: Exception | None = None

        for attempt in range(self.MAX_RETRIES):
            if self._limiter:
                await self._limiter.acquire(ZENHUB_RESOURCE)

            try:
                response = await self._client.get(path)
            except httpx.RequestError as e:
                last_error = ZenHubAPIError(f"Request failed: {e}")
                await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue

            quota_reported = await self._update_quota(response)

            if response.status_code == 404:
                raise ZenHubAPIError(f"Not found: {path}", status_code=404)

            if response.status_code in (403, 429):
                last_error = ZenHubAPIError("ZenHub rate limit exceeded", status_code=response.status_code)
                if not self._limiter:
                    raise last_error
                retry_after = parse_retry_after(response.headers)
                if retry_after is not None:
                    await asyncio.sleep(retry_after)
                elif not quota_reported:
                    # Nothing for the limiter to wait on
                    await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue

            if response.status_code >= 500:
                last_error = ZenHubAPIError(
                    f"Server error: {response.status_code}",
                    status_code=response.status_code,
                )
                await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue

            if response.status_code >= 400:
                raise ZenHubAPIError(
                    f"ZenHub request {path} failed: {response.status_code}",
                    status_code=response.status_code,
                )

            return response.json()

        raise last_error or ZenHubAPIError("Max retries exceeded")

    async def _update_quota(self, response: httpx.Response) -> bool:
        """Feeds the limiter from the quota headers; False when they are missing"""
        if not self._limiter:
            return False

        try:
            limit = int(response.headers["x-ratelimit-limit"])
            used = int(response.headers["x-ratelimit-used"])
            reset_at = int(response.headers["x-ratelimit-reset"])
        except (KeyError, ValueError, TypeError):
            return False

        await self._limiter.update(ZENHUB_RESOURCE, max(0, limit - used), reset_at)
        return True
