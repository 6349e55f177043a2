"""GitHub REST API client with quota aware throttling and transparent retries"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from ghmirror_backend.core.errors import MirrorError
from ghmirror_shared.constants import GITHUB_PAGE_SIZE

if TYPE_CHECKING:
    from .rate_limiter import QuotaLimiter

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
RAW_CONTENT_URL = "https://raw.githubusercontent.com"


class GitHubAPIError(MirrorError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class GitHubNotFoundError(GitHubAPIError):
    def __init__(self, path: str):
        super().__init__(f"GitHub resource not found: {path}", status_code=404)
        self.path = path


class GitHubRateLimitError(GitHubAPIError):
    def __init__(self, reset_at: int | None = None):
        super().__init__("GitHub API rate limit exceeded", status_code=403)
        self.reset_at = reset_at


class GitHubAuthError(GitHubAPIError):
    def __init__(self):
        super().__init__("GitHub authentication failed", status_code=401)


@dataclass
class RateLimitInfo:
    resource: str
    remaining: int
    limit: int
    reset_at: int
    used: int


def parse_rate_limit_headers(headers: httpx.Headers | dict) -> RateLimitInfo | None:
    try:
        remaining = headers.get("x-ratelimit-remaining")
        limit = headers.get("x-ratelimit-limit")
        reset_at = headers.get("x-ratelimit-reset")
        used = headers.get("x-ratelimit-used")

        if not all([remaining, limit, reset_at, used]):
            return None

        return RateLimitInfo(
            resource=headers.get("x-ratelimit-resource") or "core",
            remaining=int(remaining),
            limit=int(limit),
            reset_at=int(reset_at),
            used=int(used),
        )
    except (ValueError, TypeError):
        return None


def parse_retry_after(headers: httpx.Headers | dict) -> float | None:
    """Seconds from a Retry-After header; None when absent or not a number"""
    value = headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except (ValueError, TypeError):
        return None


def _decode_json(response: httpx.Response, url: str) -> Any:
    try:
        return response.json()
    except ValueError as e:
        raise GitHubAPIError(
            f"GitHub request {url} returned a body that is not JSON: {e}",
            status_code=response.status_code,
        ) from e


class GitHubRestClient:
    """Accepts optional QuotaLimiter to coordinate quota usage across instances.

    Every call is throttled and retried here; callers only see a payload or a
    terminal GitHubAPIError.
    """

    MAX_RETRIES: int = 3
    RETRY_DELAY_SECONDS: float = 1.0
    TIMEOUT_SECONDS: float = 30.0
    LOW_QUOTA_WARNING: int = 200

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        limiter: QuotaLimiter | None = None,
    ):
        if not token:
            raise ValueError("GitHub token is required")

        self._token = token
        self._base_url = base_url
        self._limiter = limiter
        self._rate_limit: RateLimitInfo | None = None
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubRestClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=httpx.Timeout(self.TIMEOUT_SECONDS),
            headers={
                "Authorization": f"Bearer {self._token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._request(path, params)
        return _decode_json(response, path)

    async def iter_pages(
        self,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> AsyncIterator[list[dict[str, Any]]]:
        """Yields one list per page, following the Link header until exhausted"""
        url: str | None = path
        page_params: dict[str, Any] | None = {"per_page": GITHUB_PAGE_SIZE, **(params or {})}

        while url:
            response = await self._request(url, page_params)
            yield _decode_json(response, url)

            # The next link already carries every query parameter
            url = response.links.get("next", {}).get("url")
            page_params = None

    async def get_user(self, login: str) -> dict[str, Any]:
        return await self.get_json(f"/users/{login}")

    async def list_pull_request_files(self, org: str, repo: str, number: int) -> list[str]:
        files: list[str] = []
        async for page in self.iter_pages(f"/repos/{org}/{repo}/pulls/{number}/files"):
            files.extend(f["filename"] for f in page if f.get("filename"))
        return files

    async def get_file_content(self, org: str, repo: str, path: str) -> str:
        """Decodes a file from the contents API; raises GitHubNotFoundError if absent"""
        data = await self.get_json(f"/repos/{org}/{repo}/contents/{path}")
        if not isinstance(data, dict) or data.get("type") != "file":
            raise GitHubAPIError(f"{path} in {org}/{repo} is not a file")

        if data.get("encoding") != "base64":
            return data.get("content") or ""
        return base64.b64decode(data.get("content") or "").decode("utf-8")

    async def _request(self, url: str, params: dict[str, Any] | None) -> httpx.Response:
        if not self._client:
            raise RuntimeError("Client not initialized; use async context manager")

        last_error: Exception | None = None

        for attempt in range(self.MAX_RETRIES):
            if self._limiter:
                await self._limiter.acquire("core")

            try:
                response = await self._client.get(url, params=params)
            except httpx.TimeoutException as e:
                last_error = GitHubAPIError(f"Request timeout: {e}")
                await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue
            except httpx.RequestError as e:
                last_error = GitHubAPIError(f"Request failed: {e}")
                await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue

            await self._update_rate_limit(response)

            if response.status_code == 401:
                raise GitHubAuthError()

            if response.status_code == 404:
                raise GitHubNotFoundError(url)

            if response.status_code in (403, 429) and self._is_rate_limited(response):
                reset_at = self._rate_limit.reset_at if self._rate_limit else None
                last_error = GitHubRateLimitError(reset_at=reset_at)
                if not self._limiter:
                    raise last_error
                # Secondary limits leave quota above zero, so the limiter will not block
                retry_after = parse_retry_after(response.headers)
                if retry_after is not None:
                    await asyncio.sleep(retry_after)
                continue

            if response.status_code >= 500:
                last_error = GitHubAPIError(
                    f"Server error: {response.status_code}",
                    status_code=response.status_code,
                )
                await asyncio.sleep(self.RETRY_DELAY_SECONDS * (attempt + 1))
                continue

            if response.status_code >= 400:
                raise GitHubAPIError(
                    f"GitHub request {url} failed: {response.status_code}",
                    status_code=response.status_code,
                )

            return response

        raise last_error or GitHubAPIError("Max retries exceeded")

    def _is_rate_limited(self, response: httpx.Response) -> bool:
        if response.headers.get("retry-after"):
            return True
        return self._rate_limit is not None and self._rate_limit.remaining == 0

    async def _update_rate_limit(self, response: httpx.Response) -> None:
        info = parse_rate_limit_headers(response.headers)
        if info is None:
            return

        self._rate_limit = info
        if self._limiter:
            await self._limiter.update(info.resource, info.remaining, info.reset_at)

        # Only warn when quota is critically low to reduce log noise
        if info.remaining < self.LOW_QUOTA_WARNING:
            logger.warning(
                f"GitHub rate limit critically low: {info.remaining}/{info.limit} remaining",
                extra={
                    "resource": info.resource,
                    "remaining": info.remaining,
                    "limit": info.limit,
                    "reset_at": info.reset_at,
                },
            )

    def get_rate_limit_info(self) -> RateLimitInfo | None:
        return self._rate_limit


class RawContentFetcher:
    """Unauthenticated GET of raw repository files, used by the OWNERS fallback"""

    TIMEOUT_SECONDS: float = 30.0

    def __init__(self, base_url: str = RAW_CONTENT_URL):
        self._base_url = base_url.rstrip("/")
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> RawContentFetcher:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.TIMEOUT_SECONDS))
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def url_for(self, org: str, repo: str, ref: str, path: str) -> str:
        return f"{self._base_url}/{org}/{repo}/{ref}/{path}"

    async def fetch(self, org: str, repo: str, ref: str, path: str) -> str:
        if not self._client:
            raise RuntimeError("Fetcher not initialized; use async context manager")

        url = self.url_for(org, repo, ref, path)
        try:
            response = await self._client.get(url)
        except httpx.RequestError as e:
            raise GitHubAPIError(f"unable to get {url}: {e}") from e

        if response.status_code == 404:
            raise GitHubNotFoundError(url)
        if response.status_code != 200:
            raise GitHubAPIError(f"unable to get {url}: {response.status_code}", status_code=response.status_code)

        return response.text
