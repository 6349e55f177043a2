"""Unit tests for ZenHub client"""

from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ghmirror_backend.ingestion.rate_limiter import InMemoryQuotaLimiter
from ghmirror_backend.ingestion.zenhub_client import (
    ZENHUB_RESOURCE,
    ZenHubAPIError,
    ZenHubClient,
    ZenHubNotFoundError,
)


def _install(client, handler):
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="https://api.zenhub.com")


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("ghmirror_backend.ingestion.zenhub_client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestZenHubClient:

    def test_empty_token_raises_value_error(self):
        with pytest.raises(ValueError, match="required"):
            ZenHubClient(token="")

    @pytest.mark.asyncio
    async def test_issue_data_parsed(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(
                200,
                json={"pipeline": {"name": "In Progress"}, "estimate": {"value": 3}, "is_epic": False},
            )

        client = ZenHubClient(token="zh_test")
        _install(client, handler)

        data = await client.get_issue_data(42, 7)

        assert data.pipeline == "In Progress"
        assert data.estimate == 3
        assert seen == ["/p1/repositories/42/issues/7"]

    @pytest.mark.asyncio
    async def test_missing_pipeline_is_empty_string(self):
        client = ZenHubClient(token="zh_test")
        _install(client, lambda request: httpx.Response(200, json={}))

        data = await client.get_issue_data(42, 7)

        assert data.pipeline == ""
        assert data.estimate is None

    @pytest.mark.asyncio
    async def test_untracked_issue_raises_not_found(self):
        client = ZenHubClient(token="zh_test")
        _install(client, lambda request: httpx.Response(404))

        with pytest.raises(ZenHubNotFoundError):
            await client.get_issue_data(42, 7)

    @pytest.mark.asyncio
    async def test_other_client_errors_are_not_not_found(self):
        client = ZenHubClient(token="zh_test")
        _install(client, lambda request: httpx.Response(400))

        with pytest.raises(ZenHubAPIError) as exc_info:
            await client.get_issue_data(42, 7)

        assert not isinstance(exc_info.value, ZenHubNotFoundError)

    @pytest.mark.asyncio
    async def test_server_error_retried(self):
        responses = iter([httpx.Response(500), httpx.Response(200, json={"pipeline": {"name": "Done"}})])
        client = ZenHubClient(token="zh_test")
        _install(client, lambda request: next(responses))

        assert (await client.get_issue_data(1, 1)).pipeline == "Done"

    @pytest.mark.asyncio
    async def test_quota_reported_to_limiter(self):
        limiter = InMemoryQuotaLimiter()
        headers = {"x-ratelimit-limit": "100", "x-ratelimit-used": "40", "x-ratelimit-reset": "1704067200"}
        client = ZenHubClient(token="zh_test", limiter=limiter)
        _install(client, lambda request: httpx.Response(200, json={}, headers=headers))

        await client.get_issue_data(1, 1)

        assert await limiter.get_remaining(ZENHUB_RESOURCE) == 60

    @pytest.mark.asyncio
    async def test_rate_limit_waits_retry_after(self, no_sleep):
        responses = iter(
            [
                httpx.Response(429, headers={"retry-after": "12"}),
                httpx.Response(200, json={"pipeline": {"name": "Review"}}),
            ]
        )
        client = ZenHubClient(token="zh_test", limiter=InMemoryQuotaLimiter())
        _install(client, lambda request: next(responses))

        assert (await client.get_issue_data(1, 1)).pipeline == "Review"
        no_sleep.assert_awaited_once_with(12.0)

    @pytest.mark.asyncio
    async def test_rate_limit_without_headers_backs_off(self, no_sleep):
        responses = iter([httpx.Response(429), httpx.Response(200, json={})])
        client = ZenHubClient(token="zh_test", limiter=InMemoryQuotaLimiter())
        _install(client, lambda request: next(responses))

        await client.get_issue_data(1, 1)

        no_sleep.assert_awaited_once_with(ZenHubClient.RETRY_DELAY_SECONDS)
