"""Unit tests for GitHub REST client"""

import base64
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from ghmirror_backend.ingestion.github_client import (
    GitHubAPIError,
    GitHubAuthError,
    GitHubNotFoundError,
    GitHubRateLimitError,
    GitHubRestClient,
    RawContentFetcher,
    parse_rate_limit_headers,
)
from ghmirror_backend.ingestion.rate_limiter import InMemoryQuotaLimiter

RATE_HEADERS = {
    "x-ratelimit-remaining": "4500",
    "x-ratelimit-limit": "5000",
    "x-ratelimit-reset": "1704067200",
    "x-ratelimit-used": "500",
    "x-ratelimit-resource": "core",
}


def _install(client, handler, base_url="https://api.github.com"):
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url=base_url)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("ghmirror_backend.ingestion.github_client.asyncio.sleep", new=AsyncMock()) as sleep:
        yield sleep


class TestGitHubExceptions:

    def test_api_error_preserves_status_code(self):
        error = GitHubAPIError("Server error", status_code=500)
        assert error.status_code == 500
        assert "Server error" in str(error)

    def test_not_found_is_api_error(self):
        error = GitHubNotFoundError("/repos/acme/widgets")
        assert isinstance(error, GitHubAPIError)
        assert error.status_code == 404
        assert error.path == "/repos/acme/widgets"

    def test_rate_limit_error_captures_reset_timestamp(self):
        error = GitHubRateLimitError(reset_at=1704067200)
        assert error.reset_at == 1704067200
        assert error.status_code == 403

    def test_auth_error_defaults_to_401(self):
        error = GitHubAuthError()
        assert error.status_code == 401
        assert "authentication" in str(error).lower()


class TestParseRateLimitHeaders:

    def test_extracts_all_header_fields(self):
        info = parse_rate_limit_headers(RATE_HEADERS)
        assert info.remaining == 4500
        assert info.limit == 5000
        assert info.reset_at == 1704067200
        assert info.used == 500
        assert info.resource == "core"

    def test_missing_headers_return_none(self):
        assert parse_rate_limit_headers({"x-ratelimit-remaining": "10"}) is None

    def test_malformed_values_return_none(self):
        assert parse_rate_limit_headers({**RATE_HEADERS, "x-ratelimit-remaining": "lots"}) is None


class TestClientInit:

    def test_empty_token_raises_value_error(self):
        with pytest.raises(ValueError, match="required"):
            GitHubRestClient(token="")

    @pytest.mark.asyncio
    async def test_request_outside_context_raises(self):
        client = GitHubRestClient(token="ghp_test")
        with pytest.raises(RuntimeError, match="not initialized"):
            await client.get_json("/orgs/acme")

    @pytest.mark.asyncio
    async def test_context_sets_auth_headers(self):
        async with GitHubRestClient(token="ghp_test") as client:
            assert client._client.headers["Authorization"] == "Bearer ghp_test"
        assert client._client is None


class TestRequests:

    @pytest.mark.asyncio
    async def test_get_json_returns_payload_and_tracks_quota(self):
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(200, json={"login": "acme"}, headers=RATE_HEADERS))

        assert await client.get_json("/orgs/acme") == {"login": "acme"}
        assert client.get_rate_limit_info().remaining == 4500

    @pytest.mark.asyncio
    async def test_404_raises_not_found(self):
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(404, json={"message": "Not Found"}))

        with pytest.raises(GitHubNotFoundError):
            await client.get_json("/repos/acme/missing")

    @pytest.mark.asyncio
    async def test_401_raises_auth_error(self):
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(401))

        with pytest.raises(GitHubAuthError):
            await client.get_json("/orgs/acme")

    @pytest.mark.asyncio
    async def test_server_error_retried_then_succeeds(self):
        responses = iter([httpx.Response(502), httpx.Response(200, json=[1])])
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: next(responses))

        assert await client.get_json("/orgs/acme/members") == [1]

    @pytest.mark.asyncio
    async def test_server_error_exhausts_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = GitHubRestClient(token="ghp_test")
        _install(client, handler)

        with pytest.raises(GitHubAPIError) as exc_info:
            await client.get_json("/orgs/acme")

        assert exc_info.value.status_code == 503
        assert len(calls) == GitHubRestClient.MAX_RETRIES

    @pytest.mark.asyncio
    async def test_timeout_is_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json={})

        client = GitHubRestClient(token="ghp_test")
        _install(client, handler)

        assert await client.get_json("/orgs/acme") == {}
        assert len(attempts) == 2

    @pytest.mark.asyncio
    async def test_rate_limited_without_limiter_raises(self):
        headers = {**RATE_HEADERS, "x-ratelimit-remaining": "0"}
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(403, headers=headers))

        with pytest.raises(GitHubRateLimitError) as exc_info:
            await client.get_json("/orgs/acme")

        assert exc_info.value.reset_at == 1704067200

    @pytest.mark.asyncio
    async def test_limiter_acquired_and_updated(self):
        limiter = InMemoryQuotaLimiter()
        client = GitHubRestClient(token="ghp_test", limiter=limiter)
        _install(client, lambda request: httpx.Response(200, json={}, headers=RATE_HEADERS))

        await client.get_json("/orgs/acme")

        assert limiter.get_total_acquired() == 1
        assert await limiter.get_remaining("core") == 4500

    @pytest.mark.asyncio
    async def test_secondary_rate_limit_waits_retry_after(self, no_sleep):
        responses = iter(
            [
                httpx.Response(403, headers={**RATE_HEADERS, "retry-after": "30"}),
                httpx.Response(200, json={"login": "acme"}, headers=RATE_HEADERS),
            ]
        )
        client = GitHubRestClient(token="ghp_test", limiter=InMemoryQuotaLimiter())
        _install(client, lambda request: next(responses))

        assert await client.get_json("/orgs/acme") == {"login": "acme"}
        no_sleep.assert_awaited_once_with(30.0)

    @pytest.mark.asyncio
    async def test_non_json_body_raises_api_error(self):
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(200, text="<html>unicorn</html>"))

        with pytest.raises(GitHubAPIError, match="not JSON"):
            await client.get_user("alice")


class TestPagination:

    @pytest.mark.asyncio
    async def test_follows_next_links(self):
        seen = []

        def handler(request):
            seen.append(str(request.url))
            if request.url.params.get("page") == "2":
                return httpx.Response(200, json=[{"id": 2}])
            next_url = "https://api.github.com/repos/acme/widgets/issues?state=all&per_page=100&page=2"
            return httpx.Response(200, json=[{"id": 1}], headers={"link": f'<{next_url}>; rel="next"'})

        client = GitHubRestClient(token="ghp_test")
        _install(client, handler)

        pages = [page async for page in client.iter_pages("/repos/acme/widgets/issues", {"state": "all"})]

        assert pages == [[{"id": 1}], [{"id": 2}]]
        assert "per_page=100" in seen[0]
        assert "state=all" in seen[0]

    @pytest.mark.asyncio
    async def test_pull_request_files(self):
        client = GitHubRestClient(token="ghp_test")
        _install(
            client,
            lambda request: httpx.Response(200, json=[{"filename": "a.py"}, {"filename": "docs/b.md"}]),
        )

        assert await client.list_pull_request_files("acme", "widgets", 5) == ["a.py", "docs/b.md"]


class TestFileContent:

    @pytest.mark.asyncio
    async def test_decodes_base64_file(self):
        encoded = base64.b64encode(b"* @alice\n").decode()
        client = GitHubRestClient(token="ghp_test")
        _install(
            client,
            lambda request: httpx.Response(200, json={"type": "file", "encoding": "base64", "content": encoded}),
        )

        assert await client.get_file_content("acme", "widgets", "CODEOWNERS") == "* @alice\n"

    @pytest.mark.asyncio
    async def test_directory_is_rejected(self):
        client = GitHubRestClient(token="ghp_test")
        _install(client, lambda request: httpx.Response(200, json=[{"name": "x"}]))

        with pytest.raises(GitHubAPIError, match="not a file"):
            await client.get_file_content("acme", "widgets", "CODEOWNERS")


class TestRawContentFetcher:

    def test_url_layout(self):
        fetcher = RawContentFetcher("https://raw.example.com/")
        assert fetcher.url_for("acme", "widgets", "main", "a/OWNERS") == "https://raw.example.com/acme/widgets/main/a/OWNERS"

    @pytest.mark.asyncio
    async def test_fetch_returns_text(self):
        fetcher = RawContentFetcher()
        fetcher._client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(200, text="approvers: [dave]"))
        )

        assert await fetcher.fetch("acme", "widgets", "main", "OWNERS") == "approvers: [dave]"

    @pytest.mark.asyncio
    async def test_fetch_404_raises_not_found(self):
        fetcher = RawContentFetcher()
        fetcher._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))

        with pytest.raises(GitHubNotFoundError):
            await fetcher.fetch("acme", "widgets", "main", "OWNERS")
