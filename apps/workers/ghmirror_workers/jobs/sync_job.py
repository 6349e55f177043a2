"""
Sync job: mirror the configured GitHub orgs (and ZenHub pipelines) into the store.

1. Parse SYNC_FILTER (fails before any network or database work)
2. Build the throttled clients, store and read-through cache
3. Run one sync pass and report per-kind counts
"""

import contextlib
import logging
import time

from ghmirror_backend.core.config import get_settings
from ghmirror_backend.core.errors import ConfigurationError
from ghmirror_backend.core.redis import get_redis
from ghmirror_backend.ingestion.cache import MirrorCache
from ghmirror_backend.ingestion.filter_flags import conv_filter_flags
from ghmirror_backend.ingestion.github_client import GitHubRestClient, RawContentFetcher
from ghmirror_backend.ingestion.persistence import SQLMirrorStore
from ghmirror_backend.ingestion.rate_limiter import create_quota_limiter
from ghmirror_backend.ingestion.syncer import Syncer
from ghmirror_backend.ingestion.zenhub_client import ZenHubClient
from ghmirror_database.session import async_session_factory

logger = logging.getLogger(__name__)


async def run_sync_job(filter_text: str | None = None) -> dict:
    """
    Runs one sync pass. filter_text overrides SYNC_FILTER when given.

    Returns the SyncStats counts plus the job duration.
    """
    job_start = time.monotonic()
    settings = get_settings()

    flags = conv_filter_flags(settings.sync_filter if filter_text is None else filter_text)

    if not settings.github_token:
        raise ConfigurationError("GITHUB_TOKEN environment variable is required")

    if not settings.orgs:
        raise ConfigurationError("ORGS must list at least one organization")

    logger.info(
        "Sync config",
        extra={
            "orgs": [org.name for org in settings.orgs],
            "flags": int(flags),
            "repo_concurrency": settings.sync_repo_concurrency,
            "zenhub_enabled": bool(settings.zenhub_token),
        },
    )

    redis_client = await get_redis()
    limiter = create_quota_limiter(redis_client)

    store = SQLMirrorStore(async_session_factory)
    cache = MirrorCache(store, redis_client, ttl_seconds=settings.cache_ttl_seconds)

    async with contextlib.AsyncExitStack() as stack:
        client = await stack.enter_async_context(
            GitHubRestClient(settings.github_token, base_url=settings.github_api_url, limiter=limiter)
        )
        raw_fetcher = await stack.enter_async_context(RawContentFetcher(settings.raw_content_base_url))

        zenhub = None
        if settings.zenhub_token:
            zenhub = await stack.enter_async_context(
                ZenHubClient(settings.zenhub_token, base_url=settings.zenhub_api_url, limiter=limiter)
            )

        syncer = Syncer(
            client,
            cache,
            store,
            settings.orgs,
            raw_fetcher,
            zenhub=zenhub,
            repo_concurrency=settings.sync_repo_concurrency,
            pipeline_batch_size=settings.zenhub_pipeline_batch_size,
        )
        stats = await syncer.sync(flags)

    elapsed = time.monotonic() - job_start
    result = {**stats.to_dict(), "duration_s": round(elapsed, 1)}

    logger.info(f"Sync job complete in {elapsed:.1f}s", extra=result)
    return result
