"""
Incremental windowing over per-repository sync bookmarks.

A pass reads the bookmark, captures the start time, fetches everything updated
since the bookmark, and then advances the bookmark to the start time only if
nobody else moved it in the meantime.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ghmirror_backend.core.errors import StoreError

if TYPE_CHECKING:
    from ghmirror_database.models import Repo

    from .persistence import MirrorStore

logger = logging.getLogger(__name__)

WindowedFetch = Callable[["Repo", datetime | None], Awaitable[None]]


class BotActivityField(str, enum.Enum):
    ISSUES = "last_issue_sync_start"
    ISSUE_COMMENTS = "last_issue_comment_sync_start"
    PULL_REQUEST_REVIEW_COMMENTS = "last_pull_request_review_comment_sync_start"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ActivityTracker:
    def __init__(self, store: MirrorStore, clock: Callable[[], datetime] = _utcnow):
        self._store = store
        self._clock = clock

    async def read_bookmark(self, repo: Repo, field: BotActivityField) -> datetime | None:
        activity = await self._store.read_bot_activity(repo.org_login, repo.repo_name)
        if activity is None:
            return None
        return getattr(activity, field.value)

    async def run_windowed(self, repo: Repo, field: BotActivityField, fetch: WindowedFetch) -> bool:
        """Runs fetch over the window since the bookmark.

        Returns True when the bookmark advanced. A fetch failure propagates with
        the bookmark untouched; a failure to advance is only a warning since the
        next run re-fetches the same window.
        """
        prior = await self.read_bookmark(repo, field)
        start = self._clock()

        await fetch(repo, prior)

        try:
            advanced = await self._store.compare_and_set_bot_activity(
                repo.org_login, repo.repo_name, field.value, prior, start
            )
        except StoreError as e:
            logger.warning(
                f"unable to update bot activity for repo {repo.org_login}/{repo.repo_name}: {e}",
                extra={"org": repo.org_login, "repo": repo.repo_name, "field": field.value},
            )
            return False

        if not advanced:
            logger.info(
                f"Bookmark {field.value} for {repo.org_login}/{repo.repo_name} moved during the pass; leaving it",
                extra={"org": repo.org_login, "repo": repo.repo_name, "field": field.value},
            )
        return advanced
