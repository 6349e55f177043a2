"""
Redis read-through cache in front of the mirror store.
Time to Live: settings.cache_ttl_seconds

The store stays authoritative: a miss or any Redis failure falls through to it,
and every write lands in the store before the cached copy is refreshed.
"""

import json
import logging
from collections.abc import Sequence
from typing import Optional, TypeVar

from sqlmodel import SQLModel

from ghmirror_database.models import (
    Issue,
    IssueComment,
    Label,
    PullRequest,
    PullRequestReview,
    PullRequestReviewComment,
    RepoComment,
    User,
)

from .persistence import MirrorStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "ghmirror:"
DEFAULT_TTL_SECONDS = 3600

RecordT = TypeVar("RecordT", bound=SQLModel)


def user_key(login: str) -> str:
    return f"{CACHE_PREFIX}user:{login}"


def label_key(org: str, repo: str, name: str) -> str:
    return f"{CACHE_PREFIX}label:{org}/{repo}:{name}"


def pull_request_key(org: str, repo: str, number: int) -> str:
    return f"{CACHE_PREFIX}pr:{org}/{repo}:{number}"


class MirrorCache:
    def __init__(self, store: MirrorStore, redis_client=None, ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self._store = store
        self._redis = redis_client
        self._ttl = ttl_seconds

    @property
    def store(self) -> MirrorStore:
        return self._store

    async def _get(self, key: str, model: type[RecordT]) -> Optional[RecordT]:
        if self._redis is None:
            return None

        try:
            cached = await self._redis.get(key)
            if not cached:
                logger.debug(f"Cache miss: {key}")
                return None
            logger.debug(f"Cache hit: {key}")
            return model.model_validate(json.loads(cached))
        except Exception as e:
            logger.warning(f"Mirror cache read error for {key}: {e}")
            return None

    async def _set(self, items: Sequence[tuple[str, SQLModel]]) -> None:
        if self._redis is None or not items:
            return

        try:
            async with self._redis.pipeline(transaction=False) as pipe:
                for key, record in items:
                    pipe.setex(key, self._ttl, json.dumps(record.model_dump(mode="json")))
                await pipe.execute()
        except Exception as e:
            logger.warning(f"Mirror cache write error: {e}")

    async def read_user(self, login: str) -> Optional[User]:
        user = await self._get(user_key(login), User)
        if user is not None:
            return user

        user = await self._store.read_user(login)
        if user is not None:
            await self._set([(user_key(login), user)])
        return user

    async def read_label(self, org: str, repo: str, name: str) -> Optional[Label]:
        key = label_key(org, repo, name)
        label = await self._get(key, Label)
        if label is not None:
            return label

        label = await self._store.read_label(org, repo, name)
        if label is not None:
            await self._set([(key, label)])
        return label

    async def read_pull_request(self, org: str, repo: str, number: int) -> Optional[PullRequest]:
        key = pull_request_key(org, repo, number)
        pr = await self._get(key, PullRequest)
        if pr is not None:
            return pr

        pr = await self._store.read_pull_request(org, repo, number)
        if pr is not None:
            await self._set([(key, pr)])
        return pr

    async def write_users(self, users: Sequence[User]) -> None:
        await self._store.write_users(users)
        await self._set([(user_key(u.user_login), u) for u in users])

    async def write_labels(self, labels: Sequence[Label]) -> None:
        await self._store.write_labels(labels)
        await self._set(
            [(label_key(label.org_login, label.repo_name, label.label_name), label) for label in labels]
        )

    async def write_pull_requests(self, prs: Sequence[PullRequest]) -> None:
        await self._store.write_pull_requests(prs)
        await self._set(
            [(pull_request_key(p.org_login, p.repo_name, p.pull_request_number), p) for p in prs]
        )

    # Kinds below are never read back through the cache; writes go to the store only
    async def write_issues(self, issues: Sequence[Issue]) -> None:
        await self._store.write_issues(issues)

    async def write_issue_comments(self, comments: Sequence[IssueComment]) -> None:
        await self._store.write_issue_comments(comments)

    async def write_pull_request_reviews(self, reviews: Sequence[PullRequestReview]) -> None:
        await self._store.write_pull_request_reviews(reviews)

    async def write_pull_request_review_comments(self, comments: Sequence[PullRequestReviewComment]) -> None:
        await self._store.write_pull_request_review_comments(comments)

    async def write_repo_comments(self, comments: Sequence[RepoComment]) -> None:
        await self._store.write_repo_comments(comments)
