"""
Applies single webhook deliveries to the mirror.

Records are converted with the same functions the batch sync uses, written
through the cache, and logged as events. Bookmarks are never touched: each
delivery is applied once as received.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ghmirror_backend.core.errors import MirrorError
from ghmirror_database.models import (
    IssueCommentEvent,
    IssueEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    RepoCommentEvent,
    User,
)

from .converters import (
    convert_issue,
    convert_issue_comment,
    convert_pull_request,
    convert_pull_request_review,
    convert_pull_request_review_comment,
    convert_repo_comment,
)

if TYPE_CHECKING:
    from ghmirror_backend.core.config import OrgConfig

    from .cache import MirrorCache
    from .github_client import GitHubRestClient
    from .persistence import MirrorStore

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
Handler = Callable[[str, str, Payload], Awaitable[list[User]]]


def _sender(payload: Payload) -> str:
    return (payload.get("sender") or {}).get("login") or ""


def _now() -> datetime:
    return datetime.now(UTC)


class Refresher:
    """Entry point for the webhook server; handle() logs failures and never raises"""

    def __init__(
        self,
        cache: MirrorCache,
        store: MirrorStore,
        client: GitHubRestClient,
        orgs: list[OrgConfig],
    ):
        self._cache = cache
        self._store = store
        self._client = client

        # Orgs configured without a repo list are monitored as a whole
        self._monitored_repos = {f"{org.name}/{repo.name}" for org in orgs for repo in org.repos}
        self._monitored_orgs = {org.name for org in orgs if not org.repos}

        self._handlers: dict[str, Handler] = {
            "issues": self._on_issue,
            "issue_comment": self._on_issue_comment,
            "pull_request": self._on_pull_request,
            "pull_request_review": self._on_pull_request_review,
            "pull_request_review_comment": self._on_pull_request_review_comment,
            "commit_comment": self._on_commit_comment,
        }

    def is_monitored(self, org: str, repo: str) -> bool:
        return org in self._monitored_orgs or f"{org}/{repo}" in self._monitored_repos

    async def handle(self, event_name: str, payload: Payload) -> bool:
        """Returns True when the delivery was applied"""
        handler = self._handlers.get(event_name)
        if handler is None:
            logger.debug(f"Unknown event received: {event_name}")
            return False

        repository = payload.get("repository") or {}
        org = (repository.get("owner") or {}).get("login") or ""
        repo = repository.get("name") or ""
        action = payload.get("action") or ""

        logger.info(
            f"Received {event_name}: {org}/{repo}, {action}",
            extra={"event_name": event_name, "org": org, "repo": repo, "action": action},
        )

        if not self.is_monitored(org, repo):
            logger.info(f"Ignoring {event_name} from repo {org}/{repo} since it's not in a monitored repo")
            return False

        try:
            users = await handler(org, repo, payload)
        except (MirrorError, KeyError, TypeError, ValueError) as e:
            logger.error(
                f"Unable to apply {event_name} for {org}/{repo}: {e}",
                extra={"event_name": event_name, "org": org, "repo": repo},
            )
            return False

        try:
            await self._cache.write_users(users)
        except MirrorError as e:
            logger.error(f"Unable to write users: {e}", extra={"event_name": event_name})

        return True

    async def _on_issue(self, org: str, repo: str, payload: Payload) -> list[User]:
        issue, users = convert_issue(org, repo, payload["issue"])
        await self._cache.write_issues([issue])
        await self._store.write_issue_events(
            [
                IssueEvent(
                    org_login=org,
                    repo_name=repo,
                    issue_number=issue.issue_number,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "",
                )
            ]
        )
        return users

    async def _on_issue_comment(self, org: str, repo: str, payload: Payload) -> list[User]:
        comment, users = convert_issue_comment(org, repo, int(payload["issue"]["number"]), payload["comment"])
        await self._cache.write_issue_comments([comment])
        await self._store.write_issue_comment_events(
            [
                IssueCommentEvent(
                    org_login=org,
                    repo_name=repo,
                    issue_number=comment.issue_number,
                    issue_comment_id=comment.issue_comment_id,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "",
                )
            ]
        )
        return users

    async def _on_pull_request(self, org: str, repo: str, payload: Payload) -> list[User]:
        number = int(payload.get("number") or payload["pull_request"]["number"])

        # Webhook payloads never carry the file list
        files = await self._client.list_pull_request_files(org, repo, number)

        pr, users = convert_pull_request(org, repo, payload["pull_request"], files)
        await self._cache.write_pull_requests([pr])
        await self._store.write_pull_request_events(
            [
                PullRequestEvent(
                    org_login=org,
                    repo_name=repo,
                    pull_request_number=pr.pull_request_number,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "",
                )
            ]
        )
        return users

    async def _on_pull_request_review(self, org: str, repo: str, payload: Payload) -> list[User]:
        review, users = convert_pull_request_review(
            org, repo, int(payload["pull_request"]["number"]), payload["review"]
        )
        await self._cache.write_pull_request_reviews([review])
        await self._store.write_pull_request_review_events(
            [
                PullRequestReviewEvent(
                    org_login=org,
                    repo_name=repo,
                    pull_request_number=review.pull_request_number,
                    pull_request_review_id=review.pull_request_review_id,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "",
                )
            ]
        )
        return users

    async def _on_pull_request_review_comment(self, org: str, repo: str, payload: Payload) -> list[User]:
        comment, users = convert_pull_request_review_comment(
            org, repo, int(payload["pull_request"]["number"]), payload["comment"]
        )
        await self._cache.write_pull_request_review_comments([comment])
        await self._store.write_pull_request_review_comment_events(
            [
                PullRequestReviewCommentEvent(
                    org_login=org,
                    repo_name=repo,
                    pull_request_number=comment.pull_request_number,
                    pull_request_review_comment_id=comment.pull_request_review_comment_id,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "",
                )
            ]
        )
        return users

    async def _on_commit_comment(self, org: str, repo: str, payload: Payload) -> list[User]:
        comment, users = convert_repo_comment(org, repo, payload["comment"])
        await self._cache.write_repo_comments([comment])
        await self._store.write_repo_comment_events(
            [
                RepoCommentEvent(
                    org_login=org,
                    repo_name=repo,
                    repo_comment_id=comment.comment_id,
                    created_at=_now(),
                    actor=_sender(payload),
                    action=payload.get("action") or "created",
                )
            ]
        )
        return users
