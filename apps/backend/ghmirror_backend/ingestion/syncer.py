"""
Synchronizes GitHub and ZenHub state into the mirror store.

A sync run replaces orgs and repos wholesale, then walks every org: the
per-repository pass (labels, issues, pipelines, pull requests, repo comments,
events), org members, and maintainers. Users discovered anywhere are written
once at the end of the run. All mutable run state lives in a SyncRun, so one
Syncer can serve any number of runs.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import time
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ghmirror_backend.core.errors import MirrorError, SyncError
from ghmirror_database.models import (
    IssueCommentEvent,
    IssueEvent,
    IssuePipeline,
    Member,
    Org,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    Repo,
    RepoCommentEvent,
)
from ghmirror_shared.constants import ZENHUB_PIPELINE_BATCH_SIZE

from .activity import ActivityTracker, BotActivityField
from .converters import (
    convert_issue,
    convert_issue_comment,
    convert_label,
    convert_org,
    convert_pull_request,
    convert_pull_request_review,
    convert_pull_request_review_comment,
    convert_repo,
    convert_repo_comment,
    convert_user,
    number_from_url,
    parse_timestamp,
)
from .events import EventBatch
from .filter_flags import REPO_PASS_FLAGS, FilterFlags
from .maintainers import MaintainerResolver
from .user_registry import UserRegistry
from .zenhub_client import ZenHubNotFoundError

if TYPE_CHECKING:
    from ghmirror_backend.core.config import OrgConfig

    from .cache import MirrorCache
    from .github_client import GitHubRestClient, RawContentFetcher
    from .persistence import MirrorStore
    from .zenhub_client import ZenHubClient

logger = logging.getLogger(__name__)

# Kinds handled inside the per-repository pass; REPO_PASS_FLAGS adds members
REPO_KIND_FLAGS = REPO_PASS_FLAGS & ~FilterFlags.MEMBERS


def _github_time(value: datetime) -> str:
    return value.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _since_params(since: datetime | None) -> dict[str, Any]:
    params: dict[str, Any] = {"sort": "updated", "direction": "asc"}
    if since is not None:
        params["since"] = _github_time(since)
    return params


@dataclass
class SyncStats:
    orgs: int = 0
    repos: int = 0
    labels: int = 0
    issues: int = 0
    issue_comments: int = 0
    issue_pipelines: int = 0
    pipelines_not_tracked: int = 0
    pull_requests: int = 0
    pull_requests_unchanged: int = 0
    pull_request_reviews: int = 0
    pull_request_review_comments: int = 0
    repo_comments: int = 0
    events: int = 0
    events_skipped: int = 0
    members: int = 0
    maintainers: int = 0
    users: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SyncRun:
    """State owned by one sync run"""

    flags: FilterFlags
    users: UserRegistry = field(default_factory=UserRegistry)
    stats: SyncStats = field(default_factory=SyncStats)


class Syncer:
    def __init__(
        self,
        client: GitHubRestClient,
        cache: MirrorCache,
        store: MirrorStore,
        orgs: list[OrgConfig],
        raw_fetcher: RawContentFetcher,
        zenhub: ZenHubClient | None = None,
        repo_concurrency: int = 1,
        pipeline_batch_size: int = ZENHUB_PIPELINE_BATCH_SIZE,
        tracker: ActivityTracker | None = None,
    ):
        self._client = client
        self._cache = cache
        self._store = store
        self._orgs = orgs
        self._zenhub = zenhub
        self._repo_concurrency = max(1, repo_concurrency)
        self._pipeline_batch_size = pipeline_batch_size
        self._tracker = tracker or ActivityTracker(store)
        self._maintainers = MaintainerResolver(client, raw_fetcher, cache)

        self._event_writers = {
            IssueEvent: store.write_issue_events,
            IssueCommentEvent: store.write_issue_comment_events,
            PullRequestEvent: store.write_pull_request_events,
            PullRequestReviewCommentEvent: store.write_pull_request_review_comment_events,
            PullRequestReviewEvent: store.write_pull_request_review_events,
            RepoCommentEvent: store.write_repo_comment_events,
        }

    async def sync(self, flags: FilterFlags) -> SyncStats:
        """Runs one sync pass; the first fatal error aborts the run and propagates"""
        if flags & FilterFlags.ZENHUB and self._zenhub is None:
            logger.warning("ZenHub sync requested but no ZenHub client is configured; skipping pipelines")
            flags &= ~FilterFlags.ZENHUB

        run = SyncRun(flags=flags)
        start = time.monotonic()
        logger.info(f"Starting sync with flags {flags!r}", extra={"flags": int(flags)})

        orgs, repos = await self._fetch_orgs_and_repos()
        await self._store.write_orgs(orgs)
        await self._store.write_repos(repos)
        run.stats.orgs = len(orgs)
        run.stats.repos = len(repos)

        for org in orgs:
            org_repos = [repo for repo in repos if repo.org_login == org.org_login]

            if flags & REPO_PASS_FLAGS:
                await self._handle_org(run, org, org_repos)

            if flags & FilterFlags.MAINTAINERS:
                await self._handle_maintainers(run, org, org_repos)

        run.stats.users = await run.users.flush(self._cache, self._client)

        elapsed = time.monotonic() - start
        logger.info(
            f"Sync complete: {run.stats.orgs} orgs, {run.stats.repos} repos in {elapsed:.1f}s",
            extra={**run.stats.to_dict(), "duration_s": round(elapsed, 1)},
        )
        return run.stats

    async def _fetch_orgs_and_repos(self) -> tuple[list[Org], list[Repo]]:
        orgs: list[Org] = []
        repos: list[Repo] = []

        for org_config in self._orgs:
            try:
                orgs.append(convert_org(await self._client.get_json(f"/orgs/{org_config.name}")))

                if org_config.repos:
                    for repo_config in org_config.repos:
                        payload = await self._client.get_json(f"/repos/{org_config.name}/{repo_config.name}")
                        repos.append(convert_repo(payload))
                else:
                    async for page in self._client.iter_pages(f"/orgs/{org_config.name}/repos"):
                        repos.extend(convert_repo(payload) for payload in page)
            except MirrorError as e:
                raise SyncError(f"unable to enumerate org {org_config.name}: {e}", org=org_config.name) from e

        return orgs, repos

    async def _handle_org(self, run: SyncRun, org: Org, repos: list[Repo]) -> None:
        logger.info(f"Syncing org {org.org_login}", extra={"org": org.org_login, "repo_count": len(repos)})

        if run.flags & REPO_KIND_FLAGS:
            await self._handle_repos(run, repos)

        if run.flags & FilterFlags.MEMBERS:
            try:
                await self._handle_members(run, org)
            except MirrorError as e:
                raise SyncError(f"unable to sync members of org {org.org_login}: {e}", org=org.org_login) from e

    async def _handle_repos(self, run: SyncRun, repos: list[Repo]) -> None:
        if self._repo_concurrency == 1 or len(repos) <= 1:
            for repo in repos:
                await self._handle_repo(run, repo)
            return

        semaphore = asyncio.Semaphore(self._repo_concurrency)

        async def _bounded(repo: Repo) -> None:
            async with semaphore:
                await self._handle_repo(run, repo)

        tasks = [asyncio.create_task(_bounded(repo)) for repo in repos]
        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _handle_repo(self, run: SyncRun, repo: Repo) -> None:
        logger.info(
            f"Syncing repo {repo.org_login}/{repo.repo_name}",
            extra={"org": repo.org_login, "repo": repo.repo_name},
        )
        flags = run.flags

        try:
            if flags & FilterFlags.LABELS:
                await self._handle_labels(run, repo)

            if flags & FilterFlags.ISSUES:
                await self._tracker.run_windowed(
                    repo, BotActivityField.ISSUES, functools.partial(self._handle_issues, run)
                )
                await self._tracker.run_windowed(
                    repo, BotActivityField.ISSUE_COMMENTS, functools.partial(self._handle_issue_comments, run)
                )

            if flags & FilterFlags.ZENHUB:
                await self._handle_zenhub(run, repo)

            if flags & FilterFlags.PRS:
                await self._handle_pull_requests(run, repo)
                await self._tracker.run_windowed(
                    repo,
                    BotActivityField.PULL_REQUEST_REVIEW_COMMENTS,
                    functools.partial(self._handle_pull_request_review_comments, run),
                )

            if flags & FilterFlags.REPO_COMMENTS:
                await self._handle_repo_comments(run, repo)

            if flags & FilterFlags.EVENTS:
                await self._handle_events(run, repo)
        except SyncError:
            raise
        except MirrorError as e:
            raise SyncError(
                f"unable to sync repo {repo.org_login}/{repo.repo_name}: {e}",
                org=repo.org_login,
                repo=repo.repo_name,
            ) from e

    async def _handle_labels(self, run: SyncRun, repo: Repo) -> None:
        logger.debug(f"Getting labels from repo {repo.org_login}/{repo.repo_name}")

        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/labels"):
            labels = [convert_label(repo.org_login, repo.repo_name, payload) for payload in page]
            await self._cache.write_labels(labels)
            run.stats.labels += len(labels)

    async def _handle_issues(self, run: SyncRun, repo: Repo, since: datetime | None) -> None:
        logger.debug(f"Getting issues from repo {repo.org_login}/{repo.repo_name} since {since}")

        total = 0
        params = {"state": "all", **_since_params(since)}
        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/issues", params):
            issues = []
            for payload in page:
                issue, users = convert_issue(repo.org_login, repo.repo_name, payload)
                issues.append(issue)
                run.users.observe(*users)

            total += len(issues)
            logger.info(f"Received {total} issues", extra={"org": repo.org_login, "repo": repo.repo_name})
            await self._cache.write_issues(issues)
            run.stats.issues += len(issues)

    async def _handle_issue_comments(self, run: SyncRun, repo: Repo, since: datetime | None) -> None:
        logger.debug(f"Getting issue comments from repo {repo.org_login}/{repo.repo_name} since {since}")

        total = 0
        path = f"/repos/{repo.org_login}/{repo.repo_name}/issues/comments"
        async for page in self._client.iter_pages(path, _since_params(since)):
            comments = []
            for payload in page:
                comment, users = convert_issue_comment(
                    repo.org_login, repo.repo_name, number_from_url(payload.get("issue_url")), payload
                )
                comments.append(comment)
                run.users.observe(*users)

            total += len(comments)
            logger.info(f"Received {total} issue comments", extra={"org": repo.org_login, "repo": repo.repo_name})
            await self._cache.write_issue_comments(comments)
            run.stats.issue_comments += len(comments)

    async def _handle_zenhub(self, run: SyncRun, repo: Repo) -> None:
        logger.debug(f"Getting ZenHub issue data for repo {repo.org_login}/{repo.repo_name}")

        issues = [issue async for issue in self._store.iter_issues_by_repo(repo.org_login, repo.repo_name)]

        pipelines: list[IssuePipeline] = []
        for issue in issues:
            try:
                data = await self._zenhub.get_issue_data(repo.repo_number, issue.issue_number)
            except ZenHubNotFoundError:
                logger.debug(f"Issue {issue.issue_number} in {repo.org_login}/{repo.repo_name} is not tracked by ZenHub")
                run.stats.pipelines_not_tracked += 1
                continue

            pipelines.append(
                IssuePipeline(
                    org_login=repo.org_login,
                    repo_name=repo.repo_name,
                    issue_number=issue.issue_number,
                    pipeline=data.pipeline,
                )
            )

            if len(pipelines) >= self._pipeline_batch_size:
                await self._store.write_issue_pipelines(pipelines)
                run.stats.issue_pipelines += len(pipelines)
                pipelines = []

        if pipelines:
            await self._store.write_issue_pipelines(pipelines)
            run.stats.issue_pipelines += len(pipelines)

    async def _handle_pull_requests(self, run: SyncRun, repo: Repo) -> None:
        logger.debug(f"Getting pull requests from repo {repo.org_login}/{repo.repo_name}")

        total = 0
        params = {"state": "all", "sort": "updated", "direction": "desc"}
        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/pulls", params):
            total += len(page)
            logger.info(f"Received {total} pull requests", extra={"org": repo.org_login, "repo": repo.repo_name})

            prs = []
            reviews = []
            for payload in page:
                number = int(payload["number"])

                existing = await self._cache.read_pull_request(repo.org_login, repo.repo_name, number)
                if existing is not None and existing.updated_at == parse_timestamp(payload.get("updated_at")):
                    run.stats.pull_requests_unchanged += 1
                    continue

                reviews_path = f"/repos/{repo.org_login}/{repo.repo_name}/pulls/{number}/reviews"
                async for review_page in self._client.iter_pages(reviews_path):
                    for review_payload in review_page:
                        review, users = convert_pull_request_review(
                            repo.org_login, repo.repo_name, number, review_payload
                        )
                        reviews.append(review)
                        run.users.observe(*users)

                files = await self._client.list_pull_request_files(repo.org_login, repo.repo_name, number)

                pr, users = convert_pull_request(repo.org_login, repo.repo_name, payload, files)
                prs.append(pr)
                run.users.observe(*users)

            if prs:
                await self._cache.write_pull_requests(prs)
            if reviews:
                await self._cache.write_pull_request_reviews(reviews)
            run.stats.pull_requests += len(prs)
            run.stats.pull_request_reviews += len(reviews)

    async def _handle_pull_request_review_comments(self, run: SyncRun, repo: Repo, since: datetime | None) -> None:
        logger.debug(f"Getting pull request review comments from repo {repo.org_login}/{repo.repo_name} since {since}")

        total = 0
        path = f"/repos/{repo.org_login}/{repo.repo_name}/pulls/comments"
        async for page in self._client.iter_pages(path, _since_params(since)):
            comments = []
            for payload in page:
                comment, users = convert_pull_request_review_comment(
                    repo.org_login, repo.repo_name, number_from_url(payload.get("pull_request_url")), payload
                )
                comments.append(comment)
                run.users.observe(*users)

            total += len(comments)
            logger.info(
                f"Received {total} pull request review comments",
                extra={"org": repo.org_login, "repo": repo.repo_name},
            )
            await self._cache.write_pull_request_review_comments(comments)
            run.stats.pull_request_review_comments += len(comments)

    async def _handle_repo_comments(self, run: SyncRun, repo: Repo) -> None:
        logger.debug(f"Getting comments for repo {repo.org_login}/{repo.repo_name}")

        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/comments"):
            comments = []
            for payload in page:
                comment, users = convert_repo_comment(repo.org_login, repo.repo_name, payload)
                comments.append(comment)
                run.users.observe(*users)

            await self._cache.write_repo_comments(comments)
            run.stats.repo_comments += len(comments)

    async def _handle_events(self, run: SyncRun, repo: Repo) -> None:
        logger.debug(f"Getting events from repo {repo.org_login}/{repo.repo_name}")

        total = 0
        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/events"):
            batch = EventBatch()
            batch.extend(repo.org_login, repo.repo_name, page)
            total += len(page)
            logger.info(f"Received {total} events", extra={"org": repo.org_login, "repo": repo.repo_name})
            await self._write_events(run, batch)

        async for page in self._client.iter_pages(f"/repos/{repo.org_login}/{repo.repo_name}/issues/events"):
            batch = EventBatch()
            batch.extend_issue_events(repo.org_login, repo.repo_name, page)
            total += len(page)
            logger.info(f"Received {total} events", extra={"org": repo.org_login, "repo": repo.repo_name})
            await self._write_events(run, batch)

    async def _write_events(self, run: SyncRun, batch: EventBatch) -> None:
        for kind, records in batch.groups():
            await self._event_writers[kind](records)
        run.stats.events += len(batch)
        run.stats.events_skipped += batch.skipped

    async def _handle_members(self, run: SyncRun, org: Org) -> None:
        logger.debug(f"Getting members from org {org.org_login}")

        members = []
        async for page in self._client.iter_pages(f"/orgs/{org.org_login}/members"):
            for payload in page:
                user = convert_user(payload)
                run.users.observe(user)
                members.append(Member(org_login=org.org_login, user_login=user.user_login))

        await self._store.write_all_members(org.org_login, members)
        run.stats.members += len(members)

    async def _handle_maintainers(self, run: SyncRun, org: Org, repos: list[Repo]) -> None:
        logger.debug(f"Getting maintainers for org {org.org_login}")

        try:
            maintainers = await self._maintainers.resolve(org.org_login, repos, run.users)
            await self._store.write_all_maintainers(org.org_login, maintainers)
        except MirrorError as e:
            raise SyncError(f"unable to sync maintainers of org {org.org_login}: {e}", org=org.org_login) from e

        run.stats.maintainers += len(maintainers)
