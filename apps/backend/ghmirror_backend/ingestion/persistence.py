"""Durable store for mirrored records.

MirrorStore is the contract the sync engine writes through. SQLMirrorStore
implements it on Postgres with INSERT ... ON CONFLICT, so repeated delivery of
the same key never duplicates rows. Every call runs in its own session and
transaction; the engine never needs cross-collection transactions.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Sequence
from datetime import datetime
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import SQLModel, select

from ghmirror_backend.core.errors import StoreError
from ghmirror_database.models import (
    BotActivity,
    Issue,
    IssueComment,
    IssueCommentEvent,
    IssueEvent,
    IssuePipeline,
    Label,
    Maintainer,
    Member,
    Org,
    PullRequest,
    PullRequestEvent,
    PullRequestReview,
    PullRequestReviewComment,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    Repo,
    RepoComment,
    RepoCommentEvent,
    User,
)

logger = logging.getLogger(__name__)

BOT_ACTIVITY_FIELDS: frozenset[str] = frozenset(
    {
        "last_issue_sync_start",
        "last_issue_comment_sync_start",
        "last_pull_request_review_comment_sync_start",
    }
)


class MirrorStore(ABC):
    """Write and lookup operations the sync engine and refresher depend on"""

    # Wholesale collections
    @abstractmethod
    async def write_orgs(self, orgs: Sequence[Org]) -> None: ...

    @abstractmethod
    async def write_repos(self, repos: Sequence[Repo]) -> None: ...

    @abstractmethod
    async def write_all_members(self, org: str, members: Sequence[Member]) -> None: ...

    @abstractmethod
    async def write_all_maintainers(self, org: str, maintainers: Sequence[Maintainer]) -> None: ...

    # Upserted entities
    @abstractmethod
    async def write_users(self, users: Sequence[User]) -> None: ...

    @abstractmethod
    async def write_labels(self, labels: Sequence[Label]) -> None: ...

    @abstractmethod
    async def write_issues(self, issues: Sequence[Issue]) -> None: ...

    @abstractmethod
    async def write_issue_comments(self, comments: Sequence[IssueComment]) -> None: ...

    @abstractmethod
    async def write_pull_requests(self, prs: Sequence[PullRequest]) -> None: ...

    @abstractmethod
    async def write_pull_request_reviews(self, reviews: Sequence[PullRequestReview]) -> None: ...

    @abstractmethod
    async def write_pull_request_review_comments(
        self, comments: Sequence[PullRequestReviewComment]
    ) -> None: ...

    @abstractmethod
    async def write_repo_comments(self, comments: Sequence[RepoComment]) -> None: ...

    @abstractmethod
    async def write_issue_pipelines(self, pipelines: Sequence[IssuePipeline]) -> None: ...

    # Append-only event log
    @abstractmethod
    async def write_issue_events(self, events: Sequence[IssueEvent]) -> None: ...

    @abstractmethod
    async def write_issue_comment_events(self, events: Sequence[IssueCommentEvent]) -> None: ...

    @abstractmethod
    async def write_pull_request_events(self, events: Sequence[PullRequestEvent]) -> None: ...

    @abstractmethod
    async def write_pull_request_review_comment_events(
        self, events: Sequence[PullRequestReviewCommentEvent]
    ) -> None: ...

    @abstractmethod
    async def write_pull_request_review_events(self, events: Sequence[PullRequestReviewEvent]) -> None: ...

    @abstractmethod
    async def write_repo_comment_events(self, events: Sequence[RepoCommentEvent]) -> None: ...

    # Bookmarks
    @abstractmethod
    async def read_bot_activity(self, org: str, repo: str) -> BotActivity | None: ...

    @abstractmethod
    async def compare_and_set_bot_activity(
        self,
        org: str,
        repo: str,
        field: str,
        expected: datetime | None,
        new: datetime,
    ) -> bool:
        """Sets field to new only while it still equals expected; True if it was set"""

    # Lookups
    @abstractmethod
    def iter_issues_by_repo(self, org: str, repo: str) -> AsyncIterator[Issue]: ...

    @abstractmethod
    async def read_user(self, login: str) -> User | None: ...

    @abstractmethod
    async def read_label(self, org: str, repo: str, name: str) -> Label | None: ...

    @abstractmethod
    async def read_pull_request(self, org: str, repo: str, number: int) -> PullRequest | None: ...


def _primary_key(model: type[SQLModel]) -> list[str]:
    return [column.name for column in model.__table__.primary_key.columns]


def _dedupe_rows(model: type[SQLModel], records: Sequence[SQLModel]) -> list[dict[str, Any]]:
    """One row per key, last record wins; ON CONFLICT rejects a key twice per statement"""
    pk = _primary_key(model)
    rows: dict[tuple, dict[str, Any]] = {}
    for record in records:
        row = record.model_dump()
        rows[tuple(row[name] for name in pk)] = row
    return list(rows.values())


class SQLMirrorStore(MirrorStore):
    """Postgres store; each operation commits in its own session"""

    BATCH_SIZE: int = 500

    def __init__(self, session_factory):
        self._session_factory = session_factory

    async def _run(self, description: str, *statements: sa.Executable) -> list[Any]:
        results = []
        async with self._session_factory() as session:
            try:
                for statement in statements:
                    results.append(await session.execute(statement))
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(f"Store operation failed ({description}): {e}", extra={"operation": description})
                raise StoreError(f"unable to {description}: {e}") from e
        return results

    def _upsert_statements(
        self, model: type[SQLModel], records: Sequence[SQLModel], update: bool = True
    ) -> list[sa.Executable]:
        rows = _dedupe_rows(model, records)
        pk = _primary_key(model)
        updatable = [c.name for c in model.__table__.columns if c.name not in pk]

        statements = []
        for start in range(0, len(rows), self.BATCH_SIZE):
            statement = pg_insert(model).values(rows[start : start + self.BATCH_SIZE])
            if update and updatable:
                statement = statement.on_conflict_do_update(
                    index_elements=pk,
                    set_={name: statement.excluded[name] for name in updatable},
                )
            else:
                statement = statement.on_conflict_do_nothing(index_elements=pk)
            statements.append(statement)
        return statements

    async def _upsert(self, model: type[SQLModel], records: Sequence[SQLModel], update: bool = True) -> None:
        if not records:
            return
        await self._run(f"write {model.__tablename__}", *self._upsert_statements(model, records, update))
        logger.debug(f"Upserted {len(records)} rows into {model.__tablename__}")

    async def _replace(
        self, model: type[SQLModel], scope: sa.ColumnElement[bool], records: Sequence[SQLModel]
    ) -> None:
        """Deletes every row in scope and inserts records in the same transaction"""
        statements: list[sa.Executable] = [sa.delete(model).where(scope)]
        if records:
            statements.extend(self._upsert_statements(model, records))
        await self._run(f"replace {model.__tablename__}", *statements)
        logger.debug(f"Replaced {model.__tablename__} with {len(records)} rows")

    async def write_orgs(self, orgs: Sequence[Org]) -> None:
        keep = [org.org_login for org in orgs]
        await self._replace(Org, Org.org_login.not_in(keep), orgs)

    async def write_repos(self, repos: Sequence[Repo]) -> None:
        keep = [(repo.org_login, repo.repo_name) for repo in repos]
        await self._replace(Repo, sa.tuple_(Repo.org_login, Repo.repo_name).not_in(keep), repos)

    async def write_all_members(self, org: str, members: Sequence[Member]) -> None:
        await self._replace(Member, Member.org_login == org, members)

    async def write_all_maintainers(self, org: str, maintainers: Sequence[Maintainer]) -> None:
        await self._replace(Maintainer, Maintainer.org_login == org, maintainers)

    async def write_users(self, users: Sequence[User]) -> None:
        await self._upsert(User, users)

    async def write_labels(self, labels: Sequence[Label]) -> None:
        await self._upsert(Label, labels)

    async def write_issues(self, issues: Sequence[Issue]) -> None:
        await self._upsert(Issue, issues)

    async def write_issue_comments(self, comments: Sequence[IssueComment]) -> None:
        await self._upsert(IssueComment, comments)

    async def write_pull_requests(self, prs: Sequence[PullRequest]) -> None:
        await self._upsert(PullRequest, prs)

    async def write_pull_request_reviews(self, reviews: Sequence[PullRequestReview]) -> None:
        await self._upsert(PullRequestReview, reviews)

    async def write_pull_request_review_comments(self, comments: Sequence[PullRequestReviewComment]) -> None:
        await self._upsert(PullRequestReviewComment, comments)

    async def write_repo_comments(self, comments: Sequence[RepoComment]) -> None:
        await self._upsert(RepoComment, comments)

    async def write_issue_pipelines(self, pipelines: Sequence[IssuePipeline]) -> None:
        await self._upsert(IssuePipeline, pipelines)

    async def write_issue_events(self, events: Sequence[IssueEvent]) -> None:
        await self._upsert(IssueEvent, events, update=False)

    async def write_issue_comment_events(self, events: Sequence[IssueCommentEvent]) -> None:
        await self._upsert(IssueCommentEvent, events, update=False)

    async def write_pull_request_events(self, events: Sequence[PullRequestEvent]) -> None:
        await self._upsert(PullRequestEvent, events, update=False)

    async def write_pull_request_review_comment_events(
        self, events: Sequence[PullRequestReviewCommentEvent]
    ) -> None:
        await self._upsert(PullRequestReviewCommentEvent, events, update=False)

    async def write_pull_request_review_events(self, events: Sequence[PullRequestReviewEvent]) -> None:
        await self._upsert(PullRequestReviewEvent, events, update=False)

    async def write_repo_comment_events(self, events: Sequence[RepoCommentEvent]) -> None:
        await self._upsert(RepoCommentEvent, events, update=False)

    async def read_bot_activity(self, org: str, repo: str) -> BotActivity | None:
        async with self._session_factory() as session:
            try:
                return await session.get(BotActivity, (org, repo))
            except SQLAlchemyError as e:
                raise StoreError(f"unable to read bot activity for {org}/{repo}: {e}") from e

    async def compare_and_set_bot_activity(
        self,
        org: str,
        repo: str,
        field: str,
        expected: datetime | None,
        new: datetime,
    ) -> bool:
        if field not in BOT_ACTIVITY_FIELDS:
            raise ValueError(f"unknown bot activity field {field}")

        column = BotActivity.__table__.c[field]
        statement = pg_insert(BotActivity).values(org_login=org, repo_name=repo, **{field: new})
        statement = statement.on_conflict_do_update(
            index_elements=["org_login", "repo_name"],
            set_={field: statement.excluded[field]},
            where=column.is_not_distinct_from(expected),
        )

        (result,) = await self._run(f"advance {field} for {org}/{repo}", statement)
        return (result.rowcount or 0) > 0

    async def iter_issues_by_repo(self, org: str, repo: str) -> AsyncIterator[Issue]:
        statement = (
            select(Issue)
            .where(Issue.org_login == org, Issue.repo_name == repo)
            .order_by(Issue.issue_number)
        )
        async with self._session_factory() as session:
            try:
                result = await session.stream_scalars(statement)
                async for issue in result:
                    yield issue
            except SQLAlchemyError as e:
                raise StoreError(f"unable to read issues from repo {org}/{repo}: {e}") from e

    async def read_user(self, login: str) -> User | None:
        return await self._get(User, login, f"user {login}")

    async def read_label(self, org: str, repo: str, name: str) -> Label | None:
        return await self._get(Label, (org, repo, name), f"label {name} in {org}/{repo}")

    async def read_pull_request(self, org: str, repo: str, number: int) -> PullRequest | None:
        return await self._get(PullRequest, (org, repo, number), f"pull request {org}/{repo}#{number}")

    async def _get(self, model: type[SQLModel], key: Any, description: str) -> Any:
        async with self._session_factory() as session:
            try:
                return await session.get(model, key)
            except SQLAlchemyError as e:
                raise StoreError(f"unable to read {description}: {e}") from e
