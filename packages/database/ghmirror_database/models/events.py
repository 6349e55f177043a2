"""Append-only event log tables; rows are inserted and never updated"""

from datetime import datetime

import sqlalchemy as sa
from sqlmodel import Column, Field, SQLModel

from ghmirror_database.models.mirror import SCHEMA


def _created_at() -> Column:
    return Column(sa.DateTime(timezone=True), primary_key=True, nullable=False)


class IssueEvent(SQLModel, table=True):
    __tablename__ = "issue_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    issue_number: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)


class IssueCommentEvent(SQLModel, table=True):
    __tablename__ = "issue_comment_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    issue_number: int = Field(primary_key=True)
    issue_comment_id: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)


class PullRequestEvent(SQLModel, table=True):
    __tablename__ = "pull_request_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)


class PullRequestReviewCommentEvent(SQLModel, table=True):
    __tablename__ = "pull_request_review_comment_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)
    pull_request_review_comment_id: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)


class PullRequestReviewEvent(SQLModel, table=True):
    __tablename__ = "pull_request_review_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)
    pull_request_review_id: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)


class RepoCommentEvent(SQLModel, table=True):
    __tablename__ = "repo_comment_events"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    repo_comment_id: int = Field(primary_key=True)
    created_at: datetime = Field(sa_column=_created_at())
    actor: str = Field(primary_key=True)
    action: str = Field(primary_key=True)
