from datetime import datetime
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Column, Field, SQLModel

SCHEMA = "mirror"


def _string_array() -> Column:
    return Column(ARRAY(sa.String), nullable=False, server_default="{}")


def _timestamp(index: bool = False) -> Column:
    return Column(sa.DateTime(timezone=True), nullable=True, index=index)


class Org(SQLModel, table=True):
    __tablename__ = "orgs"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    name: Optional[str] = Field(default=None)
    description: Optional[str] = Field(default=None)
    company: Optional[str] = Field(default=None)
    avatar_url: Optional[str] = Field(default=None)


class Repo(SQLModel, table=True):
    __tablename__ = "repos"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)

    # GitHub's numeric repository id; ZenHub addresses repositories by it
    repo_number: int = Field(index=True)
    description: Optional[str] = Field(default=None)
    default_branch: str = Field(default="master")
    is_archived: bool = Field(default=False)
    is_private: bool = Field(default=False)


class User(SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = {"schema": SCHEMA}

    user_login: str = Field(primary_key=True)

    # Empty when only a stub was observed in a listing payload
    name: str = Field(default="")
    company: Optional[str] = Field(default=None)
    avatar_url: Optional[str] = Field(default=None)
    email: Optional[str] = Field(default=None)


class Label(SQLModel, table=True):
    __tablename__ = "labels"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    label_name: str = Field(primary_key=True)
    description: Optional[str] = Field(default=None)
    color: Optional[str] = Field(default=None)


class Issue(SQLModel, table=True):
    __tablename__ = "issues"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    issue_number: int = Field(primary_key=True)

    title: str = Field(default="")
    body: str = Field(default="")
    labels: List[str] = Field(default_factory=list, sa_column=_string_array())
    created_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    updated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp(index=True))
    closed_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    state: str = Field(default="open", index=True)
    author: str = Field(default="")
    assignees: List[str] = Field(default_factory=list, sa_column=_string_array())


class IssueComment(SQLModel, table=True):
    __tablename__ = "issue_comments"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    issue_number: int = Field(primary_key=True)
    issue_comment_id: int = Field(primary_key=True)

    body: str = Field(default="")
    created_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    updated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    author: str = Field(default="")


class PullRequest(SQLModel, table=True):
    __tablename__ = "pull_requests"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)

    title: str = Field(default="")
    body: str = Field(default="")
    labels: List[str] = Field(default_factory=list, sa_column=_string_array())
    created_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    updated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp(index=True))
    closed_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    merged_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    state: str = Field(default="open", index=True)
    author: str = Field(default="")
    assignees: List[str] = Field(default_factory=list, sa_column=_string_array())
    requested_reviewers: List[str] = Field(default_factory=list, sa_column=_string_array())
    files: List[str] = Field(default_factory=list, sa_column=_string_array())


class PullRequestReview(SQLModel, table=True):
    __tablename__ = "pull_request_reviews"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)
    pull_request_review_id: int = Field(primary_key=True)

    body: str = Field(default="")
    submitted_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    author: str = Field(default="")
    state: str = Field(default="")


class PullRequestReviewComment(SQLModel, table=True):
    __tablename__ = "pull_request_review_comments"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    pull_request_number: int = Field(primary_key=True)
    pull_request_review_comment_id: int = Field(primary_key=True)

    body: str = Field(default="")
    created_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    updated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    author: str = Field(default="")


class RepoComment(SQLModel, table=True):
    __tablename__ = "repo_comments"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    comment_id: int = Field(primary_key=True)

    body: str = Field(default="")
    created_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    updated_at: Optional[datetime] = Field(default=None, sa_column=_timestamp())
    author: str = Field(default="")
    commit_id: Optional[str] = Field(default=None)
    path: Optional[str] = Field(default=None)
