from datetime import datetime
from typing import List, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY
from sqlmodel import Column, Field, SQLModel

from ghmirror_database.models.mirror import SCHEMA


class BotActivity(SQLModel, table=True):
    """Per-repository sync bookmarks; NULL means the kind was never synced."""

    __tablename__ = "bot_activity"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)

    last_issue_sync_start: Optional[datetime] = Field(
        default=None,
        sa_column=Column(sa.DateTime(timezone=True), nullable=True),
    )
    last_issue_comment_sync_start: Optional[datetime] = Field(
        default=None,
        sa_column=Column(sa.DateTime(timezone=True), nullable=True),
    )
    last_pull_request_review_comment_sync_start: Optional[datetime] = Field(
        default=None,
        sa_column=Column(sa.DateTime(timezone=True), nullable=True),
    )


class Member(SQLModel, table=True):
    __tablename__ = "members"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    user_login: str = Field(primary_key=True)


class Maintainer(SQLModel, table=True):
    __tablename__ = "maintainers"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    user_login: str = Field(primary_key=True)

    # "<repo>/<path>" entries the user can review or approve
    paths: List[str] = Field(
        default_factory=list,
        sa_column=Column(ARRAY(sa.String), nullable=False, server_default="{}"),
    )


class IssuePipeline(SQLModel, table=True):
    __tablename__ = "issue_pipelines"
    __table_args__ = {"schema": SCHEMA}

    org_login: str = Field(primary_key=True)
    repo_name: str = Field(primary_key=True)
    issue_number: int = Field(primary_key=True)
    pipeline: str
