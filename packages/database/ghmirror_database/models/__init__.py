"""Database models for the GitHub mirror."""

from ghmirror_database.models.activity import BotActivity, IssuePipeline, Maintainer, Member
from ghmirror_database.models.events import (
    IssueCommentEvent,
    IssueEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    RepoCommentEvent,
)
from ghmirror_database.models.mirror import (
    SCHEMA,
    Issue,
    IssueComment,
    Label,
    Org,
    PullRequest,
    PullRequestReview,
    PullRequestReviewComment,
    Repo,
    RepoComment,
    User,
)

__all__ = [
    "SCHEMA",
    # Mirrored entities
    "Org",
    "Repo",
    "User",
    "Label",
    "Issue",
    "IssueComment",
    "PullRequest",
    "PullRequestReview",
    "PullRequestReviewComment",
    "RepoComment",
    # Sync bookkeeping and derived facts
    "BotActivity",
    "Member",
    "Maintainer",
    "IssuePipeline",
    # Event log
    "IssueEvent",
    "IssueCommentEvent",
    "PullRequestEvent",
    "PullRequestReviewCommentEvent",
    "PullRequestReviewEvent",
    "RepoCommentEvent",
]
