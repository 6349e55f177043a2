"""Pure conversions from GitHub REST payloads to mirror records.

Each converter returns the record plus every user the payload mentions, so
callers can register them without a second pass. Listing endpoints only embed
partial user objects; those come back with an empty name.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from ghmirror_database.models import (
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

logger = logging.getLogger(__name__)

Payload = dict[str, Any]


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError, TypeError):
        logger.warning(f"Unexpected timestamp format: {value!r}")
        return None


def number_from_url(url: str | None) -> int:
    """Extracts the trailing issue or pull request number from an API URL"""
    if not url:
        return 0
    try:
        return int(url.rstrip("/").rsplit("/", 1)[-1])
    except ValueError:
        return 0


def _login(user: Payload | None) -> str:
    return (user or {}).get("login") or ""


def _label_names(labels: list[Payload] | None) -> list[str]:
    return [label["name"] for label in labels or [] if label and label.get("name")]


def _logins(users: list[Payload] | None) -> list[str]:
    return [u["login"] for u in users or [] if u and u.get("login")]


def _users(*candidates: Payload | None) -> list[User]:
    return [convert_user(u) for u in candidates if u and u.get("login")]


def convert_user(user: Payload) -> User:
    return User(
        user_login=user["login"],
        name=user.get("name") or "",
        company=user.get("company"),
        avatar_url=user.get("avatar_url"),
        email=user.get("email"),
    )


def convert_org(org: Payload) -> Org:
    return Org(
        org_login=org["login"],
        name=org.get("name"),
        description=org.get("description"),
        company=org.get("company"),
        avatar_url=org.get("avatar_url"),
    )


def convert_repo(repo: Payload) -> Repo:
    return Repo(
        org_login=_login(repo.get("owner")),
        repo_name=repo["name"],
        repo_number=int(repo["id"]),
        description=repo.get("description"),
        default_branch=repo.get("default_branch") or "master",
        is_archived=bool(repo.get("archived", False)),
        is_private=bool(repo.get("private", False)),
    )


def convert_label(org: str, repo: str, label: Payload) -> Label:
    return Label(
        org_login=org,
        repo_name=repo,
        label_name=label["name"],
        description=label.get("description"),
        color=label.get("color"),
    )


def convert_issue(org: str, repo: str, issue: Payload) -> tuple[Issue, list[User]]:
    record = Issue(
        org_login=org,
        repo_name=repo,
        issue_number=int(issue["number"]),
        title=issue.get("title") or "",
        body=issue.get("body") or "",
        labels=_label_names(issue.get("labels")),
        created_at=parse_timestamp(issue.get("created_at")),
        updated_at=parse_timestamp(issue.get("updated_at")),
        closed_at=parse_timestamp(issue.get("closed_at")),
        state=issue.get("state") or "open",
        author=_login(issue.get("user")),
        assignees=_logins(issue.get("assignees")),
    )
    return record, _users(issue.get("user"), *(issue.get("assignees") or []))


def convert_issue_comment(
    org: str, repo: str, issue_number: int, comment: Payload
) -> tuple[IssueComment, list[User]]:
    record = IssueComment(
        org_login=org,
        repo_name=repo,
        issue_number=issue_number,
        issue_comment_id=int(comment["id"]),
        body=comment.get("body") or "",
        created_at=parse_timestamp(comment.get("created_at")),
        updated_at=parse_timestamp(comment.get("updated_at")),
        author=_login(comment.get("user")),
    )
    return record, _users(comment.get("user"))


def convert_pull_request(
    org: str, repo: str, pr: Payload, files: list[str]
) -> tuple[PullRequest, list[User]]:
    record = PullRequest(
        org_login=org,
        repo_name=repo,
        pull_request_number=int(pr["number"]),
        title=pr.get("title") or "",
        body=pr.get("body") or "",
        labels=_label_names(pr.get("labels")),
        created_at=parse_timestamp(pr.get("created_at")),
        updated_at=parse_timestamp(pr.get("updated_at")),
        closed_at=parse_timestamp(pr.get("closed_at")),
        merged_at=parse_timestamp(pr.get("merged_at")),
        state=pr.get("state") or "open",
        author=_login(pr.get("user")),
        assignees=_logins(pr.get("assignees")),
        requested_reviewers=_logins(pr.get("requested_reviewers")),
        files=list(files),
    )
    users = _users(
        pr.get("user"),
        *(pr.get("assignees") or []),
        *(pr.get("requested_reviewers") or []),
    )
    return record, users


def convert_pull_request_review(
    org: str, repo: str, pr_number: int, review: Payload
) -> tuple[PullRequestReview, list[User]]:
    record = PullRequestReview(
        org_login=org,
        repo_name=repo,
        pull_request_number=pr_number,
        pull_request_review_id=int(review["id"]),
        body=review.get("body") or "",
        submitted_at=parse_timestamp(review.get("submitted_at")),
        author=_login(review.get("user")),
        state=review.get("state") or "",
    )
    return record, _users(review.get("user"))


def convert_pull_request_review_comment(
    org: str, repo: str, pr_number: int, comment: Payload
) -> tuple[PullRequestReviewComment, list[User]]:
    record = PullRequestReviewComment(
        org_login=org,
        repo_name=repo,
        pull_request_number=pr_number,
        pull_request_review_comment_id=int(comment["id"]),
        body=comment.get("body") or "",
        created_at=parse_timestamp(comment.get("created_at")),
        updated_at=parse_timestamp(comment.get("updated_at")),
        author=_login(comment.get("user")),
    )
    return record, _users(comment.get("user"))


def convert_repo_comment(org: str, repo: str, comment: Payload) -> tuple[RepoComment, list[User]]:
    record = RepoComment(
        org_login=org,
        repo_name=repo,
        comment_id=int(comment["id"]),
        body=comment.get("body") or "",
        created_at=parse_timestamp(comment.get("created_at")),
        updated_at=parse_timestamp(comment.get("updated_at")),
        author=_login(comment.get("user")),
        commit_id=comment.get("commit_id"),
        path=comment.get("path"),
    )
    return record, _users(comment.get("user"))
