"""Normalizes repository event payloads into append-only event records.

Each wire-level event type maps to one normalizer in EVENT_NORMALIZERS. Types
without a normalizer are ignored; a malformed payload for a known type is
logged and skipped so the rest of the page still lands.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any, Union

from ghmirror_database.models import (
    IssueCommentEvent,
    IssueEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    RepoCommentEvent,
)

from .converters import parse_timestamp

logger = logging.getLogger(__name__)

EventRecord = Union[
    IssueEvent,
    IssueCommentEvent,
    PullRequestEvent,
    PullRequestReviewCommentEvent,
    PullRequestReviewEvent,
    RepoCommentEvent,
]

Normalizer = Callable[[str, str, dict[str, Any]], EventRecord]


class MalformedEventError(ValueError):
    pass


def _created_at(event: dict[str, Any]) -> datetime:
    created_at = parse_timestamp(event.get("created_at"))
    if created_at is None:
        raise MalformedEventError(f"event {event.get('id')} has no usable created_at")
    return created_at


def _actor(event: dict[str, Any]) -> str:
    return (event.get("actor") or {}).get("login") or ""


def _action(payload: dict[str, Any]) -> str:
    return payload.get("action") or payload.get("event") or ""


def _issue_event(org: str, repo: str, event: dict[str, Any]) -> IssueEvent:
    payload = event["payload"]
    return IssueEvent(
        org_login=org,
        repo_name=repo,
        issue_number=int(payload["issue"]["number"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload),
    )


def _issue_comment_event(org: str, repo: str, event: dict[str, Any]) -> IssueCommentEvent:
    payload = event["payload"]
    return IssueCommentEvent(
        org_login=org,
        repo_name=repo,
        issue_number=int(payload["issue"]["number"]),
        issue_comment_id=int(payload["comment"]["id"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload),
    )


def _pull_request_event(org: str, repo: str, event: dict[str, Any]) -> PullRequestEvent:
    payload = event["payload"]
    return PullRequestEvent(
        org_login=org,
        repo_name=repo,
        pull_request_number=int(payload["pull_request"]["number"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload),
    )


def _pull_request_review_comment_event(
    org: str, repo: str, event: dict[str, Any]
) -> PullRequestReviewCommentEvent:
    payload = event["payload"]
    return PullRequestReviewCommentEvent(
        org_login=org,
        repo_name=repo,
        pull_request_number=int(payload["pull_request"]["number"]),
        pull_request_review_comment_id=int(payload["comment"]["id"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload),
    )


def _pull_request_review_event(org: str, repo: str, event: dict[str, Any]) -> PullRequestReviewEvent:
    payload = event["payload"]
    return PullRequestReviewEvent(
        org_login=org,
        repo_name=repo,
        pull_request_number=int(payload["pull_request"]["number"]),
        pull_request_review_id=int(payload["review"]["id"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload),
    )


def _commit_comment_event(org: str, repo: str, event: dict[str, Any]) -> RepoCommentEvent:
    payload = event["payload"]
    return RepoCommentEvent(
        org_login=org,
        repo_name=repo,
        repo_comment_id=int(payload["comment"]["id"]),
        created_at=_created_at(event),
        actor=_actor(event),
        action=_action(payload) or "created",
    )


EVENT_NORMALIZERS: dict[str, Normalizer] = {
    "IssuesEvent": _issue_event,
    "IssueEvent": _issue_event,
    "IssueCommentEvent": _issue_comment_event,
    "PullRequestEvent": _pull_request_event,
    "PullRequestReviewCommentEvent": _pull_request_review_comment_event,
    "PullRequestCommentEvent": _pull_request_review_comment_event,
    "PullRequestReviewEvent": _pull_request_review_event,
    "CommitCommentEvent": _commit_comment_event,
}


def normalize_event(org: str, repo: str, event: dict[str, Any]) -> EventRecord | None:
    """Returns None for unknown types and for payloads that fail to parse"""
    event_type = event.get("type") or ""
    normalizer = EVENT_NORMALIZERS.get(event_type)
    if normalizer is None:
        logger.debug(f"Ignoring event type {event_type!r} in {org}/{repo}")
        return None

    try:
        return normalizer(org, repo, event)
    except (KeyError, TypeError, ValueError) as e:
        logger.error(
            f"unable to parse payload for {event_type} {event.get('id')} in {org}/{repo}: {e}",
            extra={"org": org, "repo": repo, "event_type": event_type},
        )
        return None


def convert_issue_timeline_event(org: str, repo: str, event: dict[str, Any]) -> IssueEvent:
    """Converts an item of the /issues/events listing, which has no payload envelope"""
    return IssueEvent(
        org_login=org,
        repo_name=repo,
        issue_number=int((event.get("issue") or {}).get("number") or 0),
        created_at=_created_at(event),
        actor=_actor(event),
        action=event.get("event") or "",
    )


class EventBatch:
    """Groups normalized records by kind so each kind is written with one call"""

    def __init__(self) -> None:
        self._groups: dict[type, list[EventRecord]] = defaultdict(list)
        self.skipped = 0

    def extend(self, org: str, repo: str, events: Iterable[dict[str, Any]]) -> None:
        for event in events:
            record = normalize_event(org, repo, event)
            if record is None:
                self.skipped += 1
                continue
            self._groups[type(record)].append(record)

    def extend_issue_events(self, org: str, repo: str, events: Iterable[dict[str, Any]]) -> None:
        for event in events:
            try:
                record = convert_issue_timeline_event(org, repo, event)
            except (KeyError, TypeError, ValueError) as e:
                logger.error(
                    f"unable to parse issue event {event.get('id')} in {org}/{repo}: {e}",
                    extra={"org": org, "repo": repo},
                )
                self.skipped += 1
                continue
            self._groups[IssueEvent].append(record)

    def groups(self) -> list[tuple[type, list[EventRecord]]]:
        return [(kind, records) for kind, records in self._groups.items() if records]

    def __len__(self) -> int:
        return sum(len(records) for records in self._groups.values())
