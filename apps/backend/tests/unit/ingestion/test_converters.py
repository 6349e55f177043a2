"""Unit tests for GitHub payload conversion"""

from datetime import UTC, datetime

from ghmirror_backend.ingestion.converters import (
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


def _user(login, name=None):
    data = {"login": login, "avatar_url": f"https://avatars/{login}"}
    if name is not None:
        data["name"] = name
    return data


class TestParseTimestamp:

    def test_parses_z_suffix_as_utc(self):
        assert parse_timestamp("2024-01-01T12:00:00Z") == datetime(2024, 1, 1, 12, tzinfo=UTC)

    def test_none_and_empty_are_none(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("") is None

    def test_malformed_is_none(self):
        assert parse_timestamp("yesterday") is None


class TestNumberFromUrl:

    def test_extracts_trailing_number(self):
        assert number_from_url("https://api.github.com/repos/acme/widgets/issues/17") == 17

    def test_trailing_slash_tolerated(self):
        assert number_from_url("https://api.github.com/repos/acme/widgets/pulls/9/") == 9

    def test_missing_or_non_numeric_is_zero(self):
        assert number_from_url(None) == 0
        assert number_from_url("https://api.github.com/repos/acme/widgets") == 0


class TestSimpleRecords:

    def test_listing_user_has_empty_name(self):
        user = convert_user(_user("alice"))
        assert user.user_login == "alice"
        assert user.name == ""

    def test_full_profile_keeps_name(self):
        user = convert_user({**_user("bob", "Bob B"), "company": "Acme", "email": "bob@acme.io"})
        assert user.name == "Bob B"
        assert user.company == "Acme"
        assert user.email == "bob@acme.io"

    def test_org(self):
        org = convert_org({"login": "acme", "name": "Acme Inc", "description": "d"})
        assert org.org_login == "acme"
        assert org.name == "Acme Inc"

    def test_repo_uses_owner_login_and_numeric_id(self):
        repo = convert_repo(
            {"id": 1234, "name": "widgets", "owner": {"login": "acme"}, "default_branch": "main", "archived": True}
        )
        assert (repo.org_login, repo.repo_name, repo.repo_number) == ("acme", "widgets", 1234)
        assert repo.default_branch == "main"
        assert repo.is_archived is True

    def test_repo_default_branch_falls_back_to_master(self):
        repo = convert_repo({"id": 1, "name": "w", "owner": {"login": "acme"}})
        assert repo.default_branch == "master"

    def test_label(self):
        label = convert_label("acme", "widgets", {"name": "kind/bug", "color": "ff0000"})
        assert (label.org_login, label.repo_name, label.label_name) == ("acme", "widgets", "kind/bug")
        assert label.color == "ff0000"


class TestIssueConversion:

    def test_issue_fields_and_discovered_users(self):
        payload = {
            "number": 7,
            "title": "Crash",
            "body": None,
            "labels": [{"name": "bug"}, {"name": "p1"}],
            "state": "closed",
            "created_at": "2024-01-01T00:00:00Z",
            "updated_at": "2024-01-02T00:00:00Z",
            "closed_at": "2024-01-03T00:00:00Z",
            "user": _user("alice"),
            "assignees": [_user("bob"), _user("carol")],
        }

        issue, users = convert_issue("acme", "widgets", payload)

        assert issue.issue_number == 7
        assert issue.body == ""
        assert issue.labels == ["bug", "p1"]
        assert issue.author == "alice"
        assert issue.assignees == ["bob", "carol"]
        assert issue.closed_at == datetime(2024, 1, 3, tzinfo=UTC)
        assert [u.user_login for u in users] == ["alice", "bob", "carol"]

    def test_issue_without_user_discovers_nobody(self):
        issue, users = convert_issue("acme", "widgets", {"number": 1, "user": None})
        assert issue.author == ""
        assert users == []

    def test_issue_comment(self):
        comment, users = convert_issue_comment(
            "acme", "widgets", 7, {"id": 99, "body": "hi", "user": _user("dave")}
        )
        assert (comment.issue_number, comment.issue_comment_id) == (7, 99)
        assert comment.author == "dave"
        assert [u.user_login for u in users] == ["dave"]


class TestPullRequestConversion:

    def test_pull_request_carries_files_and_reviewers(self):
        payload = {
            "number": 12,
            "title": "Add feature",
            "state": "open",
            "updated_at": "2024-02-01T00:00:00Z",
            "merged_at": None,
            "user": _user("erin"),
            "assignees": [],
            "requested_reviewers": [_user("frank")],
            "labels": [],
        }

        pr, users = convert_pull_request("acme", "widgets", payload, ["a.py", "b/c.py"])

        assert pr.pull_request_number == 12
        assert pr.files == ["a.py", "b/c.py"]
        assert pr.requested_reviewers == ["frank"]
        assert pr.merged_at is None
        assert {u.user_login for u in users} == {"erin", "frank"}

    def test_review(self):
        review, users = convert_pull_request_review(
            "acme", "widgets", 12, {"id": 5, "state": "APPROVED", "submitted_at": "2024-02-02T00:00:00Z", "user": _user("gina")}
        )
        assert review.pull_request_review_id == 5
        assert review.state == "APPROVED"
        assert users[0].user_login == "gina"

    def test_review_comment(self):
        comment, _ = convert_pull_request_review_comment(
            "acme", "widgets", 12, {"id": 8, "body": "nit", "user": _user("hank")}
        )
        assert (comment.pull_request_number, comment.pull_request_review_comment_id) == (12, 8)

    def test_repo_comment(self):
        comment, users = convert_repo_comment(
            "acme", "widgets", {"id": 3, "commit_id": "abc123", "path": "README.md", "user": _user("ivy")}
        )
        assert comment.comment_id == 3
        assert comment.commit_id == "abc123"
        assert comment.path == "README.md"
        assert users[0].user_login == "ivy"
