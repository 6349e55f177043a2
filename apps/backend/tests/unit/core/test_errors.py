"""Unit tests for the error hierarchy"""

from ghmirror_backend.core.errors import (
    ConfigurationError,
    FilterFlagError,
    MirrorError,
    StoreError,
    SyncError,
)
from ghmirror_backend.ingestion.github_client import GitHubAPIError
from ghmirror_backend.ingestion.zenhub_client import ZenHubAPIError


class TestErrorHierarchy:

    def test_every_error_is_a_mirror_error(self):
        for error_type in (ConfigurationError, StoreError, GitHubAPIError, ZenHubAPIError):
            assert issubclass(error_type, MirrorError)

    def test_filter_flag_error_names_token(self):
        error = FilterFlagError("bogus")
        assert isinstance(error, ConfigurationError)
        assert error.token == "bogus"
        assert str(error) == "unknown filter flag bogus"

    def test_sync_error_carries_scope(self):
        error = SyncError("unable to sync repo acme/widgets", org="acme", repo="widgets")
        assert error.org == "acme"
        assert error.repo == "widgets"

    def test_sync_error_scope_optional(self):
        error = SyncError("unable to enumerate org acme", org="acme")
        assert error.repo is None
