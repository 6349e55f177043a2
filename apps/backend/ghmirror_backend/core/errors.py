"""
Centralized error definitions for the mirror.

Client errors live next to their clients (github_client, zenhub_client) and
derive from MirrorError so callers can catch one base class.
"""


class MirrorError(Exception):
    """Base class for every error raised by the mirror."""


class ConfigurationError(MirrorError):
    """Invalid configuration; raised before any sync work starts."""


class FilterFlagError(ConfigurationError):
    def __init__(self, token: str):
        self.token = token
        super().__init__(f"unknown filter flag {token}")


class StoreError(MirrorError):
    """A durable store operation failed."""


class SyncError(MirrorError):
    """A sync scope (org or repository) failed; the cause is chained."""

    def __init__(self, message: str, org: str | None = None, repo: str | None = None):
        super().__init__(message)
        self.org = org
        self.repo = repo
