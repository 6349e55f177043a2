"""ghmirror_shared - Shared constants for the GitHub mirror."""

from ghmirror_shared.constants import (
    CODEOWNERS_PATH,
    FILTER_TOKENS,
    GITHUB_PAGE_SIZE,
    OWNERS_FILENAME,
    VENDORED_DIRECTORIES,
    ZENHUB_PIPELINE_BATCH_SIZE,
)

__all__ = [
    "CODEOWNERS_PATH",
    "FILTER_TOKENS",
    "GITHUB_PAGE_SIZE",
    "OWNERS_FILENAME",
    "VENDORED_DIRECTORIES",
    "ZENHUB_PIPELINE_BATCH_SIZE",
]
