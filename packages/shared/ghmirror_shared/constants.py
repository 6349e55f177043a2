"""
Shared constants for the sync engine and workers, centralized for maintainability
"""

# Filter tokens accepted by the sync job, in bit order
FILTER_TOKENS: tuple[str, ...] = (
    "issues",
    "prs",
    "maintainers",
    "members",
    "labels",
    "zenhub",
    "repocomments",
    "events",
)

# Ownership files consulted for maintainer resolution
CODEOWNERS_PATH: str = "CODEOWNERS"
OWNERS_FILENAME: str = "OWNERS"

# Top-level directories holding vendored third-party code; OWNERS files there
# describe upstream projects, not this repository
VENDORED_DIRECTORIES: frozenset[str] = frozenset({"vendor"})

# GitHub REST list endpoints accept at most 100 items per page
GITHUB_PAGE_SIZE: int = 100

# Issue pipelines are flushed in batches of this size to bound memory
ZENHUB_PIPELINE_BATCH_SIZE: int = 100
