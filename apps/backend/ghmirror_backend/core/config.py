from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RepoConfig(BaseModel):
    name: str


class OrgConfig(BaseModel):
    name: str
    # Empty means every repository the org owns
    repos: list[RepoConfig] = Field(default_factory=list)


class Settings(BaseSettings):
    redis_url: str = ""

    github_token: str = ""
    github_api_url: str = "https://api.github.com"
    raw_content_base_url: str = "https://raw.githubusercontent.com"

    zenhub_token: str = ""
    zenhub_api_url: str = "https://api.zenhub.com"

    # JSON list, e.g. ORGS='[{"name": "istio", "repos": [{"name": "istio"}]}]'
    orgs: list[OrgConfig] = Field(default_factory=list)

    # Comma separated filter tokens; empty syncs everything
    sync_filter: str = ""

    # Repositories of one org processed at the same time
    sync_repo_concurrency: int = 1

    zenhub_pipeline_batch_size: int = 100

    # Read-through cache entries (users, labels, pull requests)
    cache_ttl_seconds: int = 3600

    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
