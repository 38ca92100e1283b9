"""Application settings and configuration"""

from typing import Optional

from pydantic_settings import BaseSettings

from dashboard.crawlers.github.errors import ConfigError

MISSING_CREDENTIALS_MESSAGE = "Missing GITHUB_TOKEN or GITHUB_USERNAME."


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "GitHub Dashboard"
    APP_VERSION: str = "1.0.0"
    LOG_LEVEL: str = "INFO"

    # GitHub account
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_USERNAME: Optional[str] = None

    # GitHub API
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_GRAPHQL_URL: str = "https://api.github.com/graphql"
    USER_AGENT: str = "github-management-system"

    # GitHub client resilience controls
    GITHUB_TIMEOUT_SECONDS: float = 30.0
    GITHUB_MAX_RETRIES: int = 2
    GITHUB_BACKOFF_BASE_SECONDS: float = 0.5
    GITHUB_RATE_LIMIT_MAX_WAIT_SECONDS: float = 15.0
    GITHUB_RATE_LIMIT_BUFFER_SECONDS: float = 0.25
    GITHUB_CONCURRENCY: int = 4

    # Pagination
    GITHUB_PAGE_SIZE: int = 100
    GITHUB_MAX_REPO_PAGES: int = 20
    GITHUB_MAX_ITEM_PAGES: int = 5
    GITHUB_COMMITS_PER_REPO: int = 20
    GITHUB_CONTEXT_CONCURRENCY: int = 3

    # Storage
    CACHE_DIR: str = ".cache/github-dashboard"
    DATA_DIR: str = "data"
    DATABASE_URL: Optional[str] = None

    # Cache TTLs (seconds)
    CACHE_TTL_REPOS: int = 300
    CACHE_TTL_ISSUES: int = 300
    CACHE_TTL_PRS: int = 300
    CACHE_TTL_COMMITS: int = 3600
    CACHE_TTL_STATS: int = 300
    CACHE_TTL_LANGUAGES: int = 300
    CACHE_TTL_TIMELINE: int = 3600
    CACHE_TTL_REPO_CONTEXT: int = 600

    # LLM summaries (OpenAI)
    OPENAI_API_KEY: Optional[str] = None
    SUMMARY_MODEL: str = "gpt-4o-mini"
    SUMMARY_BATCH_SIZE: int = 3

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env

    @property
    def has_credentials(self) -> bool:
        return bool(self.GITHUB_TOKEN and self.GITHUB_USERNAME)

    def require_credentials(self) -> tuple[str, str]:
        """Return (token, username) or fail with the user-visible config error."""
        if not self.has_credentials:
            raise ConfigError(MISSING_CREDENTIALS_MESSAGE)
        return str(self.GITHUB_TOKEN), str(self.GITHUB_USERNAME)
