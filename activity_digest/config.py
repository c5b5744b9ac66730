"""Configuration management for activity-digest."""

import re
from datetime import datetime, time, timedelta
from typing import Literal, Optional

import pytz
from pydantic import Field, field_validator, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from activity_digest.retry import RetryPolicy
from activity_digest.utils import split_csv

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
}

REPO_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+$")


class Settings(BaseSettings):
    """Application settings loaded from environment variables, .env and config.json."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        json_file="config.json",
        json_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Repository source
    mode: Literal["organization", "user", "topics", "file", "list"] = Field(
        default="organization",
        description="Where the repository list comes from",
    )
    organization: str = Field(
        default="",
        description="GitHub organization name (mode=organization)",
    )
    github_user: str = Field(
        default="",
        description="GitHub username (mode=user)",
    )
    topics: str = Field(
        default="",
        description="Comma-separated list of topics (mode=topics)",
    )
    repositories_file: str = Field(
        default="",
        description="File with one owner/repo per line (mode=file)",
    )
    repos: str = Field(
        default="",
        description="Comma-separated list of repositories in owner/repo format (mode=list)",
    )

    # Repository filters
    include_repos: str = Field(
        default="",
        description="Comma-separated substrings; only matching repositories are kept",
    )
    exclude_repos: str = Field(
        default="",
        description="Comma-separated substrings; matching repositories are dropped",
    )
    only_public: bool = Field(default=False, description="Keep only public repositories")
    only_private: bool = Field(default=False, description="Keep only private repositories")
    max_repos: int = Field(
        default=0,
        description="Maximum number of repositories to process (0 = unlimited)",
        ge=0,
    )

    # Period
    period_days: int = Field(
        default=7,
        description="Number of days to look back",
        ge=1,
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone used to compute the start of the period",
    )

    # GitHub
    github_token: str = Field(
        default="",
        description="GitHub Personal Access Token for API operations",
    )
    strict_rate_limit_detection: bool = Field(
        default=True,
        description=(
            "Treat HTTP 403 as rate limiting only with an exhausted quota or Retry-After; "
            "when false, any 403 carrying X-RateLimit-Reset is waited out"
        ),
    )

    # Collection
    batch_size: int = Field(
        default=10,
        description="Repositories fetched concurrently per batch",
        ge=1,
        le=50,
    )
    max_retries: int = Field(
        default=3,
        description="Retries for failed GitHub calls",
        ge=0,
        le=10,
    )
    retry_initial_delay: float = Field(
        default=1.0,
        description="Initial backoff delay in seconds, doubled on each retry",
        gt=0,
    )
    max_direct_commits: int = Field(
        default=50,
        description="Maximum direct commits per repository",
        ge=0,
    )
    pr_body_max_length: int = Field(
        default=500,
        description="Pull request descriptions are truncated to this many characters",
        ge=0,
    )

    # Cache
    no_cache: bool = Field(default=False, description="Bypass cache and fetch fresh data")
    cache_dir: str = Field(default=".cache", description="Directory for cached activity")
    cache_ttl_minutes: int = Field(
        default=30,
        description="Minutes before cached activity expires",
        ge=1,
    )

    # AI provider
    ai_provider: Literal["anthropic", "openai"] = Field(
        default="anthropic",
        description="LLM provider used for the summary",
    )
    ai_model: str = Field(
        default="",
        description="Model name; defaults to a provider-specific model",
    )
    ai_api_key: str = Field(default="", description="API key for the selected provider")
    anthropic_api_key: str = Field(default="", description="Anthropic API key")
    openai_api_key: str = Field(default="", description="OpenAI API key")
    ai_max_tokens: int = Field(default=4000, description="Maximum tokens to generate", ge=1)
    ai_temperature: float = Field(default=1.0, description="Sampling temperature", ge=0, le=2)
    prompt_template: str = Field(
        default="prompt-template.txt",
        description="Path to a custom prompt template",
    )

    # Output
    archive_dir: str = Field(
        default="archive",
        description="Directory where reports are saved (empty = don't save)",
    )
    language: str = Field(default="English", description="Language of the summary")

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["text", "json"] = Field(
        default="text",
        description="Log output format: 'text' for human-readable, 'json' for structured",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Add config.json with the lowest priority."""
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str) -> str:
        """Validate timezone is a valid IANA timezone name."""
        try:
            pytz.timezone(v)
            return v
        except pytz.UnknownTimeZoneError:
            raise ValueError(f"Invalid timezone: {v}. Must be a valid IANA timezone name.")

    @field_validator("repos")
    @classmethod
    def validate_repo_format(cls, v: str) -> str:
        """Validate repository format is owner/repo."""
        for repo in split_csv(v):
            if not REPO_NAME_PATTERN.match(repo):
                raise ValueError(
                    f"Invalid repository format: {repo}. Must be owner/repo format."
                )
        return v

    @model_validator(mode="after")
    def validate_visibility_filters(self) -> "Settings":
        """Reject filters that would exclude every repository."""
        if self.only_public and self.only_private:
            raise ValueError("only_public and only_private cannot both be set")
        return self

    def check_source(self) -> None:
        """Validate that the selected mode has what it needs.

        Raises:
            ValueError: If the mode's source setting is missing.
        """
        required = {
            "organization": (self.organization, "Organization name is required when mode is 'organization'"),
            "user": (self.github_user, "Username is required when mode is 'user'"),
            "topics": (self.topic_list, "At least one topic is required when mode is 'topics'"),
            "file": (self.repositories_file, "Repository file path is required when mode is 'file'"),
            "list": (self.repo_list, "At least one repository is required when mode is 'list'"),
        }
        value, message = required[self.mode]
        if not value:
            raise ValueError(message)

    @property
    def repo_list(self) -> list[str]:
        """Get list of repositories from comma-separated string."""
        return split_csv(self.repos)

    @property
    def topic_list(self) -> list[str]:
        return split_csv(self.topics)

    @property
    def include_list(self) -> list[str]:
        return split_csv(self.include_repos)

    @property
    def exclude_list(self) -> list[str]:
        return split_csv(self.exclude_repos)

    def get_retry_policy(self) -> RetryPolicy:
        """Retry policy for GitHub calls."""
        return RetryPolicy(
            max_retries=self.max_retries,
            initial_delay=self.retry_initial_delay,
        )

    def get_period(self, now: Optional[datetime] = None) -> tuple[datetime, datetime]:
        """Get the start and end of the collection period.

        The period starts at midnight, period_days before today, in the
        configured timezone.

        Args:
            now: Override for the current time (timezone-aware).

        Returns:
            Tuple of (start, end) as timezone-aware datetimes.
        """
        tz = pytz.timezone(self.timezone)
        end = now.astimezone(tz) if now else datetime.now(tz)
        start_date = end.date() - timedelta(days=self.period_days)
        start = tz.localize(datetime.combine(start_date, time.min))
        return start, end

    def get_llm_config(self) -> dict:
        """Get configuration for the selected LLM provider.

        Returns:
            Dictionary with provider-specific configuration.
        """
        if self.ai_provider == "anthropic":
            api_key = self.ai_api_key or self.anthropic_api_key
        else:  # openai
            api_key = self.ai_api_key or self.openai_api_key
        return {
            "api_key": api_key,
            "model": self.ai_model or DEFAULT_MODELS[self.ai_provider],
            "max_tokens": self.ai_max_tokens,
            "temperature": self.ai_temperature,
        }


def load_settings(**overrides) -> Settings:
    """Load and return application settings.

    Args:
        **overrides: Values that take precedence over every other source,
            typically command-line arguments.

    Returns:
        Settings instance with values from overrides, environment and files.
    """
    return Settings(**overrides)
