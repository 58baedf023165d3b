"""Configuration management for the image updater."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from image_updater.constants import (
    CHECK_CACHE_TTL_SECONDS,
    DEFAULT_OVERALL_TIMEOUT_MS,
    GITHUB_API_BASE,
    HEALTH_CHECK_INTERVAL_MS,
    HTTP_USER_AGENT,
    REGISTRY_API_BASE,
    UPDATE_LOCK_TIMEOUT_SECONDS,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IMAGE_UPDATER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # Version checks
    overall_timeout_ms: int = Field(
        default=DEFAULT_OVERALL_TIMEOUT_MS, gt=0, description="Default overall check timeout"
    )
    check_cache_ttl_seconds: int = Field(
        default=CHECK_CACHE_TTL_SECONDS, ge=0, description="Check result cache TTL"
    )

    # Updates
    update_lock_timeout_seconds: int = Field(
        default=UPDATE_LOCK_TIMEOUT_SECONDS,
        gt=0,
        description="Age after which an update lock is considered stale",
    )
    health_check_interval_ms: int = Field(
        default=HEALTH_CHECK_INTERVAL_MS, gt=0, description="Container status poll interval"
    )

    # External tools and APIs
    docker_binary: str = Field(default="docker", description="Docker CLI executable")
    git_binary: str = Field(default="git", description="Git executable")
    registry_api_base: str = Field(
        default=REGISTRY_API_BASE, description="Docker Hub compatible registry API base URL"
    )
    github_api_base: str = Field(default=GITHUB_API_BASE, description="GitHub API base URL")
    http_user_agent: str = Field(default=HTTP_USER_AGENT, description="User-Agent for HTTP calls")

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
