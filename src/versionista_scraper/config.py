"""Configuration settings for the Versionista scraper."""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_12_3) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/56.0.2924.87 Safari/537.36"
)


class SchedulerConfig(BaseModel):
    """Configuration for the outbound request scheduler.

    Three independent throttles apply to every dispatch: an in-flight
    concurrency limit, a fixed-window request cap, and a periodic cooldown
    pause. Transient failures are retried with linear backoff.
    """

    # Concurrency
    max_concurrent_requests: int = Field(
        default=6,
        ge=1,
        le=100,
        description="Maximum requests in flight at once",
    )

    # Cooldown
    sleep_every: int = Field(
        default=40,
        description="Pause after this many completed requests (<= 0 disables)",
    )
    sleep_for_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Length of the periodic cooldown pause",
    )

    # Rate window
    max_per_window: int = Field(
        default=0,
        ge=0,
        description="Maximum dispatches per rate window (0 = unlimited)",
    )
    window_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Length of the fixed rate window",
    )

    # Retries
    max_retries: int = Field(
        default=3,
        ge=0,
        description="Maximum retry attempts per request",
    )
    retry_backoff_seconds: float = Field(
        default=2.0,
        gt=0.0,
        description="Backoff per retry attempt (backoff = this * retry count)",
    )

    @property
    def cooldown_enabled(self) -> bool:
        """Whether periodic cooldown pauses are active."""
        return self.sleep_every > 0

    @property
    def window_limited(self) -> bool:
        """Whether the rate window caps dispatches."""
        return self.max_per_window > 0


class LoggingConfig(BaseModel):
    """Configuration for logging behavior.

    Controls file logging, rotation, and output format.
    """

    log_file: str | None = Field(
        default=None,
        description="Optional path for file logging (enables rotation)",
    )
    rotation: str = Field(
        default="10 MB",
        description="When to rotate log file (e.g., '10 MB', '1 day')",
    )
    retention: str = Field(
        default="7 days",
        description="How long to keep rotated logs",
    )
    serialize: bool = Field(
        default=False,
        description="If True, output JSON format to file",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # --------------------------------------------------------------------------
    # Versionista
    # --------------------------------------------------------------------------
    versionista_email: str = Field(
        default="",
        description="Versionista account e-mail",
    )
    versionista_password: str = Field(
        default="",
        description="Versionista account password",
    )
    base_url: str = Field(
        default="https://versionista.com",
        description="Base URL that relative request URLs resolve against",
    )
    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User-Agent header sent with every request",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-request network timeout",
    )

    # --------------------------------------------------------------------------
    # Application
    # --------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # --------------------------------------------------------------------------
    # Request Scheduling
    # --------------------------------------------------------------------------
    scheduler: SchedulerConfig = Field(
        default_factory=SchedulerConfig,
        description="Request scheduler configuration",
    )

    # --------------------------------------------------------------------------
    # Logging Configuration
    # --------------------------------------------------------------------------
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration (file output, rotation)",
    )

    @property
    def has_credentials(self) -> bool:
        """Whether both login credentials are configured."""
        return bool(self.versionista_email and self.versionista_password)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
