"""Configuration loading for the lockstep harness.

This module provides centralized configuration management:
- Load settings from environment variables and .env files
- Validate configuration using pydantic
- Provide typed access to all settings
"""

from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Harness configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Script execution
    probe_delay_ms: int = Field(
        default=100,
        description="Delay in milliseconds before a blocking probe forces the peer's turn",
    )

    # SQLite executor configuration
    sqlite_db_path: str = Field(
        default="./data/lockstep.db",
        description="SQLite database file used by the demonstration scenarios",
    )
    sqlite_busy_timeout_seconds: float = Field(
        default=5.0,
        description="Seconds a statement waits on a locked database before failing",
    )

    # Demonstration scenarios
    ping_pong_rounds: int = Field(
        default=4,
        description="Number of rounds played by the ping-pong scenario",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("probe_delay_ms")
    @classmethod
    def validate_probe_delay(cls, v: int) -> int:
        """Ensure probe delay is positive."""
        if v <= 0:
            raise ValueError("probe_delay_ms must be positive")
        return v

    @field_validator("sqlite_busy_timeout_seconds")
    @classmethod
    def validate_busy_timeout(cls, v: float) -> float:
        """Ensure busy timeout is positive."""
        if v <= 0:
            raise ValueError("sqlite_busy_timeout_seconds must be positive")
        return v

    @field_validator("ping_pong_rounds")
    @classmethod
    def validate_ping_pong_rounds(cls, v: int) -> int:
        """Ensure at least one round is played."""
        if v <= 0:
            raise ValueError("ping_pong_rounds must be positive")
        return v

    @property
    def probe_delay_seconds(self) -> float:
        return self.probe_delay_ms / 1000


def load_settings(env_file: str | None = None) -> Settings:
    """Load harness settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ValidationError: If settings validation fails.
    """
    if env_file:
        return Settings(_env_file=env_file)  # type: ignore[call-arg]
    return Settings()


__all__ = ["Settings", "load_settings"]
