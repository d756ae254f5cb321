"""Configuration management for tickcron."""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# tickcron config directory
TICKCRON_DIR = Path.home() / ".tickcron"
TICKCRON_ENV_FILE = TICKCRON_DIR / ".env"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TICKCRON_",
        # Later files override earlier ones
        env_file=(str(TICKCRON_ENV_FILE), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Scheduler settings
    check_interval: float = Field(
        default=1.0,
        gt=0,
        description="Seconds between scheduler ticks",
    )
    timezone: str = Field(
        default="UTC",
        description="Timezone cron expressions are evaluated in",
    )
    default_timeout_ms: int = Field(
        default=30_000,
        gt=0,
        description="Deadline for jobs created without an explicit timeout",
    )
    strict_schedules: bool = Field(
        default=False,
        description="Reject unsupported fields and out-of-range values when adding jobs",
    )
    storage_path: Path | None = Field(
        default=None,
        description="Path to the job storage file",
    )

    # Executor settings
    executor: Literal["command", "simulated"] = Field(
        default="command",
        description="How job actions are run: as shell commands or simulated",
    )
    command_shell: bool = Field(
        default=True,
        description="Run commands through the shell instead of executing them directly",
    )
    simulated_min_delay_ms: int = Field(
        default=500,
        ge=0,
        description="Minimum duration of a simulated run",
    )
    simulated_max_delay_ms: int = Field(
        default=3000,
        ge=0,
        description="Maximum duration of a simulated run",
    )
    simulated_failure_rate: float = Field(
        default=0.1,
        ge=0,
        le=1,
        description="Probability that a simulated run fails",
    )

    def get_storage_path(self) -> Path:
        """Get the storage path, using default if not set."""
        if self.storage_path:
            return self.storage_path
        return TICKCRON_DIR / "jobs.json"

    def get_executor_options(self) -> dict:
        """Constructor arguments for the configured executor."""
        if self.executor == "simulated":
            return {
                "min_delay": self.simulated_min_delay_ms / 1000,
                "max_delay": self.simulated_max_delay_ms / 1000,
                "failure_rate": self.simulated_failure_rate,
            }
        return {"shell": self.command_shell}


# Global settings instance
settings = Settings()
