"""
Application Configuration using Pydantic Settings

Loads configuration from environment variables with sensible defaults.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # ========================================================================
    # Connection Settings
    # ========================================================================
    # Default connection string as "engine+connect". An empty connect part for
    # postgres falls back to the PG* environment variables.
    SQLBENCH_DB: str = "postgres+"

    # Postgres pool. The max size always follows the requested concurrency so
    # no worker has to queue for a connection.
    POSTGRES_POOL_MIN_SIZE: int = 1
    POSTGRES_COMMAND_TIMEOUT: float = 60.0
    POSTGRES_CONNECT_RETRIES: int = 3
    POSTGRES_RETRY_DELAY: float = 1.0
    # Create the target database when it does not exist yet.
    POSTGRES_CREATE_DATABASE: bool = True

    # Seconds sqlite3 waits on a locked database before raising.
    SQLITE_TIMEOUT: float = 5.0

    # ========================================================================
    # Benchmark Settings
    # ========================================================================
    DEFAULT_CONCURRENCY: int = 1
    DEFAULT_REPEAT: int = 1

    # Errors kept for the report; further errors still count for fail-fast
    # but are not stored.
    ERROR_CAPACITY: int = 10

    DISTRIBUTION_BUCKETS: int = 4
    HISTOGRAM_BAR_WIDTH: int = 50

    @field_validator(
        "DEFAULT_CONCURRENCY",
        "DEFAULT_REPEAT",
        "ERROR_CAPACITY",
        "DISTRIBUTION_BUCKETS",
        "HISTOGRAM_BAR_WIDTH",
    )
    @classmethod
    def _at_least_one(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    # ========================================================================
    # Logging Settings
    # ========================================================================
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# Create global settings instance
settings = Settings()
