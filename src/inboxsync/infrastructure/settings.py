"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "inboxsync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # Metadata + checkpoint store
    metadata_backend: Literal["postgres", "sqlite"] = "postgres"
    sqlite_db_path: str = "/app/data/inboxsync.db"

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: SecretStr = Field(default=SecretStr("postgres"))
    postgres_db: str = "inboxsync"

    # Content store (S3 / R2 / MinIO)
    s3_endpoint: str | None = None
    s3_region: str = "auto"
    s3_access_key: str | None = None
    s3_secret_key: SecretStr | None = None
    s3_bucket: str = "mail"
    s3_prefix: str = ""
    s3_use_ssl: bool = True
    s3_force_path_style: bool = True

    # IMAP
    imap_timeout_seconds: float = 60.0
    attachments_max_mb: float = 25.0

    # Sync policy
    sync_poll_minutes: int = 5
    sync_max_concurrency: int = 1
    sync_advance_past_failures: bool = False
    sync_purge_stale: bool = True

    @property
    def effective_log_level(self) -> str:
        """DEBUG=true overrides LOG_LEVEL."""
        return "DEBUG" if self.debug else self.log_level.upper()

    @computed_field(repr=False)
    @property
    def postgres_dsn(self) -> str:
        """Construct PostgreSQL connection string."""
        password = self.postgres_password.get_secret_value()
        return f"postgresql://{self.postgres_user}:{password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
