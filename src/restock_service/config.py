"""Application configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_name: str = "restock-notifier"
    app_env: Literal["development", "staging", "production", "test"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # -------------------------------------------------------------------------
    # API Settings
    # -------------------------------------------------------------------------
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_workers: int = 4
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    # -------------------------------------------------------------------------
    # PostgreSQL Database
    # -------------------------------------------------------------------------
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "storefront"
    postgres_password: str = ""
    postgres_db: str = "storefront"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    db_pool_recycle: int = 1800

    # Full SQLAlchemy URL; overrides the postgres_* fields when set
    database_url_override: str = ""

    @property
    def database_url(self) -> str:
        """Construct async database connection URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # -------------------------------------------------------------------------
    # Redis
    # -------------------------------------------------------------------------
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str = ""
    redis_db: int = 0

    @property
    def redis_url(self) -> str:
        """Construct Redis connection URL."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    celery_broker_url: str = ""
    celery_result_backend: str = ""

    @property
    def celery_broker(self) -> str:
        """Get Celery broker URL, defaulting to Redis URL."""
        return self.celery_broker_url or self.redis_url

    @property
    def celery_backend(self) -> str:
        """Get Celery result backend URL, defaulting to Redis URL."""
        return self.celery_result_backend or self.redis_url

    # -------------------------------------------------------------------------
    # Email Service
    # -------------------------------------------------------------------------
    email_service: Literal["mock", "sendgrid"] = "mock"
    email_from_address: str = "noreply@bestbrightness.com"
    email_from_name: str = "Best Brightness"
    email_mock_storage_path: str = "/tmp/restock_mock_emails"
    sendgrid_api_key: str = ""
    sendgrid_api_url: str = "https://api.sendgrid.com/v3/mail/send"
    sendgrid_template_id: str = ""
    email_timeout_seconds: float = 10.0

    # -------------------------------------------------------------------------
    # Storefront Links
    # -------------------------------------------------------------------------
    storefront_base_url: str = "http://localhost:3000"
    company_name: str = "Best Brightness"

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------
    admin_api_key: str = ""
    api_key_header: str = "X-API-Key"
    privileged_roles: list[str] = Field(default_factory=lambda: ["admin"])
    worker_role: str = "admin"

    @field_validator("privileged_roles", mode="before")
    @classmethod
    def parse_privileged_roles(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [role.strip() for role in v.split(",") if role.strip()]
        return v

    # -------------------------------------------------------------------------
    # Notification Queue Settings
    # -------------------------------------------------------------------------
    queue_batch_size: int = 10
    queue_max_attempts: int = 3
    queue_pacing_seconds: float = 1.0
    queue_poll_interval_seconds: float = 60.0
    queue_stale_processing_minutes: int = 15
    scheduler_enabled: bool = True
    # Which process drains the queue on a timer: the API scheduler or Celery beat
    queue_processing_owner: Literal["api", "worker"] = "api"
    # Look-back when re-reading deliveries made by other processes
    interest_cache_sync_overlap_seconds: int = 300
    restock_delivery_mode: Literal["queued", "direct"] = "queued"

    # Distributed run lock for multi-instance deployments
    distributed_lock_enabled: bool = False
    distributed_lock_key: str = "restock:queue-processor:lock"
    distributed_lock_ttl_seconds: int = 300


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
