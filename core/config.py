"""
Core configuration using Pydantic Settings.
Loads from environment variables.
"""

from typing import Literal
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    app_name: str = Field(default="rights-engine", alias="APP_NAME")
    app_env: Literal["development", "test", "staging", "production"] = Field(
        default="development", alias="APP_ENV"
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )

    # API
    api_v1_prefix: str = "/api/v1"
    allowed_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8000"],
        alias="ALLOWED_ORIGINS",
    )

    # Database (postgresql+asyncpg in deployment, sqlite+aiosqlite locally)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./rights_engine.db", alias="DATABASE_URL"
    )
    database_pool_size: int = Field(default=20, alias="DATABASE_POOL_SIZE")
    database_max_overflow: int = Field(default=10, alias="DATABASE_MAX_OVERFLOW")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Celery
    celery_broker_url: str = Field(
        default="redis://localhost:6379/1", alias="CELERY_BROKER_URL"
    )
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2", alias="CELERY_RESULT_BACKEND"
    )

    # Auth (tokens are issued by the gateway, only decoded here)
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    # Logging
    log_request_body: bool = Field(default=False, alias="LOG_REQUEST_BODY")
    log_response_body: bool = Field(default=False, alias="LOG_RESPONSE_BODY")
    log_max_body_size: int = Field(default=1024, alias="LOG_MAX_BODY_SIZE")
    json_logs: bool = Field(default=True, alias="JSON_LOGS")

    # Concurrency
    lock_backend: Literal["local", "redis"] = Field(
        default="local", alias="LOCK_BACKEND"
    )
    lock_timeout_seconds: float = Field(default=5.0, alias="LOCK_TIMEOUT_SECONDS")
    lock_lease_seconds: float = Field(default=30.0, alias="LOCK_LEASE_SECONDS")
    operation_timeout_seconds: float = Field(
        default=15.0, alias="OPERATION_TIMEOUT_SECONDS"
    )
    bulk_max_concurrency: int = Field(default=8, ge=1, alias="BULK_MAX_CONCURRENCY")
    storage_max_retries: int = Field(default=3, ge=0, alias="STORAGE_MAX_RETRIES")
    storage_retry_backoff_seconds: float = Field(
        default=0.05, alias="STORAGE_RETRY_BACKOFF_SECONDS"
    )

    # Representation rights
    relationship_duration_months: int = Field(
        default=12, ge=1, alias="RELATIONSHIP_DURATION_MONTHS"
    )
    relationship_sweep_interval_seconds: int = Field(
        default=3600, alias="RELATIONSHIP_SWEEP_INTERVAL_SECONDS"
    )

    # Collaborators
    document_service_url: str | None = Field(default=None, alias="DOCUMENT_SERVICE_URL")
    billing_service_url: str | None = Field(default=None, alias="BILLING_SERVICE_URL")
    notification_webhook_url: str | None = Field(
        default=None, alias="NOTIFICATION_WEBHOOK_URL"
    )
    collaborator_timeout_seconds: float = Field(
        default=5.0, alias="COLLABORATOR_TIMEOUT_SECONDS"
    )


# Global settings instance
settings = Settings()
