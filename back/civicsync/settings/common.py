# Standard library imports
from typing import Literal

# Third-party imports
from pydantic import computed_field
from pydantic_core import MultiHostUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    # General settings
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["dev", "staging", "production"] = "dev"
    DEBUG_MODE: bool = False
    PROJECT_NAME: str = "CivicSync"

    # Database settings
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "civicsync"

    @computed_field  # type: ignore[prop-decorator, misc]
    @property
    def SQLALCHEMY_ASYNC_DATABASE_URI(self) -> MultiHostUrl:
        return MultiHostUrl.build(
            scheme="postgresql+asyncpg",  # async driver for async queries
            username=self.POSTGRES_USER,
            password=self.POSTGRES_PASSWORD,
            host=self.POSTGRES_SERVER,
            port=self.POSTGRES_PORT,
            path=self.POSTGRES_DB,
        )

    # Optional settings
    SENTRY_DSN: str | None = None

    # Redis settings
    REDIS_URL: str = "redis://localhost:6379/0"
    REPORTS_CHANGE_CHANNEL: str = "reports-changes"

    # Sync settings
    SYNC_RECONCILIATION_TIMEOUT_SECONDS: float = 5.0
    SYNC_RESYNC_MAX_RETRIES: int = 5
    SYNC_RESYNC_BACKOFF_SECONDS: float = 1.0  # doubled on every retry
    SYNC_FETCH_LIMIT: int | None = None
