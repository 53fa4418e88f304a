import logging
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite+aiosqlite:///./feeledger.db", alias="DATABASE_URL")
    create_tables_on_startup: bool = Field(True, alias="CREATE_TABLES_ON_STARTUP")

    # Upper bound for any single store call; a timeout counts as a store failure.
    store_timeout_seconds: float = Field(10.0, alias="STORE_TIMEOUT_SECONDS", gt=0)
    # Minimum age of a pending payment before it may be promoted to overdue.
    overdue_grace_seconds: int = Field(60, alias="OVERDUE_GRACE_SECONDS", ge=0)

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
