"""Application configuration.

Loads settings from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Authentication (empty disables the API key check)
    api_key: str = ""

    # Catalog
    catalog_backend: Literal["memory", "sql"] = "memory"
    database_url: str = "sqlite+aiosqlite:///./marketcart.db"

    # Notifications (no URL means events are only logged)
    notification_webhook_url: str | None = None
    notification_webhook_secret: str = "dev-webhook-secret-change-in-production"
    notification_timeout_seconds: float = 5.0

    # Orders
    order_number_prefix: str = "MLM"
    currency: str = "INR"
    default_page_size: int = 20
    max_page_size: int = 100

    # Logging
    log_level: str = "INFO"

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
