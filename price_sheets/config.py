"""
Configuration management.
Simple .env based config for VPS deployment.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Database
    database_path: str = "./data/app.db"

    # Shopify
    shopify_api_version: str = "2025-01"
    variants_page_size: int = 250

    # Bulk operations
    bulk_poll_interval_seconds: float = 2.0
    bulk_max_poll_interval_seconds: float = 30.0
    bulk_max_poll_attempts: int = 900
    bulk_cancel_grace_seconds: float = 1.0

    # Logging
    log_level: str = "INFO"


# Global settings instance
settings = Settings()
