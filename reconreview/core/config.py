"""Application configuration loaded from environment variables."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings with defaults and env var overrides."""

    # Remote reconciliation API
    remote_api_url: str = "http://localhost:3001"
    remote_api_token: Optional[str] = None
    remote_timeout_seconds: float = 30.0

    # Local database (tracking checkpoint only)
    database_url: str = "sqlite:///./reconreview.db"

    # App
    app_env: str = "development"
    app_port: int = 8000
    log_level: str = "INFO"

    # Status polling
    poll_interval_seconds: float = 5.0
    tracking_max_age_hours: int = 24

    # Review table
    default_items_per_page: int = 10
    max_items_per_page: int = 500

    # Export
    export_dir: str = "./exports"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
