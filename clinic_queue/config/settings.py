"""Application configuration and settings."""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service Configuration
    service_name: str = "clinic-queue-engine"
    service_port: int = 8010
    environment: str = "development"

    # Clinic backend (remote source of truth)
    clinic_api_base_url: str = "http://localhost:8000/api"
    clinic_api_token: Optional[str] = None
    request_timeout_seconds: float = 10.0

    # Synchronization
    sync_interval_seconds: float = 30.0
    profile_lookup_concurrency: int = 5  # request budget for treatment lookups
    signal_history_size: int = 50

    # Queue operations
    default_skip_positions: int = 5

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
