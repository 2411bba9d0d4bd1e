"""Process-level settings, read from CRISIS_MATCH_* environment variables."""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="CRISIS_MATCH_",
        env_file=".env",
        extra="ignore",
    )

    app_name: str = "Crisis Match API"
    log_level: str = "INFO"

    audit_db_path: str = ":memory:"
    heartbeat_staleness_seconds: float = 120
    default_max_concurrent_sessions: int = 3

    monitor_enabled: bool = True
    monitor_interval_seconds: float = 30

    pool_rotation_interval_hours: float = 8
    pool_rotation_schedule: Optional[str] = None
    pool_overlap_minutes: float = 30

    viability_threshold: float = 0.4
    max_reservation_attempts: int = 3


@lru_cache()
def get_settings() -> Settings:
    return Settings()
