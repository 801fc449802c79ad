"""Tracking pipeline configuration."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackingConfig(BaseSettings):
    """Runtime config for ingestion, processing and ETA computation."""

    model_config = SettingsConfigDict(env_prefix="PARCELTRACK_")

    database_url: str = "sqlite+aiosqlite:///parceltrack.db"
    log_level: str = "INFO"
    log_file: str | None = None

    # Ingestion validation
    tracking_number_pattern: str = r"^[A-Z0-9]{8,20}$"
    event_code_pattern: str = r"^[A-Z_]{2,20}$"
    max_event_age_days: int = 365
    max_future_minutes: int = 60
    max_batch_events: int = 100

    # Queue worker
    retry_max_attempts: int = 3
    retry_backoff_seconds: list[int] = Field(
        default_factory=lambda: [10, 30, 60]
    )
    attempt_timeout_seconds: float = 120.0
    poll_interval_seconds: float = 1.0
    queue_batch_size: int = 10

    # Lookup caches
    facility_cache_ttl: int = 1800
    code_mapping_cache_ttl: int = 3600
    cache_max_entries: int = 10_000

    # Ordering and anomaly analysis
    out_of_order_window_hours: int = 24
    duplicate_window_minutes: int = 60
    future_event_hours: int = 2
    very_old_event_days: int = 365

    # Extra per-source event code tables merged over the built-in ones
    event_code_mappings: dict[str, dict[str, str]] = Field(
        default_factory=dict
    )
