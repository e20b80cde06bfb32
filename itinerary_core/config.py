"""Typed settings configuration - single source of truth for planning heuristics."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", env_prefix="ITINERARY_", extra="ignore"
    )

    # Clustering (meters)
    max_walking_distance_m: int = 1500
    max_reasonable_distance_m: int = 30000
    travel_warning_distance_m: int = 10000
    max_daily_walking_distance_m: int = 15000

    # Day budgets (minutes)
    max_travel_time_min: int = 180
    max_daily_activity_warning_min: int = 600
    max_daily_activities_min: int = 540
    max_activities_per_day: int = 6
    slot_overflow_tolerance_min: int = 30
    min_activity_buffer_min: int = 15

    # Anchor matching
    anchor_match_threshold: int = 50

    # Flight windows (minutes)
    arrival_buffer_min: int = 120
    departure_buffer_min: int = 180
    immigration_buffer_min: int = 30
    departure_transfer_lead_min: int = 180

    # Inter-city transfers
    inter_city_default_start: str = "10:00"
    inter_city_earliest_start: str = "07:00"
    anchor_arrival_lead_min: int = 60
    anchor_departure_trail_min: int = 30

    # Place search
    search_radius_m: int = 1500
    search_limit: int = 10
    max_replacement_options: int = 3
    default_currency: str = "JPY"

    # Collaborator fan-out
    collaborator_batch_size: int = 5
    collaborator_batch_pause_ms: int = 200

    # Timeouts (milliseconds)
    collaborator_hard_timeout_ms: int = 4000

    # Retry jitter (milliseconds)
    retry_count: int = 1
    retry_jitter_min_ms: int = 200
    retry_jitter_max_ms: int = 500

    # Circuit breaker
    circuit_breaker_failures: int = 5
    circuit_breaker_window_sec: int = 60
    circuit_breaker_half_open_sec: int = 30

    # Cache TTLs (seconds)
    search_cache_ttl_seconds: int = 3600

    # Routing
    osrm_base_url: str = "https://router.project-osrm.org"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
