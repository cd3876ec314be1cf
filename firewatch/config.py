"""Configuration management using Pydantic Settings."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis
    redis_url: str = "redis://redis:6379"

    # Identifies this install; one snapshot slot per tag
    device_tag: str = "web-default"

    # Map (Santa Cruz, Laguna)
    map_center_lat: float = 14.2833
    map_center_lng: float = 121.4194
    default_zoom: int = 13
    located_zoom: int = 15
    min_zoom: int = 10
    max_zoom: int = 18

    # Geolocation: request timeouts and cached-fix age are separate knobs
    locate_timeout_ms: int = 10_000
    watch_timeout_ms: int = 15_000
    watch_maximum_age_ms: int = 30_000

    # Hazard simulation
    hazard_min_count: int = 2
    hazard_max_count: int = 4
    hazard_radius_m: float = 3000.0
    # Continuous fixes closer than this to the last hazard anchor keep the set
    hazard_displacement_threshold_m: float = 100.0

    # Snapshot persistence
    snapshot_max_age_s: int = 3600
    snapshot_ttl_s: int = 86400

    # Simulated response team
    response_markers: bool = True
    response_delay_s: float = 1.0
    response_lifetime_s: float = 30.0

    # Feature flags
    auto_track: bool = True
    hydrants_enabled: bool = True

    # Notifications
    notification_duration_ms: int = 5000
    notification_channel: str = "firewatch:notifications"

    # Share-Location target; the token is appended as ?loc=
    dashboard_url: str = "https://firewatch.local/dashboard"

    # Semicolon-separated "Name: number" entries; read through contacts
    emergency_contacts: str = (
        "BFP: (049) 808-1234;Police: (049) 808-5678;Hospital: (049) 808-9012"
    )

    model_config = SettingsConfigDict(env_file=".env", env_prefix="FIREWATCH_", extra="ignore")

    @property
    def contacts(self) -> tuple[str, ...]:
        return tuple(entry.strip() for entry in self.emergency_contacts.split(";") if entry.strip())


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
