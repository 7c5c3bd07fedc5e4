"""
Configuration management for Roofline.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings.

    Can be configured via environment variables or .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="ROOFLINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Geocoding
    geocoder: Literal["nominatim", "mapbox"] = Field(default="nominatim", description="Address lookup backend")
    nominatim_url: str = Field(default="https://nominatim.openstreetmap.org/search")
    mapbox_geocoding_url: str = Field(default="https://api.mapbox.com/geocoding/v5/mapbox.places")
    mapbox_token: str | None = Field(default=None, description="Mapbox access token")

    # Footprint provider
    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter")
    user_agent: str = Field(default="Roofline/1.0 (Roof Outline Tool)")
    http_timeout_s: float = Field(default=15.0, description="Timeout for outbound HTTP requests")
    source_tile_level: int = Field(default=17, description="Quadkey level scanned by the source strategy")

    # Detection
    source_load_timeout_s: float = Field(default=10.0, description="Hard timeout waiting for footprint source")
    search_radius_m: float = Field(default=50.0, description="Half-width of the bounding-box query")
    max_distance_km: float = Field(default=0.15, description="Nearest-building cutoff when nothing contains the point")
    max_results: int = Field(default=10, description="Maximum ranked candidates returned")
    search_grid_size: int = Field(default=5, description="Point-query grid is N x N around the coordinate")
    dedupe_precision: int = Field(default=6, description="Decimal places used for candidate dedupe keys")
    fallback_side_m: float = Field(default=11.0, description="Side of the synthetic fallback square")

    # Editing and view sync
    debounce_s: float = Field(default=0.05, description="Coalescing window for vertex-change notifications")
    sync_grace_s: float = Field(default=0.1, description="Grace delay before secondary camera events are honoured")
    default_zoom: float = Field(default=19.0, description="Zoom used when jumping to a searched address")


# Global settings instance
settings = Settings()
