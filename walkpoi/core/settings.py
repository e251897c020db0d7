from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=None, extra="ignore")

    # Paths
    cache_db_path: str = Field(default="data/poi_cache.db", alias="CACHE_DB_PATH")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # CORS (comma-separated)
    cors_origins: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    # ──────────────────────────────────────────────────────────────
    # Cache policy
    # One freshness window for POIs and coverage so a cached region and
    # its POIs expire together.
    # ──────────────────────────────────────────────────────────────

    freshness_days: int = Field(default=30, alias="POI_FRESHNESS_DAYS")

    # "shapely" | "none". Resolved once at startup.
    spatial_engine: str = Field(default="shapely", alias="SPATIAL_ENGINE")

    # Remainders at or below this fraction of the requested area are slivers.
    coverage_sliver_ratio: float = Field(default=1e-9, alias="COVERAGE_SLIVER_RATIO")

    # ──────────────────────────────────────────────────────────────
    # POI provider (Overpass)
    # ──────────────────────────────────────────────────────────────

    overpass_url: str = Field(default="https://overpass-api.de/api/interpreter", alias="OVERPASS_URL")
    overpass_timeout_s: int = Field(default=25, alias="OVERPASS_TIMEOUT_S")
    overpass_http_timeout_s: float = Field(default=30.0, alias="OVERPASS_HTTP_TIMEOUT_S")
    overpass_retries: int = Field(default=2, alias="OVERPASS_RETRIES")
    overpass_retry_base_s: float = Field(default=0.75, alias="OVERPASS_RETRY_BASE_S")

    # ──────────────────────────────────────────────────────────────
    # Isochrones (OpenRouteService)
    # ──────────────────────────────────────────────────────────────

    ors_url: str = Field(default="https://api.openrouteservice.org/v2/isochrones", alias="ORS_URL")
    ors_api_key: str = Field(default="", alias="ORS_API_KEY")
    ors_profile: str = Field(default="foot-walking", alias="ORS_PROFILE")
    ors_timeout_s: float = Field(default=30.0, alias="ORS_TIMEOUT_S")

    # ──────────────────────────────────────────────────────────────
    # Background refill + push updates
    # ──────────────────────────────────────────────────────────────

    refill_workers: int = Field(default=2, alias="REFILL_WORKERS")
    refill_queue_size: int = Field(default=64, alias="REFILL_QUEUE_SIZE")

    sse_keepalive_s: float = Field(default=15.0, alias="SSE_KEEPALIVE_S")
    sse_queue_size: int = Field(default=100, alias="SSE_QUEUE_SIZE")

    @property
    def freshness_s(self) -> int:
        return int(self.freshness_days) * 24 * 60 * 60

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


settings = Settings()
