# Runtime configuration for the proxy and the client coordinator.
# Values come from the environment (or a local .env file).

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "Itera"
    VERSION: str = "1.2.0"
    BRIEF_DESCRIPTION: str = "Geocoding, address suggestion and driving route proxy for the Itera map client."
    HEALTH_MESSAGE: str = "Itera API is online and ready."

    # --- Required Environment Variables ---
    # A missing key is logged at startup but does not block it.
    MAPBOX_API_KEY: Optional[str] = Field(None, description="Mapbox secret token used for upstream calls")
    ENV: str = Field("development", description="Application environment (e.g., production, development)")
    LOG_LEVEL: str = Field("INFO", description="Root log level")
    HOST: str = Field("0.0.0.0", description="Listen address")
    PORT: int = Field(5000, description="Listen port")

    # --- Upstream provider ---
    MAPBOX_BASE_URL: str = "https://api.mapbox.com"
    DIRECTIONS_PROFILE: str = "mapbox/driving"

    # Timeouts in seconds. No retries are attempted on expiry.
    SUGGESTION_TIMEOUT: float = 6.0
    GEOCODE_TIMEOUT: float = 6.0
    ROUTE_TIMEOUT: float = 10.0

    # Keep-alive pool shared by every upstream call
    UPSTREAM_MAX_CONNECTIONS: int = 50
    UPSTREAM_MAX_KEEPALIVE: int = 20
    UPSTREAM_KEEPALIVE_EXPIRY: float = 30.0

    # --- Suggestions ---
    SUGGESTION_MIN_LENGTH: int = 2
    SUGGESTION_LIMIT: int = 7
    SUGGESTION_TYPES: str = "place"
    SUGGESTION_CACHE_TTL: float = Field(60.0, description="Seconds a cached suggestion list stays fresh")
    SUGGESTION_CACHE_MAX_ENTRIES: int = Field(1000, description="LRU bound on cached queries, 0 disables the bound")
    CACHE_KEY_PRECISION: int = 3
    # [lon, lat] used when the client sends no proximity hint (Abidjan)
    DEFAULT_PROXIMITY: List[float] = Field(
        [-4.0083, 5.35995],
        description="Reference point [lon, lat] biasing suggestions"
    )

    # --- Rate limiting on /api/suggestions ---
    RATE_LIMIT_WINDOW_SECONDS: int = 10
    RATE_LIMIT_MAX_REQUESTS: int = 30
    TRUST_PROXY_HEADERS: bool = Field(True, description="Read the client address from X-Forwarded-For")
    ENABLE_REDIS: bool = Field(False, description="Keep rate-limit windows in Redis instead of process memory")
    REDIS_URL: Optional[str] = Field(None, description="Redis URL for the rate limiter")

    # --- HTTP surface ---
    CORS_ORIGINS: List[str] = Field(["*"], description="Allowed CORS origins")

    # --- Client side ---
    API_BASE_URL: str = Field("http://localhost:5000", description="Proxy base URL used by the map client")
    MAPBOX_PUBLIC_TOKEN: Optional[str] = Field(None, description="Public Mapbox token used for map rendering")
    DEBOUNCE_MS: int = 300

    # Pydantic configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore"
    )

settings = Settings()
