from pathlib import Path
from typing import List, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Load apps/skywatch/.env and accept env keys in any case
    _env_file = Path(__file__).resolve().parent.parent / ".env"
    model_config = SettingsConfigDict(env_file=str(_env_file), extra="ignore", case_sensitive=False)

    app_name: str = "Skywatch Hub"
    app_version: str = "0.1.0"
    debug: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])
    port: int = 8000

    # OpenWeather
    openweather_base_url: str = Field(
        default="https://api.openweathermap.org/data/2.5",
        description="Base URL for current weather, forecast, air pollution and city lookup",
    )
    openweather_api_key: str | None = Field(default=None, description="API key sent as the appid parameter")
    weather_user_agent: str = Field(
        default="SkywatchHub/0.1.0 (support@example.com)",
        description="User-Agent sent to upstream weather providers.",
    )
    weather_request_timeout: float = Field(default=5.0, ge=0.1, description="Timeout in seconds for weather HTTP calls")
    weather_units: Literal["metric", "imperial"] = Field(default="metric", description="Initial units requested from the provider")

    # Location state
    default_city_name: str = Field(default="Bengaluru", description="Fallback city used until a location is resolved")
    default_city_country: str = "IN"
    default_lat: float = Field(default=12.9716, ge=-90.0, le=90.0)
    default_lon: float = Field(default=77.5946, ge=-180.0, le=180.0)
    coordinate_epsilon: float = Field(
        default=0.01,
        gt=0.0,
        description="Coordinates closer than this (degrees, per axis) are treated as the same location.",
    )
    debounce_seconds: float = Field(default=0.5, ge=0.0, description="Quiet period before a coordinate change triggers a fetch")

    # Geolocation
    geolocation_enabled: bool = Field(default=True, description="Start watching the device position on startup")
    geolocation_provider: Literal["push", "ip"] = Field(
        default="push",
        description="push: positions reported by a client device; ip: approximate position from an IP lookup service",
    )
    geolocation_timeout: float = Field(default=5.0, ge=0.1, description="Seconds to wait for a position fix")
    ip_geolocation_url: str = Field(default="https://ipapi.co/json/")
    ip_geolocation_interval: float = Field(
        default=300.0,
        ge=1.0,
        description="Seconds between IP position lookups while watching",
    )

    # City search
    city_search_limit: int = Field(default=5, ge=1, le=50)
    city_search_min_length: int = Field(default=3, ge=1, description="Queries shorter than this are not sent upstream")
    search_debounce_seconds: float = Field(default=0.5, ge=0.0)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def normalize_cors(cls, v):
        if isinstance(v, str):
            s = v.strip()
            if s.startswith("["):
                import json
                return json.loads(s)
            if s in ("", "*"):
                return ["*"]
            return [p.strip() for p in s.split(",")]
        return v

settings = Settings()
