from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Centralized configuration.

    Loaded from:
    - environment variables
    - .env file (if present)
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Required key (the app should fail fast if missing)
    openweather_api_key: str

    # Optional keys: video and map lookups degrade gracefully without them
    youtube_api_key: Optional[str] = None
    google_maps_api_key: Optional[str] = None

    app_name: str = "Weather Log"
    log_level: str = "INFO"

    # SQLite file path (simple local persistence)
    sqlite_path: str = "weatherlog.sqlite3"

    http_timeout_s: float = Field(default=10.0, gt=0)

    # Entries updated within this window are reused instead of re-fetched
    cache_ttl_minutes: int = Field(default=60, ge=0)

    youtube_max_results: int = Field(default=5, ge=1, le=50)
    export_limit: int = Field(default=1000, ge=1)


settings = Settings()
