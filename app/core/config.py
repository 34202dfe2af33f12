from __future__ import annotations

import json

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DESKTOP_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(extra="ignore")

    app_name: str = "rental-import-api"
    environment: str = "dev"

    database_url: str

    # Listing scraper
    scraper_user_agent: str = DESKTOP_USER_AGENT
    scraper_accept: str = "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8"
    scraper_accept_language: str = "en-US,en;q=0.5"
    scraper_timeout_seconds: float = 30.0
    scraper_max_redirects: int = 5
    gallery_timeout_seconds: float = 15.0
    gallery_max_redirects: int = 3
    scraper_max_images: int = 50
    # substrings a candidate image URL must contain to count as a listing photo
    scraper_image_host_markers: list[str] = ["airbnb", "muscache"]

    # Import pipeline
    import_download_images: bool = True
    image_download_timeout_seconds: float = 15.0
    import_stale_after_seconds: int = 300
    import_progress_log_limit: int = 50

    # Uploads / local storage
    upload_root: str = "public"
    # URL prefix upload_root is served under; stored image URLs start with it
    media_url_prefix: str = "/media"
    upload_max_bytes: int = 2 * 1024 * 1024

    # Error reporting
    sentry_dsn: str | None = None
    sentry_environment: str | None = None
    sentry_enabled_environments: list[str] = ["staging", "prod"]
    sentry_traces_sample_rate: float = 0.0

    # Logging
    log_level: str = "INFO"
    json_logs: bool = True

    # CORS
    cors_allowed_origins: list[str] = []
    cors_allowed_methods: list[str] = ["GET", "POST", "OPTIONS"]
    cors_allowed_headers: list[str] = ["Content-Type"]
    cors_allow_credentials: bool = False

    # DB pooling
    # - "null" external pooler (pgbouncer) handles pooling
    # - "queue" for Postgres
    db_pool: str = "queue"
    db_pool_size: int = 5
    db_max_overflow: int = 10

    @model_validator(mode="after")
    def _validate_lists(self) -> Settings:
        self.cors_allowed_origins = self._parse_env_list(self.cors_allowed_origins)
        self.cors_allowed_methods = self._parse_env_list(self.cors_allowed_methods)
        self.cors_allowed_headers = self._parse_env_list(self.cors_allowed_headers)
        self.sentry_enabled_environments = self._parse_env_list(self.sentry_enabled_environments)
        self.scraper_image_host_markers = [
            marker.lower() for marker in self._parse_env_list(self.scraper_image_host_markers)
        ]

        if not self.scraper_image_host_markers:
            raise ValueError("scraper_image_host_markers must contain at least one marker")

        self.media_url_prefix = "/" + self.media_url_prefix.strip().strip("/")
        if self.media_url_prefix == "/":
            raise ValueError("media_url_prefix must not be the site root")

        if self.scraper_max_images < 1:
            raise ValueError("scraper_max_images must be positive")

        if self.cors_allow_credentials and any(origin == "*" for origin in self.cors_allowed_origins):
            raise ValueError("cors_allowed_origins cannot include '*' when cors_allow_credentials is true")

        return self

    @staticmethod
    def _parse_env_list(raw_value: list[str] | str) -> list[str]:
        if isinstance(raw_value, list):
            return [item.strip() for item in raw_value if item.strip()]

        value = raw_value.strip()
        if not value:
            return []

        if value.startswith("["):
            parsed = json.loads(value)
            if not isinstance(parsed, list):
                raise ValueError("list config must deserialize to a list")
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in value.split(",") if item.strip()]


settings = Settings()
