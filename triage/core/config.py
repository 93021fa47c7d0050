from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Client configuration read from environment variables."""

    app_name: str = Field(default="Triage Desk")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="%(levelname)s %(name)s %(message)s")
    http_log_level: str = Field(default="WARNING")

    # Ticket API
    api_base_url: str = Field(default="http://localhost:3000")
    api_token: str | None = Field(default=None)
    api_timeout: float = Field(default=10.0)

    # Polling (seconds)
    queue_refresh_interval: float = Field(default=30.0)
    detail_refresh_interval: float = Field(default=10.0)
    search_debounce: float = Field(default=0.5)

    # Pagination
    default_page_size: int = Field(default=25)
    allowed_page_sizes: tuple[int, ...] = Field(default=(10, 25, 50, 100))

    # Notifications and validation
    toast_duration: float = Field(default=3.0)
    comment_min_length: int = Field(default=10)
    comment_max_length: int = Field(default=2000)
    status_reason_max_length: int = Field(default=500)

    # Observability configuration
    otel_enabled: bool = Field(default=False)
    otel_service_name: str = Field(default="triage-desk")
    otel_exporter_otlp_endpoint: str | None = Field(default=None)
    otel_exporter_otlp_headers: str | None = Field(default=None)

    @property
    def otel_headers(self) -> dict[str, str]:
        """``key=value`` pairs from ``otel_exporter_otlp_headers``; malformed pairs are skipped."""

        headers: dict[str, str] = {}
        for item in (self.otel_exporter_otlp_headers or "").split(","):
            key, sep, value = item.partition("=")
            if sep and key.strip():
                headers[key.strip()] = value.strip()
        return headers

    class Config:
        env_prefix = "TRIAGE_"
        env_file = ".env"
        case_sensitive = False


@lru_cache
def get_settings() -> Settings:
    """Return a cached instance of the client settings."""

    return Settings()
