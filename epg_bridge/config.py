from pathlib import Path
from typing import Annotated
from urllib.parse import urlparse
import json
import logging

from croniter import croniter
from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


logger = logging.getLogger(__name__)


class EpgSource(BaseModel):
    """One configured XMLTV source."""
    url: str
    compressed: bool = False


DEFAULT_EPG_SOURCES = [
    EpgSource(url="https://epgshare01.online/epgshare01/epg_ripper_AR1.xml.gz", compressed=True),
    EpgSource(url="https://raw.githubusercontent.com/globetvapp/epg/main/Argentina/argentina1.xml", compressed=False),
]


def _source_from_url(url: str) -> EpgSource:
    """Build a source from a bare URL, inferring gzip from the path suffix."""
    path = urlparse(url).path.lower()
    return EpgSource(url=url, compressed=path.endswith(".gz"))


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/epg_bridge.db"
    epg_sources: Annotated[list[EpgSource], NoDecode] = DEFAULT_EPG_SOURCES
    epg_cache_ttl_sec: int = 6 * 60 * 60
    catalog_cache_ttl_sec: int = 5 * 60
    epg_http_timeout_sec: float = 60.0
    upstream_http_timeout_sec: float = 30.0
    epg_refresh_cron: str = "0 */6 * * *"  # Empty string disables the scheduler
    epg_refresh_misfire_grace_sec: int = 3600

    short_epg_past_window_sec: int = 2 * 60 * 60
    short_epg_future_window_sec: int = 12 * 60 * 60
    short_epg_lang: str = "es"
    fuzzy_min_length: int = 4

    xmltv_generator_name: str = "epg-bridge"
    stream_proxy_password: str = "1234"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("epg_sources", mode="before")
    @classmethod
    def parse_epg_sources(cls, value):
        """Parse a JSON array of sources or comma-separated URLs."""
        if value is None:
            return []
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return []
            if value.startswith("["):
                try:
                    value = json.loads(value)
                except json.JSONDecodeError as exc:
                    raise ValueError(f"EPG_SOURCES is not valid JSON: {exc}") from exc
            else:
                return [_source_from_url(url.strip()) for url in value.split(",") if url.strip()]
        if isinstance(value, list):
            return [
                _source_from_url(item) if isinstance(item, str) else item
                for item in value
            ]
        return []

    @field_validator("epg_sources", mode="after")
    @classmethod
    def validate_epg_sources(cls, value: list[EpgSource]) -> list[EpgSource]:
        """Validate EPG source URLs are HTTP/HTTPS."""
        for source in value:
            if not source.url.lower().startswith(("http://", "https://")):
                raise ValueError(f"EPG source URL must be HTTP/HTTPS: {source.url}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("epg_cache_ttl_sec", "catalog_cache_ttl_sec")
    @classmethod
    def validate_ttls(cls, value: int, info) -> int:
        """Cache TTLs must be positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator("epg_http_timeout_sec", "upstream_http_timeout_sec")
    @classmethod
    def validate_timeouts(cls, value: float, info) -> float:
        """HTTP timeouts must be positive."""
        if value <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return value

    @field_validator(
        "epg_refresh_misfire_grace_sec",
        "short_epg_past_window_sec",
        "short_epg_future_window_sec",
    )
    @classmethod
    def validate_non_negative_ints(cls, value: int, info) -> int:
        """Ensure second-based settings are non-negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("fuzzy_min_length")
    @classmethod
    def validate_fuzzy_min_length(cls, value: int) -> int:
        if value < 1:
            raise ValueError("fuzzy_min_length must be >= 1")
        return value

    @field_validator("epg_refresh_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid (empty disables scheduling)."""
        value = value.strip()
        if not value:
            return value
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @model_validator(mode="after")
    def validate_epg_configuration(self):
        """Validate cross-field configuration."""
        if not self.epg_sources:
            logger.warning(
                "No EPG sources configured - EPG refresh will produce an empty dataset"
            )

        if self.short_epg_past_window_sec == 0 and self.short_epg_future_window_sec == 0:
            raise ValueError(
                "At least one of short_epg_past_window_sec or short_epg_future_window_sec must be > 0"
            )

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  EPG Sources: %s configured", len(self.epg_sources))
        logger.info("  EPG Cache TTL: %ss", self.epg_cache_ttl_sec)
        logger.info("  Catalog Cache TTL: %ss", self.catalog_cache_ttl_sec)
        logger.info("  Refresh Schedule: %s", self.epg_refresh_cron or "disabled")
        logger.info(
            "  Short EPG Window: -%ss / +%ss",
            self.short_epg_past_window_sec,
            self.short_epg_future_window_sec,
        )
        logger.info("  Fuzzy Match Min Length: %s", self.fuzzy_min_length)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
