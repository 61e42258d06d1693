"""
Request Tracker: Application Configuration
===========================================

What:  Centralized configuration management using Pydantic Settings.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the app factory, the dispatcher factory and the tests.
When:  Loaded once at module import time.

Credentials are optional. Without a project id and at least one of the
master/write keys the Dispatcher runs in disabled mode, so a development
machine needs no analytics configuration at all.
"""

from typing import FrozenSet, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from tracker.schemas.events import TrackingPolicy


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes are grouped by concern for readability.
    """

    # ── Keen Collector ────────────────────────────────────────────────────
    # What: Project identifier plus write-capable credentials.
    # Either key is enough to send events; the write key is preferred.
    keen_project_id: Optional[str] = Field(default=None)
    keen_master_key: Optional[str] = Field(default=None)
    keen_write_key: Optional[str] = Field(default=None)

    # What: Collector endpoint. Override for a self-hosted or mock collector.
    keen_base_url: str = Field(default="https://api.keen.io")
    keen_api_version: str = Field(default="3.0")

    # What: Upper bound on a single delivery attempt, in seconds.
    # Applied both to the HTTP client and around the whole send call, so a
    # collector outage cannot hold the post-response task open indefinitely.
    keen_timeout: float = Field(default=5.0, gt=0, le=60)

    # ── Request Tracking Policy ───────────────────────────────────────────
    track_requests: bool = Field(default=True)

    # Format: Comma-separated status codes (parsed by the property below)
    # Default: informational and redirect responses are not tracked.
    skip_status_codes: str = Field(default="100,101,301,302,307,308")

    # What: Keen data-enrichment addons, computed by the collector, not here.
    addon_ip_to_geo: bool = Field(default=False)
    addon_ua_parser: bool = Field(default=False)
    addon_referrer_parser: bool = Field(default=False)

    @field_validator("skip_status_codes")
    @classmethod
    def validate_skip_status_codes(cls, v: str) -> str:
        """Rejects entries that are not HTTP status codes."""
        for part in v.split(","):
            part = part.strip()
            if not part:
                continue
            if not part.isdigit() or not 100 <= int(part) <= 599:
                raise ValueError(f"Invalid status code '{part}' in skip_status_codes")
        return v

    @property
    def skip_status_codes_set(self) -> FrozenSet[int]:
        return frozenset(
            int(part) for part in self.skip_status_codes.split(",") if part.strip()
        )

    # ── CORS ──────────────────────────────────────────────────────────────
    cors_origins: str = Field(default="http://localhost:3000")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]

    # ── Server ────────────────────────────────────────────────────────────
    backend_host: str = Field(default="0.0.0.0")
    backend_port: int = Field(default=8000, ge=1024, le=65535)

    # Valid: DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Ensures log level is a valid Python logging level name."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log_level '{v}'. Must be one of: {valid_levels}")
        return upper

    # ── Pydantic Settings Config ──────────────────────────────────────────
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
    }

    @property
    def has_collector_credentials(self) -> bool:
        """True when a project id and at least one key are configured."""
        return bool(self.keen_project_id and (self.keen_master_key or self.keen_write_key))

    def tracking_policy(self) -> TrackingPolicy:
        """
        What:  Collects the request-tracking flags into one immutable policy.
        Who:   Passed to RequestTrackingMiddleware by the app factory.
        """
        return TrackingPolicy(
            track_requests=self.track_requests,
            skip_status_codes=self.skip_status_codes_set,
            enrich_ip_to_geo=self.addon_ip_to_geo,
            enrich_user_agent=self.addon_ua_parser,
            enrich_referrer=self.addon_referrer_parser,
        )


settings = Settings()
