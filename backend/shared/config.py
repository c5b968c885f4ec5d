"""
Central configuration for Riftwatch.
Uses pydantic-settings for env-based config with validation.
"""
from __future__ import annotations

from enum import Enum
from functools import lru_cache
from typing import Optional

from pydantic import Field, RedisDsn, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class StoreBackend(str, Enum):
    JSON = "json"
    REDIS = "redis"


class DetectionStrategyName(str, Enum):
    MATCH_ID = "match_id"
    ACTIVE_GAME = "active_game"


class Settings(BaseSettings):
    """Root settings for the notifier process."""

    model_config = SettingsConfigDict(
        env_prefix="RW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────
    environment: Environment = Environment.DEV
    debug: bool = False
    log_level: str = "INFO"
    instance_id: str = Field(default="", description="Unique pod/container ID, bound to every log line")

    # ── Riot API ─────────────────────────────────────────────
    riot_api_key: str = Field(default="", description="Upstream credential sent as X-Riot-Token")
    riot_regional_url: str = "https://europe.api.riotgames.com"
    riot_platform_url: str = "https://euw1.api.riotgames.com"
    request_timeout_s: float = 10.0
    retry_max_attempts: int = Field(default=4, ge=0, description="Retries on transient upstream failure")
    retry_base_delay_s: float = Field(default=2.0, description="First backoff delay, doubled per retry")

    # ── Poll cycle ───────────────────────────────────────────
    poll_interval_s: float = 60.0
    issue_spacing_s: float = Field(default=1.5, description="Delay between entity fetch launches")
    min_match_duration_s: int = Field(default=300, description="Shorter matches are treated as remakes")
    detection_strategy: DetectionStrategyName = DetectionStrategyName.MATCH_ID
    connectivity_check_enabled: bool = True

    # ── Tracking store ───────────────────────────────────────
    store_backend: StoreBackend = StoreBackend.JSON
    store_path: str = "tracking.json"
    redis_url: RedisDsn = Field(default="redis://localhost:6379/0")
    redis_max_connections: int = 10

    # ── Discord ──────────────────────────────────────────────
    discord_bot_token: str = ""
    discord_api_url: str = "https://discord.com/api/v10"
    default_tenant: Optional[str] = Field(default=None, description="Tenant seeded at start-up")
    default_destination: Optional[str] = Field(default=None, description="Channel id for the default tenant")

    # ── Champion names ───────────────────────────────────────
    ddragon_url: str = "https://ddragon.leagueoflegends.com"
    ddragon_locale: str = "en_US"

    # ── API ──────────────────────────────────────────────────
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # ── Observability ────────────────────────────────────────
    metrics_enabled: bool = True
    metrics_port: int = 9090

    @field_validator("riot_regional_url", "riot_platform_url", "discord_api_url", "ddragon_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @property
    def redis_url_str(self) -> str:
        return str(self.redis_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton access to validated settings."""
    return Settings()
