"""
Configuration
Environment-driven settings for the indexer, alerting and analytics.

Every group reads its own env prefix and an optional .env file:

    DISCOVERY_RPC_URL=https://apis.devnet.xandeum.com
    STORAGE_DB_PATH=data/pnodes.db
    INDEXER_INTERVAL_SECONDS=30
    LOG_LEVEL=DEBUG
"""

import logging
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV_FILE = ".env"
_ENV_FILE_ENCODING = "utf-8"


# =============================================================================
# Discovery
# =============================================================================

class DiscoverySettings(BaseSettings):
    """Where raw node records come from."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_", extra="ignore")

    rpc_url: str = Field(
        default="https://apis.devnet.xandeum.com",
        description="Primary JSON-RPC endpoint used by the polling source",
    )
    fallback_rpc_urls: List[str] = Field(
        default_factory=lambda: [
            "https://api.devnet.xandeum.com:8899",
            "https://rpc.xandeum.network",
        ],
        description="Endpoints tried in order when the primary fails",
    )
    ws_url: Optional[str] = Field(
        default=None,
        description="WebSocket endpoint for the push source",
    )
    mode: Literal["polling", "websocket", "auto"] = Field(
        default="auto",
        description="auto = websocket first when ws_url is set, polling otherwise",
    )
    timeout_seconds: float = Field(default=10.0, gt=0, le=300)

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("DISCOVERY_RPC_URL must be an HTTP(S) endpoint")
        return v.rstrip("/")

    @field_validator("ws_url")
    @classmethod
    def validate_ws_url(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.startswith(("ws://", "wss://")):
            raise ValueError("DISCOVERY_WS_URL must start with ws:// or wss://")
        return v


# =============================================================================
# Storage / Indexer
# =============================================================================

class StorageSettings(BaseSettings):
    """SQLite location for snapshots, rules and alerts."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", extra="ignore")

    db_path: str = Field(default="data/pnodes.db")


class IndexerSettings(BaseSettings):
    """Indexing cycle cadence."""

    model_config = SettingsConfigDict(env_prefix="INDEXER_", extra="ignore")

    interval_seconds: float = Field(default=30.0, ge=1.0, le=86_400)
    autostart: bool = Field(
        default=True,
        description="Start the periodic driver when the API boots",
    )


# =============================================================================
# Normalizer
# =============================================================================

class NormalizerSettings(BaseSettings):
    """Status thresholds and performance-score weights."""

    model_config = SettingsConfigDict(env_prefix="NORMALIZER_", extra="ignore")

    online_threshold_minutes: float = Field(default=5.0, gt=0)
    offline_threshold_minutes: float = Field(default=30.0, gt=0)

    uptime_weight: float = Field(default=0.35, ge=0)
    latency_weight: float = Field(default=0.25, ge=0)
    version_weight: float = Field(default=0.20, ge=0)
    storage_weight: float = Field(default=0.20, ge=0)

    uptime_reference_seconds: float = Field(
        default=86_400.0,
        gt=0,
        description="Uptime at which the uptime ratio saturates at 1.0",
    )
    max_latency_ms: float = Field(
        default=1_000.0,
        gt=0,
        description="Latency at which the latency component reaches 0",
    )

    @model_validator(mode="after")
    def validate_thresholds(self) -> "NormalizerSettings":
        if self.offline_threshold_minutes <= self.online_threshold_minutes:
            raise ValueError("offline threshold must be greater than online threshold")
        total = self.uptime_weight + self.latency_weight + self.version_weight + self.storage_weight
        if total <= 0:
            raise ValueError("performance-score weights must not all be zero")
        return self


# =============================================================================
# Alerts / Analytics
# =============================================================================

class AlertSettings(BaseSettings):
    """Alert rule defaults."""

    model_config = SettingsConfigDict(env_prefix="ALERTS_", extra="ignore")

    default_cooldown_minutes: int = Field(default=15, ge=0, le=7 * 24 * 60)
    critical_multiple: float = Field(
        default=2.0,
        gt=1.0,
        description="Breach beyond threshold x multiple escalates to CRITICAL",
    )


class AnalyticsSettings(BaseSettings):
    """Quant analytics windows and anomaly detection."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_", extra="ignore")

    history_days: int = Field(default=30, ge=1, le=3650)
    anomaly_threshold_stddev: float = Field(default=2.5, gt=0)
    anomaly_window_hours: int = Field(default=24, ge=1, le=24 * 30)
    anomaly_min_points: int = Field(default=10, ge=2)


# =============================================================================
# Root
# =============================================================================

class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding=_ENV_FILE_ENCODING,
        extra="ignore",
        populate_by_name=True,
    )

    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    indexer: IndexerSettings = Field(default_factory=IndexerSettings)
    normalizer: NormalizerSettings = Field(default_factory=NormalizerSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    analytics: AnalyticsSettings = Field(default_factory=AnalyticsSettings)

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )

    def get_log_level(self) -> int:
        """Numeric level for logging.basicConfig."""
        return getattr(logging, self.log_level)


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
