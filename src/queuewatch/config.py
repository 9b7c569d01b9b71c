"""
queuewatch Configuration
========================

This module handles configuration loading for the queue monitor.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    QUEUEWATCH_SOURCE_URL        -> source.url
    QUEUEWATCH_CAMERA_ID         -> source.camera_id
    QUEUEWATCH_POLL_INTERVAL     -> source.poll_interval_seconds
    QUEUEWATCH_LOCATION_ID       -> location.location_id
    QUEUEWATCH_TIMEZONE          -> location.timezone
    QUEUEWATCH_CAPACITY          -> detection.capacity
    QUEUEWATCH_EMPTY             -> detection.empty
    QUEUEWATCH_ESTIMATOR         -> detection.estimator
    QUEUEWATCH_ORPHAN_POLICY     -> detection.orphan_policy
    QUEUEWATCH_MAX_EVENT_MINUTES -> detection.max_event_minutes
    QUEUEWATCH_DB_PATH           -> storage.db_path
    QUEUEWATCH_PORT              -> server.port
    QUEUEWATCH_LOG_LEVEL         -> logging.level
    PORT                         -> server.port (container platforms)

Example:
    from queuewatch.config import settings

    print(settings.detection.capacity)
    print(settings.location.timezone)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field, model_validator


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class AgentConfig(BaseModel):
    """Service identification configuration."""

    name: str = Field(default="queuewatch", description="Service name")
    version: str = Field(default="v0.1.0", description="Service version")


class LocationConfig(BaseModel):
    """The monitored location."""

    location_id: str = Field(
        default="abd6ab54-0eb9-4f52-a5a0-df6d8fd1ecb2",
        description="Identifier the queue events are scoped to",
    )
    timezone: str = Field(
        default="Asia/Tokyo",
        description="IANA time zone used for calendar bucketing",
    )


class SourceConfig(BaseModel):
    """Occupancy API polling configuration."""

    url: str = Field(
        default=(
            "https://api.mebaru.blue/api/cameras/getLatestDataForGroup"
            "?id=77adc011-b0d6-4421-989e-625560ffd53a"
        ),
        description="Occupancy API endpoint",
    )
    camera_id: str = Field(
        default="abd6ab54-0eb9-4f52-a5a0-df6d8fd1ecb2",
        description="Camera record to read from the API response",
    )
    poll_interval_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Delay between polls",
    )
    request_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        description="HTTP request timeout",
    )
    failure_backoff_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Extra delay after consecutive failures",
    )
    failures_before_backoff: int = Field(
        default=3,
        ge=1,
        description="Consecutive failures before backing off",
    )
    max_queue_size: int = Field(
        default=100,
        ge=1,
        description="Maximum size of the internal sample buffer",
    )


class DetectionConfig(BaseModel):
    """Queue detection thresholds and policies."""

    capacity: int = Field(
        default=6,
        ge=1,
        description="Occupancy at or above this is 'at capacity'",
    )
    empty: int = Field(
        default=2,
        ge=0,
        description="Occupancy at or below this ends an episode",
    )
    estimator: Literal["turnover", "gap_refill"] = Field(
        default="turnover",
        description="Waiting estimate: turnover count or refill size sum",
    )
    orphan_policy: Literal["delete", "force_close"] = Field(
        default="delete",
        description="What to do with open events found at startup",
    )
    max_event_minutes: Optional[float] = Field(
        default=None,
        gt=0,
        description="Force-close episodes older than this (None = never)",
    )

    @model_validator(mode="after")
    def _check_thresholds(self) -> "DetectionConfig":
        if self.empty >= self.capacity:
            raise ValueError(
                f"detection.empty ({self.empty}) must be lower than "
                f"detection.capacity ({self.capacity})"
            )
        return self


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    db_path: str = Field(
        default="./queuewatch.db",
        description="Path to the SQLite database file",
    )


class ReportingConfig(BaseModel):
    """Defaults for reporting queries."""

    default_days: int = Field(default=7, ge=1, le=366, description="Lookback window")
    history_limit: int = Field(default=50, ge=1, description="Queue history rows")
    status_history_limit: int = Field(default=100, ge=1, description="Status change rows")
    fallback_minutes_per_person: float = Field(
        default=2.0,
        gt=0,
        description="Wait prediction when no history is available",
    )


class ServerConfig(BaseModel):
    """Server configuration."""

    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=3000, ge=1, le=65535, description="Bind port")
    push_interval_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Heartbeat interval on the status websocket",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")
    log_every_n_samples: int = Field(
        default=30,
        ge=1,
        description="Periodic monitor summary interval",
    )


class Settings(BaseModel):
    """
    Main settings class for queuewatch.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    agent: AgentConfig = Field(default_factory=AgentConfig)
    location: LocationConfig = Field(default_factory=LocationConfig)
    source: SourceConfig = Field(default_factory=SourceConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    reporting: ReportingConfig = Field(default_factory=ReportingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration

    Raises:
        pydantic.ValidationError: If the thresholds are inconsistent
            (empty >= capacity) or any value is out of range.
    """
    if config_path is None:
        search_paths = [
            Path("config.yaml"),
            Path("config.yml"),
            Path("/app/config.yaml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.warning("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Source settings
    if env_url := os.environ.get("QUEUEWATCH_SOURCE_URL"):
        config_data.setdefault("source", {})["url"] = env_url
    if env_camera := os.environ.get("QUEUEWATCH_CAMERA_ID"):
        config_data.setdefault("source", {})["camera_id"] = env_camera
    if env_interval := os.environ.get("QUEUEWATCH_POLL_INTERVAL"):
        config_data.setdefault("source", {})["poll_interval_seconds"] = float(env_interval)

    # Location settings
    if env_location := os.environ.get("QUEUEWATCH_LOCATION_ID"):
        config_data.setdefault("location", {})["location_id"] = env_location
    if env_tz := os.environ.get("QUEUEWATCH_TIMEZONE"):
        config_data.setdefault("location", {})["timezone"] = env_tz

    # Detection settings
    if env_capacity := os.environ.get("QUEUEWATCH_CAPACITY"):
        config_data.setdefault("detection", {})["capacity"] = int(env_capacity)
    if env_empty := os.environ.get("QUEUEWATCH_EMPTY"):
        config_data.setdefault("detection", {})["empty"] = int(env_empty)
    if env_estimator := os.environ.get("QUEUEWATCH_ESTIMATOR"):
        config_data.setdefault("detection", {})["estimator"] = env_estimator
    if env_orphan := os.environ.get("QUEUEWATCH_ORPHAN_POLICY"):
        config_data.setdefault("detection", {})["orphan_policy"] = env_orphan
    if env_max := os.environ.get("QUEUEWATCH_MAX_EVENT_MINUTES"):
        config_data.setdefault("detection", {})["max_event_minutes"] = float(env_max)

    # Storage settings
    if env_db := os.environ.get("QUEUEWATCH_DB_PATH"):
        config_data.setdefault("storage", {})["db_path"] = env_db

    # Server settings (container platforms use PORT)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)
    elif env_port := os.environ.get("QUEUEWATCH_PORT"):
        config_data.setdefault("server", {})["port"] = int(env_port)

    # Logging settings
    if env_log := os.environ.get("QUEUEWATCH_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)
