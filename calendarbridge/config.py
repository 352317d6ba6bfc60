"""
Configuration management using Pydantic models loaded from YAML.
"""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Literal, Mapping, Optional

import pendulum
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.slot_search import (
    DEFAULT_MAX_ALTERNATIVES,
    DEFAULT_SEARCH_DAYS,
    DEFAULT_START_TIMES,
)


class OAuthClientConfig(BaseModel):
    """OAuth client credentials registered with a calendar vendor."""
    client_id: str = ""
    client_secret: str = ""

    def is_configured(self) -> bool:
        return bool(self.client_id and self.client_secret)


class OutlookConfig(OAuthClientConfig):
    """Microsoft identity platform settings."""
    default_tenant_id: str = "common"
    scopes: List[str] = Field(
        default_factory=lambda: ["https://graph.microsoft.com/Calendars.ReadWrite"]
    )


class TokenConfig(BaseModel):
    """Access-token freshness settings."""
    refresh_buffer_minutes: int = 5

    @field_validator("refresh_buffer_minutes")
    @classmethod
    def validate_buffer(cls, value: int) -> int:
        if value < 0:
            raise ValueError("refresh_buffer_minutes must not be negative")
        return value


class HttpConfig(BaseModel):
    """Outbound HTTP settings shared by all vendor adapters."""
    timeout_seconds: float = 30.0

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value


class SearchConfig(BaseModel):
    """Alternative-slot search grid."""
    days: int = DEFAULT_SEARCH_DAYS
    start_times: List[str] = Field(default_factory=lambda: list(DEFAULT_START_TIMES))
    max_alternatives: int = DEFAULT_MAX_ALTERNATIVES

    @field_validator("days", "max_alternatives")
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("search days and max_alternatives must be greater than zero")
        return value

    @field_validator("start_times")
    @classmethod
    def validate_start_times(cls, value: List[str]) -> List[str]:
        """Ensure every start time is a valid ``HH:MM`` value."""
        if not value:
            raise ValueError("start_times must not be empty")
        for item in value:
            try:
                datetime.strptime(item, "%H:%M")
            except ValueError as exc:
                raise ValueError(f"Invalid start time '{item}', expected HH:MM") from exc
        return value


class ReminderConfig(BaseModel):
    method: Literal["email", "popup"]
    minutes: int

    @field_validator("minutes")
    @classmethod
    def validate_minutes(cls, value: int) -> int:
        if value < 0:
            raise ValueError("reminder minutes must not be negative")
        return value


class BookingConfig(BaseModel):
    """Defaults applied to bookings made over the phone."""
    default_duration_minutes: int = 30
    source: str = "AI Receptionist"
    reminders: List[ReminderConfig] = Field(
        default_factory=lambda: [
            ReminderConfig(method="email", minutes=24 * 60),
            ReminderConfig(method="popup", minutes=60),
        ]
    )

    @field_validator("default_duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure booking duration is positive."""
        if value <= 0:
            raise ValueError("default_duration_minutes must be greater than zero")
        return value


class StorageConfig(BaseModel):
    """Where calendar connection records live."""
    backend: Literal["memory", "supabase"] = "memory"
    connections_file: Optional[Path] = None
    supabase_url: str = ""
    supabase_key: str = ""
    table: str = "calendar_connections"

    @model_validator(mode="after")
    def validate_backend_settings(self) -> "StorageConfig":
        """Ensure the selected backend has what it needs."""
        if self.backend == "supabase" and not (self.supabase_url and self.supabase_key):
            raise ValueError("supabase storage requires supabase_url and supabase_key")
        return self


class AppConfig(BaseModel):
    """Application configuration."""
    default_timezone: str = "America/New_York"
    log_level: str = "INFO"
    google: OAuthClientConfig = Field(default_factory=OAuthClientConfig)
    outlook: OutlookConfig = Field(default_factory=OutlookConfig)
    calendly: OAuthClientConfig = Field(default_factory=OAuthClientConfig)
    tokens: TokenConfig = Field(default_factory=TokenConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    booking: BookingConfig = Field(default_factory=BookingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @field_validator("default_timezone")
    @classmethod
    def validate_timezone(cls, value: str) -> str:
        """Ensure the zone is a known IANA identifier."""
        try:
            pendulum.timezone(value)
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    def with_environment(self, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Return a copy with empty credentials filled from environment variables."""
        return AppConfig(**_fill_from_environment(self.model_dump(), environ))

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance with environment credentials applied

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        config = cls(**_fill_from_environment(data))
        connections_file = config.storage.connections_file
        if connections_file is not None and not connections_file.is_absolute():
            config.storage.connections_file = config_path.parent / connections_file

        return config


def _fill_from_environment(
    data: Dict[str, Any],
    environ: Optional[Mapping[str, str]] = None,
) -> Dict[str, Any]:
    """
    Fill credentials left empty in ``data`` from environment variables.

    Recognised variables: ``GOOGLE_CLIENT_ID``, ``GOOGLE_CLIENT_SECRET``,
    ``OUTLOOK_CLIENT_ID``, ``OUTLOOK_CLIENT_SECRET``, ``CALENDLY_CLIENT_ID``,
    ``CALENDLY_CLIENT_SECRET``, ``SUPABASE_URL``, ``SUPABASE_SERVICE_ROLE_KEY``.
    """
    env = os.environ if environ is None else environ

    for section in ("google", "outlook", "calendly"):
        values = data.setdefault(section, {}) or {}
        data[section] = values
        for key in ("client_id", "client_secret"):
            if not values.get(key):
                values[key] = env.get(f"{section.upper()}_{key.upper()}", "")

    storage = data.setdefault("storage", {}) or {}
    data["storage"] = storage
    if not storage.get("supabase_url"):
        storage["supabase_url"] = env.get("SUPABASE_URL", "")
    if not storage.get("supabase_key"):
        storage["supabase_key"] = env.get("SUPABASE_SERVICE_ROLE_KEY", "")

    return data


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path
