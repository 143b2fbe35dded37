"""12-factor configuration adapter using environment variables and TOML config."""

import tomllib
from pathlib import Path
from typing import Any

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORE_BACKENDS = ("memory", "firestore")

# TOML section -> fields it may override
_TOML_SECTIONS: dict[str, tuple[str, ...]] = {
    "presence": (
        "heartbeat_interval_seconds",
        "background_timeout_seconds",
        "presence_stale_after_seconds",
        "operator_status_collection",
        "member_status_collection",
        "remove_member_record_on_offline",
        "display_timezone",
    ),
    "messaging": ("send_timeout_seconds", "messages_collection"),
    "store": (
        "store_backend",
        "firestore_project_id",
        "firestore_database",
        "firestore_poll_interval_seconds",
    ),
}


class AppConfig(BaseSettings):
    """Application configuration following 12-factor principles."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Presence configuration
    heartbeat_interval_seconds: float = Field(
        default=30, description="Interval between presence heartbeat writes in seconds"
    )
    background_timeout_seconds: float = Field(
        default=3600,
        description="Seconds the app may stay in background before the owner is forced offline",
    )
    presence_stale_after_seconds: float = Field(
        default=120,
        description="An online record older than this is reported offline",
    )
    operator_status_collection: str = Field(
        default="adminStatus", description="Collection holding operator presence records"
    )
    member_status_collection: str = Field(
        default="studentStatus", description="Collection holding member presence records"
    )
    remove_member_record_on_offline: bool = Field(
        default=False,
        description="Delete a member's presence record after marking it offline",
    )
    display_timezone: str = Field(
        default="Asia/Manila",
        description="Timezone for formatting 'last seen' dates (IANA timezone name)",
    )

    # Messaging configuration
    send_timeout_seconds: float = Field(
        default=15, description="Seconds before an unacknowledged send is marked failed"
    )
    messages_collection: str = Field(default="messages", description="Collection holding messages")

    # Store configuration
    store_backend: str = Field(default="memory", description="Store backend: 'memory' or 'firestore'")
    firestore_project_id: str | None = Field(default=None, description="Firestore project id")
    firestore_database: str = Field(default="(default)", description="Firestore database id")
    firestore_id_token: str | None = Field(
        default=None, description="Firebase ID token sent as bearer credentials"
    )
    firestore_poll_interval_seconds: float = Field(
        default=5, description="Polling interval for Firestore subscriptions in seconds"
    )

    log_level: str = Field(default="INFO", description="Root logging level")

    # TOML config file path (optional)
    config_file: str | None = Field(
        default=None, description="Path to TOML configuration file overriding the defaults"
    )

    @field_validator(
        "heartbeat_interval_seconds",
        "background_timeout_seconds",
        "presence_stale_after_seconds",
        "send_timeout_seconds",
        "firestore_poll_interval_seconds",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        """Validate that intervals and timeouts are positive."""
        if v <= 0:
            raise ValueError("intervals and timeouts must be positive")
        return v

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        """Validate store backend is either 'memory' or 'firestore'."""
        if v.lower() not in STORE_BACKENDS:
            raise ValueError("store_backend must be either 'memory' or 'firestore'")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize the log level name."""
        return v.upper()

    @classmethod
    def for_testing(cls, **overrides: Any) -> "AppConfig":
        """Build a config that ignores the process environment and ``.env``."""
        # model_validate skips the settings sources (environment, .env)
        return cls.model_validate(overrides)

    def status_collection(self, role: str) -> str:
        """Collection holding presence records for a role."""
        return self.operator_status_collection if role == "operator" else self.member_status_collection

    def load_toml(self) -> dict[str, Any]:
        """Load the TOML file and apply its overrides to this config.

        Returns:
            The parsed TOML data, or an empty dict if no file is configured.
        """
        if not self.config_file:
            return {}

        config_path = Path(self.config_file)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)

        for section, field_names in _TOML_SECTIONS.items():
            values = toml_data.get(section, {})
            if not isinstance(values, dict):
                raise ValueError(f"TOML config '{section}' must be a table")
            for field_name in field_names:
                if field_name in values:
                    setattr(self, field_name, values[field_name])

        # Re-run validators on the merged values
        validated = type(self).model_validate(self.model_dump())
        for field_name in type(self).model_fields:
            setattr(self, field_name, getattr(validated, field_name))
        return toml_data
