"""Configuration models for the sync engine."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

JournalLevel = Literal["none", "major_only", "all", "verbose"]


class SourceConfig(BaseModel):
    """Per-source synchronization settings."""

    enabled: bool = Field(default=True, description="Whether the source takes part in sync passes")
    token: str | None = Field(default=None, description="API token (or OAuth refresh token)")
    collection: str = Field(default=..., description="Name of the target collection")
    since_override: datetime | None = Field(
        default=None, description="Fetch items updated after this instant instead of the cursor"
    )
    force_full_sync: bool = Field(
        default=False, description="Ignore the stored cursor and fetch everything"
    )
    excluded_categories: list[str] = Field(
        default_factory=list, description="Parent categories dropped before reconciliation"
    )
    require_children: bool | None = Field(
        default=None,
        description="Drop parents without children (None uses the source default)",
    )
    options: dict[str, Any] = Field(
        default_factory=dict, description="Source-specific options (repos, query, endpoints)"
    )


class SyncSettings(BaseModel):
    """Engine-wide tuning for fetch and write behavior."""

    request_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds")
    default_retry_after: float = Field(
        default=60.0, ge=0, description="Backoff used when a 429 carries no Retry-After"
    )
    max_rate_limit_retries: int | None = Field(
        default=None, ge=0, description="Cap on consecutive 429 retries (None is unbounded)"
    )
    visibility_retries: int = Field(
        default=5, ge=1, le=50, description="Read-back attempts after creating a record"
    )
    visibility_delay: float = Field(
        default=0.05, ge=0, le=5, description="Fixed delay before each read-back in seconds"
    )
    excerpt_limit: int = Field(
        default=5, ge=0, le=5, description="Maximum excerpts attached to a change event"
    )


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        description="If True, output JSON logs. If False, use console format.",
    )
    log_file: str | None = Field(
        default=None,
        description="Optional path to log file. If None, logs only to stdout.",
    )


class JournalConfig(BaseModel):
    """How change journals are handed to the logging sink."""

    level: JournalLevel = Field(default="major_only", description="Which change events to emit")
    excerpt_max_length: int = Field(
        default=100, ge=10, description="Truncation length for excerpts at verbose level"
    )


class AppConfig(BaseSettings):
    """Main application configuration.

    Loaded from YAML by ``ConfigLoader`` and overridable from environment
    variables with the SYNCHUB_ prefix, e.g.
    ``SYNCHUB_SOURCES__READWISE__TOKEN``.
    """

    model_config = SettingsConfigDict(
        env_prefix="SYNCHUB_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    sources: dict[str, SourceConfig] = Field(default_factory=dict)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    journal: JournalConfig = Field(default_factory=JournalConfig)
    storage_path: str = Field(
        default="data/records.json", description="Snapshot file for the local record store"
    )
    cursor_path: str = Field(
        default="data/cursors.json", description="File holding per-source sync cursors"
    )
