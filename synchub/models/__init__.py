"""Data models for the sync engine."""

from synchub.models.config import (
    AppConfig,
    JournalConfig,
    LoggingConfig,
    SourceConfig,
    SyncSettings,
)
from synchub.models.items import (
    ChangeEvent,
    ChangeMarker,
    Cursor,
    NormalizedRecord,
    RawItem,
    ReconcileResult,
    make_external_id,
)

__all__ = [
    "AppConfig",
    "ChangeEvent",
    "ChangeMarker",
    "Cursor",
    "JournalConfig",
    "LoggingConfig",
    "NormalizedRecord",
    "RawItem",
    "ReconcileResult",
    "SourceConfig",
    "SyncSettings",
    "make_external_id",
]
