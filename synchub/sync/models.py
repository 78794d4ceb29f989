"""Data models for synchronization results."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from synchub.models.items import ChangeEvent

SyncStatus = Literal["ok", "partial", "fetch_failed", "not_configured", "skipped"]


class SyncResult(BaseModel):
    """Outcome of one sync run for one source."""

    source_name: str = Field(..., description="Source that was synced")
    status: SyncStatus = Field(default="ok")
    created_count: int = Field(default=0, ge=0, description="Records created")
    updated_count: int = Field(default=0, ge=0, description="Records updated")
    change_journal: list[ChangeEvent] = Field(default_factory=list)
    errors: list[str] = Field(
        default_factory=list, description="Per-item and fetch errors encountered during sync"
    )
    message: str | None = Field(default=None, description="One-line status for non-ok runs")
    cursor_advanced: bool = Field(default=False)
    start_time: datetime = Field(..., description="Sync start timestamp")
    end_time: datetime | None = Field(default=None, description="Sync end timestamp")

    @property
    def summary(self) -> str:
        """One-line human-readable summary."""
        if self.created_count or self.updated_count:
            return f"{self.created_count} new, {self.updated_count} updated"
        return "No changes"

    @property
    def status_line(self) -> str:
        """Summary, or the status message of a run that did not reconcile anything."""
        if self.status in ("fetch_failed", "not_configured", "skipped") and self.message:
            return self.message
        return self.summary

    @property
    def duration_seconds(self) -> float:
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if sync completed without errors."""
        return self.status == "ok" and not self.errors
