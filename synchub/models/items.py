"""Pydantic models for fetched items, cursors, and change events."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

EXTERNAL_ID_SEPARATOR = ":"


def make_external_id(source_name: str, item_id: str) -> str:
    """Build the deduplication key for a source item."""
    if not source_name:
        raise ValueError("source_name must not be empty")
    if not item_id:
        raise ValueError("item_id must not be empty")
    return f"{source_name}{EXTERNAL_ID_SEPARATOR}{item_id}"


class RawItem(BaseModel):
    """A source-native item as returned by a remote listing endpoint."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default=..., min_length=1, description="Source-scoped identifier")
    parent_id: str | None = Field(
        default=None, description="Identifier of the parent item; presence marks a child"
    )
    updated_at: str | None = Field(default=None, description="Source update timestamp")
    payload: dict[str, Any] = Field(
        default_factory=dict, description="Untouched JSON object from the source"
    )

    @field_validator("id", "parent_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v: Any) -> Any:
        """Sources such as GitHub return numeric ids."""
        if isinstance(v, int) and not isinstance(v, bool):
            return str(v)
        return v

    @property
    def is_child(self) -> bool:
        return bool(self.parent_id)

    def get(self, key: str, default: Any = None) -> Any:
        """Read a payload field."""
        value = self.payload.get(key)
        return default if value is None else value


class Cursor(BaseModel):
    """Incremental sync watermark for one source."""

    source_name: str = Field(default=..., min_length=1)
    since: datetime | None = Field(default=None, description="None means full sync")

    model_config = {
        "json_schema_extra": {
            "example": {"source_name": "readwise", "since": "2024-01-15T14:30:00Z"}
        }
    }


class ChangeMarker(BaseModel):
    """Field used to decide whether an existing record has new content.

    ``count`` markers update when the fresh value is strictly greater than the
    stored one; ``revision`` markers update whenever the value differs.
    """

    field: str
    kind: Literal["count", "revision"] = "count"


class NormalizedRecord(BaseModel):
    """Record payload derived from one parent item."""

    external_id: str = Field(default=..., min_length=1)
    title: str = Field(default=..., description="Record title")
    fields: dict[str, Any] = Field(
        default_factory=dict, description="Field id to value, excluding external_id"
    )
    child_count: int = Field(default=0, ge=0)


class ChangeEvent(BaseModel):
    """One create or update performed during a sync run."""

    model_config = ConfigDict(frozen=True)

    verb: Literal["created", "updated"]
    title: str | None = None
    record_ref: str = Field(default=..., description="guid of the affected record")
    major: bool
    excerpts: tuple[str, ...] = Field(default=(), max_length=5)


class ReconcileResult(BaseModel):
    """Outcome of reconciling one parent item."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    action: Literal["create", "update", "noop"]
    external_id: str
    title: str = Field(default="", description="Title of the fresh item, used by the change journal")
    record: Any = Field(default=None, description="The storage record that was written")
    changed_child_count: int = Field(default=0, ge=0)
    previous_child_count: int = Field(default=0, ge=0)
    rejected_fields: list[str] = Field(default_factory=list)
