"""In-memory record store implementing the storage capability interface.

Used by the scheduled sync script (persisted as a JSON snapshot) and by the
test suite. New records only become visible after ``visibility_lag`` reads,
mirroring hosts whose record creation is eventually consistent.
"""

import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field

from synchub.storage.base import (
    Collection,
    ContentSink,
    FieldSpec,
    Property,
    Record,
    Storage,
)

log = structlog.stdlib.get_logger()


class MemoryProperty(Property):
    def __init__(self, spec: FieldSpec, value: Any = None):
        self._spec = spec
        self._value = value

    @property
    def raw(self) -> Any:
        return self._value

    def text(self) -> Optional[str]:
        if self._value is None:
            return None
        if self._spec.kind == "choice" and self._value in self._spec.choices:
            return self._spec.choices[self._value]
        if isinstance(self._value, datetime):
            return self._value.isoformat()
        return str(self._value)

    def number(self) -> Optional[float]:
        if self._spec.kind != "number" or self._value is None:
            return None
        return float(self._value)

    def date(self) -> Optional[datetime]:
        return self._value if isinstance(self._value, datetime) else None

    def choice(self) -> Optional[str]:
        if self._spec.kind == "choice" and self._value in self._spec.choices:
            return self._value
        return None

    def set(self, value: Any) -> None:
        if value is None:
            self._value = None
            return

        kind = self._spec.kind
        if kind == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise TypeError(f"{self._spec.id} expects a number, got {type(value).__name__}")
        elif kind == "datetime":
            if isinstance(value, str):
                value = datetime.fromisoformat(value.replace("Z", "+00:00"))
            elif not isinstance(value, datetime):
                raise TypeError(f"{self._spec.id} expects a datetime, got {type(value).__name__}")
        elif not isinstance(value, str):
            # text and choice fields; a plain string on a choice field is the
            # host's silent text fallback
            raise TypeError(f"{self._spec.id} expects text, got {type(value).__name__}")

        self._value = value

    def set_choice(self, label: str) -> bool:
        if self._spec.kind != "choice":
            return False
        for choice_id, choice_label in self._spec.choices.items():
            if choice_label.lower() == label.lower():
                self._value = choice_id
                return True
        return False


class MemoryRecord(Record):
    def __init__(self, guid: str, title: str, fields: list[FieldSpec]):
        self._guid = guid
        self._title = title
        self._props = {spec.id: MemoryProperty(spec) for spec in fields}
        self.content: str | None = None

    @property
    def guid(self) -> str:
        return self._guid

    @property
    def title(self) -> str:
        return self._title

    def prop(self, field_id: str) -> Optional[MemoryProperty]:
        return self._props.get(field_id)

    def values(self) -> dict[str, Any]:
        return {field_id: prop.raw for field_id, prop in self._props.items() if prop.raw is not None}


class MemoryCollection(Collection):
    def __init__(self, name: str, fields: list[FieldSpec], visibility_lag: int = 0):
        self._name = name
        self.fields = fields
        self.visibility_lag = visibility_lag
        self._records: list[MemoryRecord] = []
        self._pending: list[list[Any]] = []

    @property
    def name(self) -> str:
        return self._name

    def get_all_records(self) -> list[MemoryRecord]:
        still_pending = []
        for entry in self._pending:
            record, remaining = entry
            if remaining <= 0:
                self._records.append(record)
            else:
                entry[1] = remaining - 1
                still_pending.append(entry)
        self._pending = still_pending
        return list(self._records)

    def create_record(self, title: str) -> Optional[str]:
        if not title:
            return None
        record = MemoryRecord(uuid.uuid4().hex, title, self.fields)
        self._pending.append([record, self.visibility_lag])
        log.debug("memory_record_created", collection=self._name, guid=record.guid)
        return record.guid

    def add_record(self, title: str, **values: Any) -> MemoryRecord:
        """Insert an immediately visible record with preset values."""
        record = MemoryRecord(uuid.uuid4().hex, title, self.fields)
        for field_id, value in values.items():
            prop = record.prop(field_id)
            if prop is None:
                raise KeyError(f"Unknown field '{field_id}' in collection '{self._name}'")
            prop.set(value)
        self._records.append(record)
        return record


class RecordSnapshot(BaseModel):
    guid: str
    title: str
    values: dict[str, Any] = Field(default_factory=dict)
    content: str | None = None


class CollectionSnapshot(BaseModel):
    name: str
    fields: list[FieldSpec] = Field(default_factory=list)
    records: list[RecordSnapshot] = Field(default_factory=list)


class StorageSnapshot(BaseModel):
    collections: list[CollectionSnapshot] = Field(default_factory=list)


class MemoryStorage(Storage, ContentSink):
    """Record store plus content sink kept in process memory."""

    def __init__(self) -> None:
        self._collections: list[MemoryCollection] = []
        self.content_writes: list[tuple[str, str]] = []

    def get_all_collections(self) -> list[MemoryCollection]:
        return list(self._collections)

    def add_collection(
        self, name: str, fields: list[FieldSpec], visibility_lag: int = 0
    ) -> MemoryCollection:
        collection = MemoryCollection(name, fields, visibility_lag=visibility_lag)
        self._collections.append(collection)
        return collection

    def insert_content(self, block: str, record: Record) -> None:
        self._write_content("insert", block, record)

    def replace_content(self, block: str, record: Record) -> None:
        self._write_content("replace", block, record)

    def _write_content(self, operation: str, block: str, record: Record) -> None:
        if not isinstance(record, MemoryRecord):
            raise TypeError("MemoryStorage can only write content to its own records")
        record.content = block
        self.content_writes.append((operation, record.guid))

    def to_snapshot(self) -> StorageSnapshot:
        return StorageSnapshot(
            collections=[
                CollectionSnapshot(
                    name=collection.name,
                    fields=collection.fields,
                    records=[
                        RecordSnapshot(
                            guid=record.guid,
                            title=record.title,
                            values=record.values(),
                            content=record.content,
                        )
                        for record in collection.get_all_records()
                    ],
                )
                for collection in self._collections
            ]
        )

    def save(self, path: str) -> None:
        target = Path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.to_snapshot().model_dump_json(indent=2))
        log.info("storage_snapshot_saved", path=path, collections=len(self._collections))

    @classmethod
    def load(cls, path: str) -> "MemoryStorage":
        snapshot = StorageSnapshot.model_validate_json(Path(path).read_text())
        storage = cls()
        for collection_snapshot in snapshot.collections:
            collection = storage.add_collection(collection_snapshot.name, collection_snapshot.fields)
            for record_snapshot in collection_snapshot.records:
                record = MemoryRecord(record_snapshot.guid, record_snapshot.title, collection.fields)
                for field_id, value in record_snapshot.values.items():
                    prop = record.prop(field_id)
                    if prop is not None:
                        prop.set(value)
                record.content = record_snapshot.content
                collection._records.append(record)
        log.info("storage_snapshot_loaded", path=path, collections=len(storage._collections))
        return storage
