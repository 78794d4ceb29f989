"""Storage capability interface and the in-memory record store."""

from synchub.storage.base import Collection, ContentSink, FieldSpec, Property, Record, Storage
from synchub.storage.memory import MemoryCollection, MemoryRecord, MemoryStorage

__all__ = [
    "Collection",
    "ContentSink",
    "FieldSpec",
    "MemoryCollection",
    "MemoryRecord",
    "MemoryStorage",
    "Property",
    "Record",
    "Storage",
]
