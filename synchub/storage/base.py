"""Storage capability interface consumed by the sync engine.

The host application owns records and collections. The engine only needs the
narrow capability set below, so any backend that implements these classes
can be synchronized into.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

FieldKind = Literal["text", "number", "datetime", "choice"]


class FieldSpec(BaseModel):
    """Schema entry for one field of a collection, declared by a source."""

    id: str
    kind: FieldKind = "text"
    choices: dict[str, str] = Field(
        default_factory=dict, description="Choice identifier to label (choice fields only)"
    )


class Property(ABC):
    """A single typed field on a record."""

    @abstractmethod
    def text(self) -> Optional[str]:
        """Return the value as text (choice fields return their label)."""
        pass

    @abstractmethod
    def number(self) -> Optional[float]:
        """Return the value as a number, or None if not numeric."""
        pass

    @abstractmethod
    def date(self) -> Optional[datetime]:
        """Return the value as a datetime, or None if not a date."""
        pass

    @abstractmethod
    def choice(self) -> Optional[str]:
        """Return the selected choice identifier (not its label)."""
        pass

    @abstractmethod
    def set(self, value: Any) -> None:
        """Write a raw value.

        Raises:
            TypeError: If the value does not fit the field type
            ValueError: If the value is rejected by the field
        """
        pass

    def set_choice(self, label: str) -> bool:
        """Select a choice by its human-readable label.

        Returns:
            True if a choice with that label exists and was selected. Fields
            that are not choice fields return False.
        """
        return False


class Record(ABC):
    """A persisted entity in a collection."""

    @property
    @abstractmethod
    def guid(self) -> str:
        pass

    @property
    @abstractmethod
    def title(self) -> str:
        pass

    @abstractmethod
    def prop(self, field_id: str) -> Optional[Property]:
        """Return the property for a field, or None if the field does not exist."""
        pass

    def text(self, field_id: str) -> Optional[str]:
        prop = self.prop(field_id)
        return prop.text() if prop is not None else None


class Collection(ABC):
    """A named collection of records."""

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def get_all_records(self) -> list[Record]:
        pass

    @abstractmethod
    def create_record(self, title: str) -> Optional[str]:
        """Request a new record.

        The record may not be returned by ``get_all_records`` immediately;
        callers must read back before writing fields.

        Returns:
            guid of the new record, or None if creation was refused
        """
        pass


class ContentSink(ABC):
    """Writes rendered content blocks into record bodies."""

    @abstractmethod
    def insert_content(self, block: str, record: Record) -> None:
        """Insert content into a record that has none yet."""
        pass

    @abstractmethod
    def replace_content(self, block: str, record: Record) -> None:
        """Replace the existing content of a record."""
        pass


class Storage(ABC):
    """Entry point to the host's collections."""

    @abstractmethod
    def get_all_collections(self) -> list[Collection]:
        pass

    def find_collection(self, name: str) -> Optional[Collection]:
        for collection in self.get_all_collections():
            if collection.name == name:
                return collection
        return None
