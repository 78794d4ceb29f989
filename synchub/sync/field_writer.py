"""Two-step field writes: choice label first, plain value as fallback."""

from datetime import datetime
from typing import Any

import structlog

from synchub.errors import FieldWriteRejected
from synchub.storage.base import Record

log = structlog.stdlib.get_logger()


class FieldWriter:
    """Writes normalized values onto records through the storage capability interface.

    String values are first offered to the field as a choice label. When no
    choice matches (or the field is not a choice field) the value is written
    as plain text instead, which is the host's normal fallback and not an
    error.
    """

    def write(self, record: Record, field_id: str, value: Any) -> None:
        """
        Write one field.

        Raises:
            FieldWriteRejected: If the field is missing or storage refuses the value
        """
        prop = record.prop(field_id)
        if prop is None:
            raise FieldWriteRejected(field_id, "field does not exist")

        try:
            if isinstance(value, str) and prop.set_choice(value):
                return
            prop.set(value)
        except (TypeError, ValueError, AttributeError) as e:
            raise FieldWriteRejected(field_id, str(e)) from e

    def write_all(self, record: Record, fields: dict[str, Any]) -> list[str]:
        """
        Write every field, skipping the ones storage rejects.

        Returns:
            Identifiers of rejected fields
        """
        rejected: list[str] = []
        for field_id, value in fields.items():
            try:
                self.write(record, field_id, value)
            except FieldWriteRejected as e:
                rejected.append(field_id)
                log.warning(
                    "field_write_rejected",
                    record_guid=record.guid,
                    field=field_id,
                    reason=e.reason,
                )
        return rejected

    def read(self, record: Record, field_id: str, like: Any = None) -> Any:
        """Read a field using the accessor that matches the type of ``like``."""
        prop = record.prop(field_id)
        if prop is None:
            return None
        if isinstance(like, (int, float)) and not isinstance(like, bool):
            return prop.number()
        if isinstance(like, datetime):
            return prop.date()
        return prop.text()

    def differs(self, record: Record, field_id: str, value: Any) -> bool:
        """True when the stored value of a field is not ``value``."""
        current = self.read(record, field_id, like=value)
        if value is None or value == "":
            return current not in (None, "")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return current is None or float(current) != float(value)
        return current != value
