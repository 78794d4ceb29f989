"""Create/update/no-op decisions for parent items against existing records."""

import time
from typing import TYPE_CHECKING, Callable, Literal

import structlog

from synchub.errors import RecordNotVisible
from synchub.models.items import NormalizedRecord, RawItem, ReconcileResult
from synchub.storage.base import Collection, ContentSink, Record
from synchub.sync.field_writer import FieldWriter

if TYPE_CHECKING:
    from synchub.sources.base import SyncSource

log = structlog.stdlib.get_logger()

EXTERNAL_ID_FIELD = "external_id"


class Reconciler:
    """Upserts parents into a collection keyed by external id.

    Change detection uses the source's change marker: a ``count`` marker
    updates only when the fresh child count is strictly greater than the
    stored one, a ``revision`` marker whenever the value differs. Any tracked
    field that differs also forces an update. Edits to existing children that
    leave the count unchanged are therefore not detected.
    """

    def __init__(
        self,
        source: "SyncSource",
        collection: Collection,
        content_sink: ContentSink | None = None,
        field_writer: FieldWriter | None = None,
        visibility_retries: int = 5,
        visibility_delay: float = 0.05,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._source = source
        self._collection = collection
        self._content_sink = content_sink
        self._field_writer = field_writer or FieldWriter()
        self._visibility_retries = visibility_retries
        self._visibility_delay = visibility_delay
        self._sleep = sleep

    def find_existing(self, external_id: str, existing_records: list[Record]) -> Record | None:
        matches = [r for r in existing_records if r.text(EXTERNAL_ID_FIELD) == external_id]
        if len(matches) > 1:
            log.warning(
                "duplicate_external_id",
                external_id=external_id,
                count=len(matches),
                guids=[r.guid for r in matches],
            )
        return matches[0] if matches else None

    def reconcile(
        self,
        parent: RawItem,
        children: list[RawItem],
        existing_records: list[Record],
    ) -> ReconcileResult:
        """
        Reconcile one parent item.

        Args:
            parent: Parent item from the classifier
            children: The parent's children in emission order
            existing_records: Records currently in the target collection

        Returns:
            ReconcileResult describing the action taken

        Raises:
            RecordNotVisible: If a created record never appeared on read-back
        """
        normalized = self._source.normalize(parent, children)
        existing = self.find_existing(normalized.external_id, existing_records)

        if existing is None:
            return self._create(parent, children, normalized)

        previous_count = self._stored_child_count(existing)
        action = self.decide(normalized, existing, previous_count)
        if action == "noop":
            log.debug("record_unchanged", external_id=normalized.external_id)
            return ReconcileResult(
                action="noop",
                external_id=normalized.external_id,
                title=normalized.title,
                record=existing,
                previous_child_count=previous_count,
            )

        return self._update(parent, children, normalized, existing, previous_count)

    def decide(
        self,
        normalized: NormalizedRecord,
        existing: Record,
        previous_count: int,
    ) -> Literal["update", "noop"]:
        marker = self._source.change_marker

        if marker.kind == "count":
            if normalized.child_count > previous_count:
                return "update"
        elif self._field_writer.differs(existing, marker.field, normalized.fields.get(marker.field)):
            return "update"

        for field_id in self._source.tracked_fields:
            if field_id in normalized.fields and self._field_writer.differs(
                existing, field_id, normalized.fields[field_id]
            ):
                log.debug(
                    "tracked_field_changed",
                    external_id=normalized.external_id,
                    field=field_id,
                )
                return "update"

        return "noop"

    def _create(
        self, parent: RawItem, children: list[RawItem], normalized: NormalizedRecord
    ) -> ReconcileResult:
        record = self._create_visible_record(normalized)
        rejected = self._field_writer.write_all(
            record, {EXTERNAL_ID_FIELD: normalized.external_id, **normalized.fields}
        )

        content = self._source.render_content(parent, children)
        if content and self._content_sink is not None:
            self._content_sink.insert_content(content, record)

        log.info(
            "record_created",
            external_id=normalized.external_id,
            guid=record.guid,
            title=normalized.title,
            child_count=normalized.child_count,
        )
        return ReconcileResult(
            action="create",
            external_id=normalized.external_id,
            title=normalized.title,
            record=record,
            changed_child_count=normalized.child_count,
            rejected_fields=rejected,
        )

    def _update(
        self,
        parent: RawItem,
        children: list[RawItem],
        normalized: NormalizedRecord,
        existing: Record,
        previous_count: int,
    ) -> ReconcileResult:
        marker = self._source.change_marker
        fields = dict(normalized.fields)
        shrunk = marker.kind == "count" and normalized.child_count < previous_count
        if marker.kind == "count":
            fields[marker.field] = max(previous_count, normalized.child_count)

        rejected = self._field_writer.write_all(
            existing, {EXTERNAL_ID_FIELD: normalized.external_id, **fields}
        )

        # an incremental fetch can return fewer children than were merged before
        content = "" if shrunk else self._source.render_content(parent, children)
        if content and self._content_sink is not None:
            self._content_sink.replace_content(content, existing)

        log.info(
            "record_updated",
            external_id=normalized.external_id,
            guid=existing.guid,
            previous_child_count=previous_count,
            child_count=normalized.child_count,
        )
        return ReconcileResult(
            action="update",
            external_id=normalized.external_id,
            title=normalized.title,
            record=existing,
            changed_child_count=max(normalized.child_count - previous_count, 0),
            previous_child_count=previous_count,
            rejected_fields=rejected,
        )

    def _create_visible_record(self, normalized: NormalizedRecord) -> Record:
        guid = self._collection.create_record(normalized.title)
        if not guid:
            raise RecordNotVisible(
                f"Collection '{self._collection.name}' refused to create '{normalized.title}'"
            )

        for attempt in range(1, self._visibility_retries + 1):
            self._sleep(self._visibility_delay)
            for record in self._collection.get_all_records():
                if record.guid == guid:
                    return record
            log.debug("created_record_not_visible_yet", guid=guid, attempt=attempt)

        raise RecordNotVisible(
            f"Record {guid} not visible after {self._visibility_retries} reads", guid=guid
        )

    def _stored_child_count(self, record: Record) -> int:
        marker = self._source.change_marker
        if marker.kind != "count":
            return 0
        prop = record.prop(marker.field)
        value = prop.number() if prop is not None else None
        return int(value) if value else 0
