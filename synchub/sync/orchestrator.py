"""Sync orchestrator sequencing fetch, classification, reconciliation and cursor updates."""

import threading
import time
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

import structlog

from synchub.errors import ConfigurationMissing, RecordNotVisible, SyncError
from synchub.ingestion.paginated_fetcher import FetchResult
from synchub.models.config import SourceConfig, SyncSettings
from synchub.models.items import Cursor
from synchub.storage.base import Collection, ContentSink, Record, Storage
from synchub.sync.cursor_store import CursorStore
from synchub.sync.journal import ChangeJournalBuilder
from synchub.sync.models import SyncResult
from synchub.sync.reconciler import Reconciler
from synchub.sync.registry import SourceRegistry

if TYPE_CHECKING:
    from synchub.sources.base import SyncSource

log = structlog.stdlib.get_logger()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SyncOrchestrator:
    """Runs one sync pass per invocation for a registered source.

    A run moves through ReadCursor, Fetching, Classifying, Reconciling and
    Finalizing. The cursor is written unless the fetch failed before its first
    page, so a fetch cut short still moves the window forward. Failures while
    reconciling individual parents are logged and collected without stopping
    the run. Two runs for the same source never overlap: the second one
    returns immediately with status ``skipped``.
    """

    def __init__(
        self,
        registry: SourceRegistry,
        storage: Storage,
        cursor_store: CursorStore,
        content_sink: ContentSink | None = None,
        settings: SyncSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """
        Initialize the orchestrator.

        Args:
            registry: Sources available for syncing
            storage: Host storage holding the target collections
            cursor_store: Persistence for per-source cursors
            content_sink: Writer for rendered content blocks (content is skipped if None)
            settings: Engine tuning (visibility retries, excerpt limit)
            sleep: Suspension function used for the post-create read-back delay
            clock: Source of the run start time recorded as the next cursor
        """
        self._registry = registry
        self._storage = storage
        self._cursor_store = cursor_store
        self._content_sink = content_sink
        self._settings = settings or SyncSettings()
        self._sleep = sleep
        self._clock = clock
        self._locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        log.info("sync_orchestrator_initialized", sources=registry.names())

    def sync(self, source_name: str, config: SourceConfig) -> SyncResult:
        """
        Run one sync for a source.

        Args:
            source_name: Registered source name
            config: Per-source configuration

        Returns:
            SyncResult with counts, the change journal, and collected errors
        """
        lock = self._lock_for(source_name)
        if not lock.acquire(blocking=False):
            log.warning("sync_already_running", source=source_name)
            return SyncResult(
                source_name=source_name,
                status="skipped",
                message="Sync already running",
                start_time=self._clock(),
                end_time=self._clock(),
            )

        try:
            with structlog.contextvars.bound_contextvars(
                source=source_name, run_id=uuid.uuid4().hex[:8]
            ):
                return self._run(source_name, config)
        finally:
            lock.release()

    def sync_all(self, configs: dict[str, SourceConfig]) -> dict[str, SyncResult]:
        """Run every enabled source that has a configuration, one after another."""
        results: dict[str, SyncResult] = {}
        for name, config in configs.items():
            if not config.enabled:
                log.debug("source_disabled", source=name)
                continue
            results[name] = self.sync(name, config)
        return results

    def resolve_since(
        self, source_name: str, config: SourceConfig, existing_records: list[Record]
    ) -> datetime | None:
        """Pick the fetch window start: forced full sync, bootstrap, override, then cursor.

        An unreadable cursor falls back to a full sync.
        """
        if config.force_full_sync:
            log.info("full_sync_forced", source=source_name)
            return None
        if not existing_records:
            log.info("full_sync_empty_collection", source=source_name)
            return None
        if config.since_override is not None:
            log.info("since_override_used", source=source_name, since=config.since_override)
            return config.since_override

        try:
            cursor = self._cursor_store.load(source_name)
        except RuntimeError as e:
            log.error("cursor_unreadable_full_sync", source=source_name, error=str(e))
            return None

        if cursor.since is None:
            log.info("full_sync_no_cursor", source=source_name)
        else:
            log.info("incremental_sync", source=source_name, since=cursor.since)
        return cursor.since

    def _run(self, source_name: str, config: SourceConfig) -> SyncResult:
        start_time = self._clock()
        log.info("sync_started", source=source_name, start_time=start_time)

        try:
            source, collection = self._resolve(source_name, config)
        except ConfigurationMissing as e:
            log.warning("sync_not_configured", source=source_name, reason=str(e))
            return SyncResult(
                source_name=source_name,
                status="not_configured",
                message=str(e),
                start_time=start_time,
                end_time=self._clock(),
            )

        existing_records = collection.get_all_records()
        since = self.resolve_since(source_name, config, existing_records)

        fetch = self._fetch(source, config, since)
        if fetch.error is not None and fetch.pages == 0:
            log.warning("sync_fetch_failed", source=source_name, error=str(fetch.error))
            return SyncResult(
                source_name=source_name,
                status="fetch_failed",
                message="Fetch failed",
                errors=[str(fetch.error)],
                start_time=start_time,
                end_time=self._clock(),
            )

        classification = source.classifier(config).classify(fetch.items)

        journal = ChangeJournalBuilder(excerpt_limit=self._settings.excerpt_limit)
        reconciler = Reconciler(
            source,
            collection,
            content_sink=self._content_sink,
            visibility_retries=self._settings.visibility_retries,
            visibility_delay=self._settings.visibility_delay,
            sleep=self._sleep,
        )

        errors: list[str] = []
        if fetch.error is not None:
            errors.append(f"Fetch incomplete: {fetch.error}")

        created = 0
        updated = 0
        for parent in classification.parents:
            children = classification.children_of(parent)
            try:
                result = reconciler.reconcile(parent, children, existing_records)
            except RecordNotVisible as e:
                errors.append(f"Skipped {parent.id}: {e}")
                log.warning("record_not_visible", source=source_name, item_id=parent.id, error=str(e))
                continue
            except Exception as e:
                errors.append(f"Failed to reconcile {parent.id}: {e}")
                log.error(
                    "failed_to_reconcile_parent",
                    source=source_name,
                    item_id=parent.id,
                    error=str(e),
                )
                continue

            excerpts = source.excerpts(children, self._settings.excerpt_limit)
            if result.action == "create":
                created += 1
                existing_records.append(result.record)
                journal.record(
                    "created", result.record, major=True, excerpts=excerpts, title=result.title
                )
            elif result.action == "update":
                updated += 1
                journal.record(
                    "updated", result.record, major=False, excerpts=excerpts, title=result.title
                )

        if not fetch.complete:
            log.warning("partial_fetch_cursor_advanced", source=source_name, pages=fetch.pages)
        cursor_advanced = self._advance_cursor(source_name, start_time, errors)

        sync_result = SyncResult(
            source_name=source_name,
            status="ok" if fetch.complete else "partial",
            created_count=created,
            updated_count=updated,
            change_journal=journal.build(),
            errors=errors,
            cursor_advanced=cursor_advanced,
            start_time=start_time,
            end_time=self._clock(),
        )

        log.info(
            "sync_completed",
            source=source_name,
            created=created,
            updated=updated,
            errors=len(errors),
            summary=sync_result.summary,
            duration_seconds=sync_result.duration_seconds,
        )
        return sync_result

    def _resolve(self, source_name: str, config: SourceConfig) -> tuple["SyncSource", Collection]:
        source = self._registry.get(source_name)
        if source is None:
            raise ConfigurationMissing(f"Source '{source_name}' is not registered")

        source.validate_config(config)

        collection = self._storage.find_collection(config.collection)
        if collection is None:
            raise ConfigurationMissing(f"Collection '{config.collection}' not found")

        return source, collection

    def _fetch(self, source: "SyncSource", config: SourceConfig, since: datetime | None) -> FetchResult:
        try:
            return source.fetch(config, since)
        except SyncError as e:
            return FetchResult(error=e)

    def _advance_cursor(self, source_name: str, start_time: datetime, errors: list[str]) -> bool:
        try:
            self._cursor_store.save(Cursor(source_name=source_name, since=start_time))
        except RuntimeError as e:
            errors.append(f"Cursor not saved: {e}")
            log.error("failed_to_advance_cursor", source=source_name, error=str(e))
            return False
        return True

    def _lock_for(self, source_name: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(source_name, threading.Lock())
