"""Synchronization components: classification, reconciliation, journaling and orchestration."""

from synchub.sync.classifier import Classification, ItemClassifier
from synchub.sync.cursor_store import CursorStore, InMemoryCursorStore, JsonFileCursorStore
from synchub.sync.field_writer import FieldWriter
from synchub.sync.journal import ChangeJournalBuilder, log_change_journal
from synchub.sync.models import SyncResult
from synchub.sync.orchestrator import SyncOrchestrator
from synchub.sync.reconciler import Reconciler
from synchub.sync.registry import SourceRegistry
from synchub.sync.renderer import ContentRenderer

__all__ = [
    "ChangeJournalBuilder",
    "Classification",
    "ContentRenderer",
    "CursorStore",
    "FieldWriter",
    "InMemoryCursorStore",
    "ItemClassifier",
    "JsonFileCursorStore",
    "Reconciler",
    "SourceRegistry",
    "SyncOrchestrator",
    "SyncResult",
    "log_change_journal",
]
