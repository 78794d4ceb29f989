"""Cursor persistence for incremental synchronization."""

import os
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

from synchub.models.items import Cursor

log = structlog.stdlib.get_logger()


class CursorStore(ABC):
    """Holds the last-synchronized watermark per source."""

    @abstractmethod
    def load(self, source_name: str) -> Cursor:
        """
        Load the cursor for a source.

        Args:
            source_name: Registered source name

        Returns:
            Stored cursor, or a cursor with ``since=None`` if none was saved
        """
        pass

    @abstractmethod
    def save(self, cursor: Cursor) -> None:
        """
        Replace the stored cursor for ``cursor.source_name``.

        Raises:
            RuntimeError: If the cursor cannot be persisted
        """
        pass


class InMemoryCursorStore(CursorStore):
    """Cursor store kept in process memory."""

    def __init__(self, cursors: dict[str, Cursor] | None = None):
        self._cursors: dict[str, Cursor] = dict(cursors or {})
        self._lock = threading.Lock()

    def load(self, source_name: str) -> Cursor:
        with self._lock:
            cursor = self._cursors.get(source_name)
        return cursor or Cursor(source_name=source_name)

    def save(self, cursor: Cursor) -> None:
        with self._lock:
            self._cursors[cursor.source_name] = cursor
        log.info("cursor_saved", source=cursor.source_name, since=cursor.since)


class CursorFile(BaseModel):
    cursors: dict[str, Cursor] = Field(default_factory=dict)


class JsonFileCursorStore(CursorStore):
    """Cursor store persisted as a single JSON document.

    Writes go to a temporary sibling file that is then renamed over the
    original, so a crash never leaves a half-written cursor file behind.
    """

    def __init__(self, path: str):
        self._path = Path(path)
        self._lock = threading.Lock()
        log.info("json_cursor_store_initialized", path=str(self._path))

    def load(self, source_name: str) -> Cursor:
        with self._lock:
            cursor = self._read().cursors.get(source_name)

        if cursor is None:
            log.info("no_cursor_found", source=source_name)
            return Cursor(source_name=source_name)

        log.info("cursor_loaded", source=source_name, since=cursor.since)
        return cursor

    def save(self, cursor: Cursor) -> None:
        try:
            with self._lock:
                document = self._read_or_replace()
                document.cursors[cursor.source_name] = cursor
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
                tmp_path.write_text(document.model_dump_json(indent=2))
                os.replace(tmp_path, self._path)
        except OSError as e:
            log.error("failed_to_save_cursor", source=cursor.source_name, error=str(e))
            raise RuntimeError(f"Failed to save cursor: {e}") from e

        log.info("cursor_saved", source=cursor.source_name, since=cursor.since)

    def _read_or_replace(self) -> CursorFile:
        try:
            return self._read()
        except RuntimeError:
            log.warning("replacing_unreadable_cursor_file", path=str(self._path))
            return CursorFile()

    def _read(self) -> CursorFile:
        if not self._path.exists():
            return CursorFile()

        try:
            return CursorFile.model_validate_json(self._path.read_text())
        except (OSError, ValidationError) as e:
            log.error("failed_to_load_cursor_file", path=str(self._path), error=str(e))
            raise RuntimeError(f"Failed to load cursor file {self._path}: {e}") from e
