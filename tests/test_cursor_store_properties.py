"""Property-based tests for cursor persistence."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from synchub.models.items import Cursor
from synchub.sync.cursor_store import InMemoryCursorStore, JsonFileCursorStore

log = structlog.stdlib.get_logger()

source_names = st.text(
    min_size=1, max_size=20, alphabet=st.characters(whitelist_categories=("Ll", "Nd"))
)
instants = st.datetimes(
    min_value=datetime(2000, 1, 1), max_value=datetime(2100, 1, 1), timezones=st.just(timezone.utc)
)


@given(source_names)
@settings(max_examples=30)
def test_unknown_source_loads_empty_cursor(source_name: str):
    log.info("test_unknown_source_loads_empty_cursor", source_name=source_name)

    assert InMemoryCursorStore().load(source_name) == Cursor(source_name=source_name)

    with tempfile.TemporaryDirectory() as tmp:
        store = JsonFileCursorStore(str(Path(tmp) / "cursors.json"))
        assert store.load(source_name).since is None


@given(st.dictionaries(source_names, instants, min_size=1, max_size=5))
@settings(max_examples=30, deadline=None)
def test_saved_cursors_survive_a_new_store_instance(cursors: dict[str, datetime]):
    """Every saved cursor is read back unchanged by a fresh store on the same file."""
    log.info("test_saved_cursors_survive_a_new_store_instance", count=len(cursors))

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "state" / "cursors.json"
        store = JsonFileCursorStore(str(path))
        for name, since in cursors.items():
            store.save(Cursor(source_name=name, since=since))

        reopened = JsonFileCursorStore(str(path))
        for name, since in cursors.items():
            assert reopened.load(name).since == since

        assert not path.with_suffix(".json.tmp").exists()


@given(source_names, instants, instants)
@settings(max_examples=30)
def test_save_replaces_previous_cursor(source_name: str, first: datetime, second: datetime):
    log.info("test_save_replaces_previous_cursor", source_name=source_name)

    store = InMemoryCursorStore()
    store.save(Cursor(source_name=source_name, since=first))
    store.save(Cursor(source_name=source_name, since=second))

    assert store.load(source_name).since == second


def test_corrupted_cursor_file_fails_load_and_is_replaced_on_save(tmp_path: Path):
    log.info("test_corrupted_cursor_file_fails_load_and_is_replaced_on_save")

    path = tmp_path / "cursors.json"
    path.write_text("{not json")

    store = JsonFileCursorStore(str(path))
    with pytest.raises(RuntimeError):
        store.load("readwise")

    since = datetime(2024, 3, 1, tzinfo=timezone.utc)
    store.save(Cursor(source_name="readwise", since=since))

    assert JsonFileCursorStore(str(path)).load("readwise").since == since


def test_unwritable_location_raises_runtime_error(tmp_path: Path):
    log.info("test_unwritable_location_raises_runtime_error")

    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory")

    store = JsonFileCursorStore(str(blocker / "cursors.json"))
    with pytest.raises(RuntimeError):
        store.save(Cursor(source_name="readwise", since=datetime.now(timezone.utc)))
