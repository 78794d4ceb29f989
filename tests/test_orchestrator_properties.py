"""Property-based and scenario tests for the sync orchestrator."""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import Mock

import pytest
import structlog
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from conftest import FakeListingApi, document, highlight, make_response
from synchub.models.config import SourceConfig
from synchub.models.items import Cursor
from synchub.sources.readwise import ReadwiseSource
from synchub.storage.memory import MemoryStorage
from synchub.sync.cursor_store import CursorStore, InMemoryCursorStore, JsonFileCursorStore
from synchub.sync.orchestrator import SyncOrchestrator
from synchub.sync.registry import SourceRegistry

log = structlog.stdlib.get_logger()

T0 = datetime(2024, 1, 10, tzinfo=timezone.utc)
CONFIG = SourceConfig(token="secret", collection="Readwise", excluded_categories=["rss"])


class Harness:
    """Wires a fake Readwise API, in-memory storage and cursor store together."""

    def __init__(
        self,
        items=None,
        page_size: int = 2,
        cursor: datetime | None = None,
        cursor_store: CursorStore | None = None,
    ):
        self.api = FakeListingApi(items, page_size=page_size)
        session = Mock()
        session.get.side_effect = self.api.get
        self.sleep = Mock()
        self.source = ReadwiseSource(session=session, sleep=self.sleep)
        self.storage = MemoryStorage()
        self.collection = self.storage.add_collection(
            "Readwise", self.source.collection_fields()
        )
        initial = {"readwise": Cursor(source_name="readwise", since=cursor)} if cursor else {}
        self.cursors = cursor_store or InMemoryCursorStore(initial)
        self.now = T0
        self.orchestrator = SyncOrchestrator(
            registry=SourceRegistry([self.source]),
            storage=self.storage,
            cursor_store=self.cursors,
            content_sink=self.storage,
            sleep=self.sleep,
            clock=lambda: self.now,
        )

    def sync(self, config: SourceConfig = CONFIG):
        return self.orchestrator.sync("readwise", config)

    def records(self) -> dict[str, object]:
        return {r.text("external_id"): r for r in self.collection.get_all_records()}


def test_bootstrap_creates_only_parents_with_children():
    log.info("test_bootstrap_creates_only_parents_with_children")

    h = Harness(
        [
            document("d1"),
            highlight("h1", "d1", "one"),
            highlight("h2", "d1", "two"),
            highlight("h3", "d1", "three"),
            document("d2"),
        ]
    )

    result = h.sync()

    assert result.status == "ok"
    assert (result.created_count, result.updated_count) == (1, 0)
    assert result.summary == "1 new, 0 updated"
    assert len(result.change_journal) == 1
    event = result.change_journal[0]
    assert event.major and event.verb == "created"
    assert list(event.excerpts) == ["one", "two", "three"]
    assert list(h.records()) == ["readwise:d1"]
    assert "updatedAfter" not in h.api.requests[0]
    assert h.cursors.load("readwise").since == T0
    assert result.cursor_advanced


def test_incremental_update_raises_child_count():
    log.info("test_incremental_update_raises_child_count")

    h = Harness([document("d1"), highlight("h1", "d1"), highlight("h2", "d1")])
    h.sync()

    later = "2024-01-11T00:00:00+00:00"
    h.api.items = [document("d1", updated_at=later, title="Renamed upstream")] + [
        highlight(f"h{i}", "d1", updated_at=later) for i in range(1, 5)
    ]
    h.now = T0 + timedelta(days=2)

    result = h.sync()

    assert (result.created_count, result.updated_count) == (0, 1)
    assert [e.major for e in result.change_journal] == [False]
    assert result.change_journal[0].title == "Renamed upstream"
    assert h.api.requests[-1]["updatedAfter"] == T0.isoformat()
    record = h.records()["readwise:d1"]
    assert record.prop("highlight_count").number() == 4
    assert h.cursors.load("readwise").since == T0 + timedelta(days=2)


def test_orphan_child_produces_no_content_and_no_error():
    log.info("test_orphan_child_produces_no_content_and_no_error")

    h = Harness(
        [document("d1"), highlight("h1", "d1", "kept"), highlight("hx", "ghost", "lost")],
        page_size=10,
    )

    result = h.sync()

    assert result.errors == []
    assert result.created_count == 1
    content = h.records()["readwise:d1"].content
    assert "kept" in content and "lost" not in content


def test_excluded_categories_are_not_synced():
    log.info("test_excluded_categories_are_not_synced")

    h = Harness([document("d1", category="rss"), highlight("h1", "d1")])

    result = h.sync()

    assert result.summary == "No changes"
    assert h.records() == {}


@given(st.integers(min_value=1, max_value=6), st.integers(min_value=0, max_value=4))
@settings(max_examples=20, deadline=None)
def test_second_identical_run_changes_nothing(doc_count: int, per_doc: int):
    """Re-running over the same data creates no duplicates and no updates."""
    log.info("test_second_identical_run_changes_nothing", doc_count=doc_count, per_doc=per_doc)

    items = []
    for d in range(doc_count):
        items.append(document(f"d{d}"))
        items.extend(highlight(f"d{d}-h{i}", f"d{d}") for i in range(per_doc))
    h = Harness(items, page_size=3)

    first = h.sync()
    second = h.sync(CONFIG.model_copy(update={"force_full_sync": True}))

    expected = doc_count if per_doc else 0
    assert first.created_count == expected
    assert (second.created_count, second.updated_count) == (0, 0)
    assert second.change_journal == []
    assert len(h.collection.get_all_records()) == expected


def test_same_parent_twice_in_one_fetch_creates_one_record():
    log.info("test_same_parent_twice_in_one_fetch_creates_one_record")

    h = Harness(
        [document("d1"), highlight("h1", "d1"), document("d1"), highlight("h2", "d1")],
        page_size=2,
    )

    result = h.sync()

    assert result.created_count == 1
    assert len(h.collection.get_all_records()) == 1


def test_fetch_failure_before_first_page_leaves_cursor_unchanged():
    log.info("test_fetch_failure_before_first_page_leaves_cursor_unchanged")

    before = T0 - timedelta(days=5)
    h = Harness([document("d1"), highlight("h1", "d1")], cursor=before)
    h.collection.add_record("Existing", external_id="readwise:old", highlight_count=1)
    h.api.scripted = [make_response(503)]

    result = h.sync()

    assert result.status == "fetch_failed"
    assert result.status_line == "Fetch failed"
    assert not result.cursor_advanced
    assert h.cursors.load("readwise").since == before
    assert list(h.records()) == ["readwise:old"]


def test_partial_fetch_keeps_collected_items_and_advances_cursor():
    log.info("test_partial_fetch_keeps_collected_items_and_advances_cursor")

    h = Harness(
        [document("d1"), highlight("h1", "d1"), document("d2"), highlight("h2", "d2")],
        page_size=2,
    )
    h.api.fail_on_page = 1

    result = h.sync()

    assert result.status == "partial"
    assert result.created_count == 1
    assert any("Fetch incomplete" in e for e in result.errors)
    assert result.cursor_advanced
    assert h.cursors.load("readwise").since == T0
    assert not result.success


@given(st.integers(min_value=1, max_value=3))
@settings(max_examples=10, deadline=None)
def test_rate_limited_run_matches_unthrottled_run(times: int):
    log.info("test_rate_limited_run_matches_unthrottled_run", times=times)

    items = [document("d1"), highlight("h1", "d1"), document("d2"), highlight("h2", "d2")]
    plain = Harness(items)
    throttled = Harness(items)
    throttled.api.scripted = [
        make_response(429, headers={"Retry-After": "3"}) for _ in range(times)
    ]

    expected = plain.sync()
    result = throttled.sync()

    assert result.status == "ok" and result.errors == []
    assert result.created_count == expected.created_count
    assert sorted(throttled.records()) == sorted(plain.records())
    assert [c.args[0] for c in throttled.sleep.call_args_list].count(3.0) == times


@pytest.mark.parametrize("retry_after", ["nan", "inf", "-inf"])
def test_non_finite_retry_after_waits_the_default(retry_after: str):
    log.info("test_non_finite_retry_after_waits_the_default", retry_after=retry_after)

    h = Harness([document("d1"), highlight("h1", "d1")])
    h.api.scripted = [make_response(429, headers={"Retry-After": retry_after})]

    result = h.sync()

    assert result.status == "ok" and result.created_count == 1
    assert 60.0 in [c.args[0] for c in h.sleep.call_args_list]


def test_corrupt_cursor_file_falls_back_to_full_sync(tmp_path: Path):
    log.info("test_corrupt_cursor_file_falls_back_to_full_sync")

    path = tmp_path / "cursors.json"
    path.write_text("{not json")
    h = Harness(
        [document("d1"), highlight("h1", "d1")], cursor_store=JsonFileCursorStore(str(path))
    )
    h.collection.add_record("Existing", external_id="readwise:old", highlight_count=1)

    result = h.sync()

    assert result.status == "ok"
    assert result.created_count == 1
    assert "updatedAfter" not in h.api.requests[0]
    assert result.cursor_advanced
    assert JsonFileCursorStore(str(path)).load("readwise").since == T0


def test_overlapping_run_for_same_source_is_skipped():
    log.info("test_overlapping_run_for_same_source_is_skipped")

    h = Harness([document("d1"), highlight("h1", "d1")])
    nested = []

    def reenter():
        if not nested:
            nested.append(h.sync())

    h.api.on_request = reenter

    result = h.sync()

    assert result.status == "ok"
    assert nested[0].status == "skipped"
    assert nested[0].status_line == "Sync already running"
    assert len(h.collection.get_all_records()) == 1


def test_missing_configuration_reports_not_configured():
    log.info("test_missing_configuration_reports_not_configured")

    h = Harness([document("d1"), highlight("h1", "d1")])

    no_token = h.sync(CONFIG.model_copy(update={"token": None}))
    no_collection = h.sync(CONFIG.model_copy(update={"collection": "Nowhere"}))
    unknown = h.orchestrator.sync("pocket", CONFIG)

    for result in (no_token, no_collection, unknown):
        assert result.status == "not_configured"
        assert result.message
    assert h.api.requests == []


def test_since_override_applies_to_non_empty_collection():
    log.info("test_since_override_applies_to_non_empty_collection")

    override = datetime(2023, 1, 1, tzinfo=timezone.utc)
    h = Harness([document("d1"), highlight("h1", "d1")], cursor=T0 - timedelta(days=1))
    h.collection.add_record("Existing", external_id="readwise:old", highlight_count=1)

    h.sync(CONFIG.model_copy(update={"since_override": override}))

    assert h.api.requests[0]["updatedAfter"] == override.isoformat()


def test_sync_all_skips_disabled_sources():
    log.info("test_sync_all_skips_disabled_sources")

    h = Harness([document("d1"), highlight("h1", "d1")])

    results = h.orchestrator.sync_all(
        {
            "readwise": CONFIG,
            "github": SourceConfig(enabled=False, token="t", collection="GitHub"),
        }
    )

    assert list(results) == ["readwise"]
    assert results["readwise"].success


@given(st.lists(st.integers(min_value=0, max_value=3), min_size=1, max_size=4))
@settings(
    max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow]
)
def test_reconcile_failures_are_collected_not_fatal(bad_positions: list[int]):
    """A parent whose normalization fails is reported while the others still sync."""
    log.info("test_reconcile_failures_are_collected_not_fatal", bad=bad_positions)

    items = []
    for d in range(4):
        items.append(document(f"d{d}"))
        items.append(highlight(f"d{d}-h0", f"d{d}"))
    h = Harness(items, page_size=10)

    broken = set(bad_positions)
    original = h.source.normalize

    def flaky_normalize(parent, children):
        if int(parent.id[1:]) in broken:
            raise ValueError(f"cannot normalize {parent.id}")
        return original(parent, children)

    h.source.normalize = flaky_normalize

    result = h.sync()

    assert result.created_count == 4 - len(broken)
    assert len(result.errors) == len(broken)
    assert result.status == "ok"
    assert result.cursor_advanced
