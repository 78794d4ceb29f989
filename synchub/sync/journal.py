"""Change journal accumulation and hand-off to the logging sink."""

from typing import Literal

import structlog

from synchub.models.config import JournalLevel
from synchub.models.items import ChangeEvent
from synchub.storage.base import Record

log = structlog.stdlib.get_logger()

MAX_EXCERPTS = 5


class ChangeJournalBuilder:
    """Accumulates the ordered change events of one sync run."""

    def __init__(self, excerpt_limit: int = MAX_EXCERPTS):
        self._excerpt_limit = min(excerpt_limit, MAX_EXCERPTS)
        self._events: list[ChangeEvent] = []

    def record(
        self,
        verb: Literal["created", "updated"],
        record: Record,
        major: bool,
        excerpts: list[str] | None = None,
        title: str | None = None,
    ) -> ChangeEvent:
        event = ChangeEvent(
            verb=verb,
            title=title if title is not None else record.title,
            record_ref=record.guid,
            major=major,
            excerpts=tuple((excerpts or [])[: self._excerpt_limit]),
        )
        self._events.append(event)
        return event

    def build(self) -> list[ChangeEvent]:
        return list(self._events)

    def __len__(self) -> int:
        return len(self._events)


def log_change_journal(
    events: list[ChangeEvent],
    level: JournalLevel = "major_only",
    source: str | None = None,
    excerpt_max_length: int = 100,
) -> int:
    """
    Emit a change journal through structlog.

    Args:
        events: Journal produced by a sync run
        level: ``none`` emits nothing, ``major_only`` only first appearances,
            ``all`` every event, ``verbose`` every event with its excerpts
        source: Source name attached to each line
        excerpt_max_length: Excerpts longer than this are truncated with "..."

    Returns:
        Number of events emitted
    """
    if level == "none":
        return 0

    selected = [e for e in events if e.major] if level == "major_only" else list(events)

    for event in selected:
        entry: dict = {
            "source": source,
            "verb": event.verb,
            "title": event.title,
            "record_ref": event.record_ref,
            "major": event.major,
        }
        if level == "verbose" and event.excerpts:
            entry["excerpts"] = [
                text if len(text) <= excerpt_max_length else text[:excerpt_max_length] + "..."
                for text in event.excerpts
            ]
        log.info("change_journal_entry", **entry)

    return len(selected)
