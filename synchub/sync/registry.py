"""Registry of sync sources keyed by name."""

from typing import TYPE_CHECKING, Iterator

import structlog

if TYPE_CHECKING:
    from synchub.sources.base import SyncSource

log = structlog.stdlib.get_logger()


class SourceRegistry:
    """Sources handed to the orchestrator at construction time."""

    def __init__(self, sources: list["SyncSource"] | None = None):
        self._sources: dict[str, "SyncSource"] = {}
        for source in sources or []:
            self.register(source)

    def register(self, source: "SyncSource") -> None:
        if not source.name:
            raise ValueError(f"{type(source).__name__} has no name")
        if source.name in self._sources:
            raise ValueError(f"Source '{source.name}' is already registered")
        self._sources[source.name] = source
        log.info("source_registered", source=source.name)

    def unregister(self, name: str) -> None:
        if self._sources.pop(name, None) is not None:
            log.info("source_unregistered", source=name)

    def get(self, name: str) -> "SyncSource | None":
        return self._sources.get(name)

    def names(self) -> list[str]:
        return sorted(self._sources)

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def __iter__(self) -> Iterator["SyncSource"]:
        return iter(self._sources.values())
