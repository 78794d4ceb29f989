"""Strategy interface implemented by every sync source."""

import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable

import requests

from synchub.errors import ConfigurationMissing
from synchub.ingestion.paginated_fetcher import FetchResult
from synchub.models.config import SourceConfig, SyncSettings
from synchub.models.items import ChangeMarker, NormalizedRecord, RawItem, make_external_id
from synchub.storage.base import FieldSpec
from synchub.sync.classifier import ItemClassifier
from synchub.sync.reconciler import EXTERNAL_ID_FIELD
from synchub.sync.renderer import ContentRenderer


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp as sent by source APIs ("Z" suffix allowed)."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


class SyncSource(ABC):
    """Capability set the orchestrator needs from one source.

    Subclasses provide ``fetch`` and ``normalize``; classification, exclusion
    and rendering have defaults that sources may override.
    """

    name: str = ""
    display_name: str = ""
    change_marker: ChangeMarker = ChangeMarker(field="child_count", kind="count")
    tracked_fields: tuple[str, ...] = ()
    require_children_default: bool = False
    field_specs: tuple[FieldSpec, ...] = ()

    def __init__(
        self,
        settings: SyncSettings | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings or SyncSettings()
        self.session = session or requests.Session()
        self.sleep = sleep
        self.renderer = ContentRenderer()

    @abstractmethod
    def fetch(self, config: SourceConfig, since: datetime | None) -> FetchResult:
        """Fetch raw items updated after ``since``."""
        pass

    @abstractmethod
    def normalize(self, parent: RawItem, children: list[RawItem]) -> NormalizedRecord:
        """Map a parent and its children to the record payload."""
        pass

    def validate_config(self, config: SourceConfig) -> None:
        """
        Raises:
            ConfigurationMissing: If the source cannot run with this config
        """
        if not config.token:
            raise ConfigurationMissing(f"No token configured for {self.name}")

    def exclude(self, parent: RawItem, config: SourceConfig) -> bool:
        """Drop parents whose category is listed in ``excluded_categories``."""
        if not config.excluded_categories:
            return False
        category = str(parent.get("category", "")).lower()
        return category in {c.lower() for c in config.excluded_categories}

    def classifier(self, config: SourceConfig) -> ItemClassifier:
        require_children = (
            config.require_children
            if config.require_children is not None
            else self.require_children_default
        )
        return ItemClassifier(
            require_children=require_children,
            exclude=lambda parent: self.exclude(parent, config),
        )

    def render_content(self, parent: RawItem, children: list[RawItem]) -> str:
        return self.renderer.render(parent, children)

    def collection_fields(self) -> list[FieldSpec]:
        """Schema for a new target collection: the external id plus every mirrored field."""
        return [FieldSpec(id=EXTERNAL_ID_FIELD)] + list(self.field_specs)

    def external_id(self, item: RawItem) -> str:
        return make_external_id(self.name, item.id)

    def excerpts(self, children: list[RawItem], limit: int) -> list[str]:
        """Preview texts of merged children for the change journal."""
        texts = [str(child.get("content", "")).strip() for child in children]
        return [text for text in texts if text][:limit]
