"""Readwise Reader source: documents with their highlights merged into one record."""

from datetime import datetime
from typing import Any

from synchub.ingestion.paginated_fetcher import FetchResult, PaginatedFetcher
from synchub.models.config import SourceConfig
from synchub.models.items import ChangeMarker, NormalizedRecord, RawItem
from synchub.sources.base import SyncSource, parse_timestamp
from synchub.storage.base import FieldSpec


class ReadwiseSource(SyncSource):
    """One record per document; highlights are children keyed by ``parent_id``."""

    name = "readwise"
    display_name = "Readwise"
    change_marker = ChangeMarker(field="highlight_count", kind="count")
    tracked_fields = ("source_title", "source_author", "source_url")
    require_children_default = True
    field_specs = (
        FieldSpec(id="source"),
        FieldSpec(id="source_title"),
        FieldSpec(id="source_author"),
        FieldSpec(id="source_url"),
        FieldSpec(id="highlight_count", kind="number"),
        FieldSpec(
            id="category",
            kind="choice",
            choices={
                "article": "Article",
                "book": "Book",
                "email": "Email",
                "pdf": "Pdf",
                "tweet": "Tweet",
                "video": "Video",
            },
        ),
        FieldSpec(id="captured_at", kind="datetime"),
    )

    api_url = "https://readwise.io/api/v3/list/"

    def fetch(self, config: SourceConfig, since: datetime | None) -> FetchResult:
        fetcher = PaginatedFetcher(
            url=config.options.get("api_url", self.api_url),
            item_parser=self.parse_item,
            headers={"Authorization": f"Token {config.token}"},
            session=self.session,
            timeout=self.settings.request_timeout,
            default_retry_after=self.settings.default_retry_after,
            max_rate_limit_retries=self.settings.max_rate_limit_retries,
            sleep=self.sleep,
        )
        return fetcher.fetch(since)

    @staticmethod
    def parse_item(raw: dict[str, Any]) -> RawItem:
        return RawItem(
            id=raw["id"],
            parent_id=raw.get("parent_id") or None,
            updated_at=raw.get("updated_at"),
            payload=raw,
        )

    def normalize(self, parent: RawItem, children: list[RawItem]) -> NormalizedRecord:
        title = parent.get("title") or "Untitled"
        fields: dict[str, Any] = {
            "source": self.display_name,
            "source_title": title,
            "source_author": parent.get("author", ""),
            "source_url": parent.get("source_url", ""),
            "highlight_count": len(children),
        }

        category = parent.get("category")
        if category:
            fields["category"] = str(category).capitalize()

        captured_at = parse_timestamp(parent.get("created_at"))
        if captured_at is not None:
            fields["captured_at"] = captured_at

        return NormalizedRecord(
            external_id=self.external_id(parent),
            title=title,
            fields=fields,
            child_count=len(children),
        )
