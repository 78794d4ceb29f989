"""Splitting fetched items into parents and their children."""

from typing import Callable

import structlog
from pydantic import BaseModel, Field

from synchub.models.items import RawItem

log = structlog.stdlib.get_logger()


class Classification(BaseModel):
    """Parents ready for reconciliation and their children in emission order."""

    parents: list[RawItem] = Field(default_factory=list)
    children_by_parent_id: dict[str, list[RawItem]] = Field(default_factory=dict)
    excluded_count: int = Field(default=0, ge=0)
    childless_count: int = Field(default=0, ge=0)
    orphan_count: int = Field(default=0, ge=0)

    def children_of(self, parent: RawItem) -> list[RawItem]:
        return self.children_by_parent_id.get(parent.id, [])


class ItemClassifier:
    """Groups a flat item stream into parents with attached children."""

    def __init__(
        self,
        require_children: bool = False,
        exclude: Callable[[RawItem], bool] | None = None,
    ):
        """
        Args:
            require_children: Drop parents that have no children
            exclude: Predicate marking parents to drop before reconciliation
        """
        self._require_children = require_children
        self._exclude = exclude

    def classify(self, items: list[RawItem]) -> Classification:
        parents: list[RawItem] = []
        children: dict[str, list[RawItem]] = {}

        for item in items:
            if item.is_child:
                children.setdefault(item.parent_id, []).append(item)
            else:
                parents.append(item)

        parent_ids = {parent.id for parent in parents}
        orphan_count = sum(
            len(group) for parent_id, group in children.items() if parent_id not in parent_ids
        )
        children = {pid: group for pid, group in children.items() if pid in parent_ids}

        kept: list[RawItem] = []
        excluded_count = 0
        childless_count = 0
        for parent in parents:
            if self._exclude is not None and self._exclude(parent):
                excluded_count += 1
                continue
            if self._require_children and not children.get(parent.id):
                childless_count += 1
                continue
            kept.append(parent)

        classification = Classification(
            parents=kept,
            children_by_parent_id={p.id: children[p.id] for p in kept if p.id in children},
            excluded_count=excluded_count,
            childless_count=childless_count,
            orphan_count=orphan_count,
        )

        if orphan_count:
            log.debug("orphan_children_dropped", count=orphan_count)

        log.info(
            "items_classified",
            item_count=len(items),
            parents=len(kept),
            excluded=excluded_count,
            childless=childless_count,
            orphans=orphan_count,
        )
        return classification
