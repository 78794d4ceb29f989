"""Sync sources and the default registry."""

import time
from typing import Callable

import requests

from synchub.models.config import SyncSettings
from synchub.sources.base import SyncSource, parse_timestamp
from synchub.sources.github import GitHubSource
from synchub.sources.google_contacts import GoogleContactsSource
from synchub.sources.readwise import ReadwiseSource
from synchub.sync.registry import SourceRegistry

SOURCE_CLASSES: tuple[type[SyncSource], ...] = (
    ReadwiseSource,
    GitHubSource,
    GoogleContactsSource,
)


def build_registry(
    settings: SyncSettings | None = None,
    session: requests.Session | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> SourceRegistry:
    """Registry holding one instance of every bundled source sharing one HTTP session."""
    session = session or requests.Session()
    return SourceRegistry([cls(settings=settings, session=session, sleep=sleep) for cls in SOURCE_CLASSES])


__all__ = [
    "SOURCE_CLASSES",
    "GitHubSource",
    "GoogleContactsSource",
    "ReadwiseSource",
    "SyncSource",
    "build_registry",
    "parse_timestamp",
]
