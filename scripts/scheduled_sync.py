#!/usr/bin/env python3
"""
Scheduled synchronization script for synchub.

This script runs one sync pass over every enabled source:
- Fetches items updated since each source's cursor
- Creates or updates records in the local record store
- Logs the change journal and per-source statistics

Designed to be run on a schedule (e.g., via cron or a CI scheduler).

Usage:
    python scripts/scheduled_sync.py [--config CONFIG_PATH] [--full-sync] [--source NAME]
"""

import argparse
import sys
from pathlib import Path

import structlog

from synchub.models.config import AppConfig
from synchub.sources import build_registry
from synchub.storage.memory import MemoryStorage
from synchub.sync.cursor_store import JsonFileCursorStore
from synchub.sync.journal import log_change_journal
from synchub.sync.models import SyncResult
from synchub.sync.orchestrator import SyncOrchestrator
from synchub.sync.registry import SourceRegistry
from synchub.utils.config_loader import ConfigLoader, ConfigurationError
from synchub.utils.logging_config import configure_logging

log = structlog.stdlib.get_logger()


def open_storage(config: AppConfig, registry: SourceRegistry) -> MemoryStorage:
    """
    Load the record store snapshot, creating missing target collections.

    Args:
        config: Application configuration
        registry: Sources whose collection schema is used for new collections

    Returns:
        MemoryStorage holding every configured collection
    """
    if Path(config.storage_path).exists():
        storage = MemoryStorage.load(config.storage_path)
    else:
        log.info("storage_snapshot_missing", path=config.storage_path)
        storage = MemoryStorage()

    for name, source_config in config.sources.items():
        source = registry.get(name)
        if source is None or storage.find_collection(source_config.collection) is not None:
            continue
        storage.add_collection(source_config.collection, source.collection_fields())
        log.info("collection_created", source=name, collection=source_config.collection)

    return storage


def perform_sync(
    config_path: str | None = None, full_sync: bool = False, only_source: str | None = None
) -> dict[str, SyncResult]:
    """
    Perform one synchronization pass.

    Args:
        config_path: Optional path to configuration file
        full_sync: If True, ignore stored cursors and fetch everything
        only_source: Restrict the pass to one source name

    Returns:
        Sync results keyed by source name
    """
    config = ConfigLoader().load_config(config_path)
    configure_logging(
        log_level=config.logging.log_level,
        json_logs=config.logging.json_logs,
        log_file=config.logging.log_file,
    )

    registry = build_registry(settings=config.sync)
    ConfigLoader().validate_config(config, known_sources=registry.names())

    storage = open_storage(config, registry)
    orchestrator = SyncOrchestrator(
        registry=registry,
        storage=storage,
        cursor_store=JsonFileCursorStore(config.cursor_path),
        content_sink=storage,
        settings=config.sync,
    )

    source_configs = dict(config.sources)
    if only_source is not None:
        source_configs = {k: v for k, v in source_configs.items() if k == only_source}
    if full_sync:
        source_configs = {
            k: v.model_copy(update={"force_full_sync": True}) for k, v in source_configs.items()
        }

    log.info(
        "starting_synchronization",
        sync_type="full" if full_sync else "incremental",
        sources=sorted(source_configs),
    )

    results = orchestrator.sync_all(source_configs)

    for name, result in results.items():
        log_change_journal(
            result.change_journal,
            level=config.journal.level,
            source=name,
            excerpt_max_length=config.journal.excerpt_max_length,
        )

    storage.save(config.storage_path)
    return results


def main():
    """Main entry point for scheduled sync script."""
    parser = argparse.ArgumentParser(description="Scheduled synchronization for synchub")
    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration file",
        default=None,
    )
    parser.add_argument(
        "--full-sync",
        action="store_true",
        help="Ignore stored cursors and fetch everything",
    )
    parser.add_argument(
        "--source",
        type=str,
        help="Only sync this source",
        default=None,
    )

    args = parser.parse_args()

    try:
        results = perform_sync(
            config_path=args.config, full_sync=args.full_sync, only_source=args.source
        )
    except ConfigurationError as e:
        log.error("synchronization_failed", error=str(e))
        print(f"Configuration error: {e}")
        sys.exit(2)

    print("\n" + "=" * 60)
    print("SYNCHRONIZATION SUMMARY")
    print("=" * 60)

    for name, result in results.items():
        print(f"{name}: [{result.status}] {result.status_line}")
        for error in result.errors:
            print(f"    - {error}")
        print(f"    Duration: {result.duration_seconds:.2f} seconds")

    if not results:
        print("No enabled sources")

    print("=" * 60)

    sys.exit(0 if all(r.status in ("ok", "skipped") for r in results.values()) else 1)


if __name__ == "__main__":
    main()
