"""Incremental synchronization of external sources into a local record store."""

__version__ = "0.1.0"
