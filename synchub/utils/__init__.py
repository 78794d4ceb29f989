"""Shared utilities for configuration, logging, and error handling"""

from synchub.utils.retry import exponential_backoff_retry, parse_retry_after

__all__ = ["exponential_backoff_retry", "parse_retry_after"]
