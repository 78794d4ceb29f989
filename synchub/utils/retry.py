"""Retry utilities with exponential backoff and Retry-After parsing."""

import math
import time
from functools import wraps
from typing import Callable, Optional, Tuple, Type

import structlog

log = structlog.stdlib.get_logger()

DEFAULT_RETRY_AFTER_SECONDS: float = 60.0


def exponential_backoff_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    sleep: Optional[Callable[[float], None]] = None,
) -> Callable:
    """
    Decorator that retries a function with exponential backoff.

    Args:
        max_retries: Maximum number of retry attempts
        base_delay: Initial delay in seconds
        max_delay: Maximum delay in seconds
        exceptions: Tuple of exception types to catch and retry
        sleep: Suspension function between attempts (time.sleep if None)

    Returns:
        Decorated function with retry logic
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries:
                        log.error(
                            "max_retries_reached",
                            function=func.__name__,
                            max_retries=max_retries,
                            error=str(e),
                        )
                        raise

                    delay = min(base_delay * (2**attempt), max_delay)

                    log.warning(
                        "retrying_after_error",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_retries=max_retries,
                        delay_seconds=delay,
                        error=str(e),
                    )

                    (sleep or time.sleep)(delay)

        return wrapper

    return decorator


def parse_retry_after(
    value: str | None, default: float = DEFAULT_RETRY_AFTER_SECONDS
) -> float:
    """
    Parse a Retry-After header value given in seconds.

    Args:
        value: Raw header value, or None when the header is absent
        default: Seconds to wait when the header is missing or unparseable

    Returns:
        Non-negative number of seconds to wait
    """
    if value is None or not str(value).strip():
        return default

    try:
        seconds = float(str(value).strip())
    except ValueError:
        log.debug("unparseable_retry_after", value=value, default=default)
        return default

    if not math.isfinite(seconds):
        log.debug("non_finite_retry_after", value=value, default=default)
        return default

    return max(seconds, 0.0)
