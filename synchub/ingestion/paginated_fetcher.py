"""Cursor-paginated, rate-limit aware fetching from remote listing endpoints."""

import time
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

import requests
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from requests.exceptions import ConnectionError, RequestException, Timeout

from synchub.errors import SourceRateLimited, SourceUnavailable, SyncError
from synchub.models.items import RawItem
from synchub.utils.retry import (
    DEFAULT_RETRY_AFTER_SECONDS,
    exponential_backoff_retry,
    parse_retry_after,
)

log = structlog.stdlib.get_logger()

RATE_LIMITED = 429


class FetchResult(BaseModel):
    """Items collected by one fetch, with the failure that stopped it, if any."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[RawItem] = Field(default_factory=list)
    pages: int = Field(default=0, ge=0, description="Pages successfully received")
    error: Optional[SyncError] = Field(default=None, description="Failure that aborted the fetch")

    @property
    def complete(self) -> bool:
        """True when the source reported no further pages."""
        return self.error is None

    def merge(self, other: "FetchResult") -> "FetchResult":
        """Combine two fetches; the first failure wins."""
        return FetchResult(
            items=self.items + other.items,
            pages=self.pages + other.pages,
            error=self.error or other.error,
        )


class PaginatedFetcher:
    """Walks a JSON listing endpoint page by page.

    Each request carries ``since`` (when set) and the continuation cursor of
    the previous page. A 429 response is waited out for the duration given in
    ``Retry-After`` and the same page is requested again. Any other failure
    aborts the walk but keeps the items already collected.
    """

    results_key: str = "results"
    next_cursor_key: str = "nextPageCursor"
    cursor_param: str = "pageCursor"
    since_param: Optional[str] = "updatedAfter"

    def __init__(
        self,
        url: str,
        item_parser: Callable[[dict[str, Any]], RawItem],
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        session: requests.Session | None = None,
        timeout: float = 30.0,
        default_retry_after: float = DEFAULT_RETRY_AFTER_SECONDS,
        max_rate_limit_retries: int | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the fetcher.

        Args:
            url: Listing endpoint URL
            item_parser: Converts one source JSON object into a RawItem
            headers: Request headers (authorization, accept)
            params: Query parameters sent with every first-page request
            session: Optional requests session (a new one is created if None)
            timeout: Per-request timeout in seconds
            default_retry_after: Backoff for 429 responses without Retry-After
            max_rate_limit_retries: Cap on consecutive 429 retries (None is unbounded)
            sleep: Suspension function used while waiting out rate limits and
                between transport retries
        """
        self._url = url
        self._item_parser = item_parser
        self._headers = dict(headers or {})
        self._params = dict(params or {})
        self._session = session or requests.Session()
        self._timeout = timeout
        self._default_retry_after = default_retry_after
        self._max_rate_limit_retries = max_rate_limit_retries
        self._sleep = sleep
        self._send = exponential_backoff_retry(
            max_retries=3,
            base_delay=1.0,
            max_delay=30.0,
            exceptions=(ConnectionError, Timeout),
            sleep=sleep,
        )(self._get)

    def fetch(self, since: datetime | None = None) -> FetchResult:
        """
        Fetch every page updated after ``since``.

        Args:
            since: Only request items updated after this instant (None for a full backfill)

        Returns:
            FetchResult with the collected items; ``error`` is set when the walk
            was aborted before the last page
        """
        log.info("fetch_started", url=self._url, since=since)

        items: list[RawItem] = []
        pages = 0
        cursor: Optional[str] = None
        rate_limit_retries = 0
        error: Optional[SyncError] = None

        while True:
            try:
                response = self._send(self._page_url(cursor), self._page_params(since, cursor))
            except RequestException as e:
                error = SourceUnavailable(f"Request to {self._url} failed: {e}")
                break

            if response.status_code == RATE_LIMITED:
                if (
                    self._max_rate_limit_retries is not None
                    and rate_limit_retries >= self._max_rate_limit_retries
                ):
                    error = SourceRateLimited(
                        f"Rate limit retries exhausted for {self._url}",
                        retries=rate_limit_retries,
                    )
                    break

                delay = parse_retry_after(
                    response.headers.get("Retry-After"), default=self._default_retry_after
                )
                rate_limit_retries += 1
                log.info(
                    "rate_limited_waiting",
                    url=self._url,
                    delay_seconds=delay,
                    attempt=rate_limit_retries,
                )
                self._sleep(delay)
                continue

            if not response.ok:
                error = SourceUnavailable(
                    f"{self._url} answered with status {response.status_code}",
                    status_code=response.status_code,
                )
                break

            rate_limit_retries = 0

            try:
                body = response.json()
            except ValueError as e:
                error = SourceUnavailable(f"Invalid JSON from {self._url}: {e}")
                break

            items.extend(self._parse_items(self._extract_items(body)))
            pages += 1

            cursor = self._next_cursor(response, body)
            if not cursor:
                break

        if error is not None:
            log.warning(
                "fetch_aborted",
                url=self._url,
                error=str(error),
                pages_fetched=pages,
                items_kept=len(items),
            )
        else:
            log.info("fetch_completed", url=self._url, pages=pages, item_count=len(items))

        return FetchResult(items=items, pages=pages, error=error)

    def _get(self, url: str, params: dict[str, Any] | None) -> requests.Response:
        return self._session.get(url, headers=self._headers, params=params, timeout=self._timeout)

    def _page_url(self, cursor: Optional[str]) -> str:
        return self._url

    def _page_params(self, since: datetime | None, cursor: Optional[str]) -> dict[str, Any]:
        params = dict(self._params)
        if since is not None and self.since_param:
            params[self.since_param] = since.isoformat()
        if cursor:
            params[self.cursor_param] = cursor
        return params

    def _extract_items(self, body: Any) -> Iterable[dict[str, Any]]:
        if isinstance(body, dict):
            return body.get(self.results_key) or []
        return []

    def _next_cursor(self, response: requests.Response, body: Any) -> Optional[str]:
        if isinstance(body, dict):
            return body.get(self.next_cursor_key) or None
        return None

    def _parse_items(self, raw_items: Iterable[dict[str, Any]]) -> list[RawItem]:
        parsed = []
        for raw in raw_items:
            try:
                parsed.append(self._item_parser(raw))
            except (KeyError, ValueError, ValidationError) as e:
                log.warning("failed_to_parse_item", item_id=raw.get("id"), error=str(e))
        return parsed


class LinkHeaderFetcher(PaginatedFetcher):
    """Fetcher for APIs that advertise the next page in a ``Link: rel="next"`` header.

    The continuation token is the full next-page URL, which already carries
    every query parameter.
    """

    results_key = "items"
    since_param = "since"

    def _page_url(self, cursor: Optional[str]) -> str:
        return cursor or self._url

    def _page_params(self, since: datetime | None, cursor: Optional[str]) -> dict[str, Any] | None:
        if cursor:
            return None
        return super()._page_params(since, None)

    def _extract_items(self, body: Any) -> Iterable[dict[str, Any]]:
        if isinstance(body, list):
            return body
        return super()._extract_items(body)

    def _next_cursor(self, response: requests.Response, body: Any) -> Optional[str]:
        return response.links.get("next", {}).get("url")
