"""Shared fixtures: fake HTTP responses and a Readwise-style listing API."""

from typing import Any
from unittest.mock import Mock

import pytest

from synchub.sources.readwise import ReadwiseSource


def make_response(
    status_code: int = 200,
    body: Any = None,
    headers: dict[str, str] | None = None,
    links: dict[str, dict[str, str]] | None = None,
) -> Mock:
    """Mock of a requests.Response."""
    response = Mock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.headers = headers or {}
    response.links = links or {}
    if isinstance(body, Exception):
        response.json.side_effect = body
    else:
        response.json.return_value = body if body is not None else {}
    return response


class FakeListingApi:
    """Serves ``items`` in pages using ``updatedAfter``/``pageCursor`` parameters.

    Responses queued in ``scripted`` are returned first, one per request,
    before any real page is served.
    """

    def __init__(self, items: list[dict] | None = None, page_size: int = 2):
        self.items = list(items or [])
        self.page_size = page_size
        self.requests: list[dict] = []
        self.scripted: list[Mock] = []
        self.fail_on_page: int | None = None
        self.fail_status = 500
        self.on_request = None

    def get(self, url, headers=None, params=None, timeout=None):
        params = dict(params or {})
        self.requests.append(params)
        if self.on_request is not None:
            self.on_request()
        if self.scripted:
            return self.scripted.pop(0)

        items = self.items
        since = params.get("updatedAfter")
        if since:
            items = [item for item in items if item["updated_at"] > since]

        start = int(params.get("pageCursor") or 0)
        if self.fail_on_page is not None and start // self.page_size == self.fail_on_page:
            return make_response(self.fail_status, {"detail": "boom"})

        end = start + self.page_size
        next_cursor = str(end) if end < len(items) else None
        return make_response(200, {"results": items[start:end], "nextPageCursor": next_cursor})


def document(doc_id: str, updated_at: str = "2024-01-01T00:00:00+00:00", **extra) -> dict:
    payload = {
        "id": doc_id,
        "parent_id": None,
        "title": f"Document {doc_id}",
        "author": "Ada",
        "source_url": f"https://example.com/{doc_id}",
        "category": "article",
        "updated_at": updated_at,
        "created_at": "2023-12-01T00:00:00Z",
    }
    payload.update(extra)
    return payload


def highlight(
    highlight_id: str, doc_id: str, text: str = "", updated_at: str = "2024-01-01T00:00:00+00:00"
) -> dict:
    return {
        "id": highlight_id,
        "parent_id": doc_id,
        "content": text or f"Highlight {highlight_id}",
        "updated_at": updated_at,
    }


@pytest.fixture
def fake_api() -> FakeListingApi:
    return FakeListingApi()


@pytest.fixture
def session(fake_api: FakeListingApi) -> Mock:
    session = Mock()
    session.get.side_effect = fake_api.get
    return session


@pytest.fixture
def sleeper() -> Mock:
    return Mock()


@pytest.fixture
def readwise(session: Mock, sleeper: Mock) -> ReadwiseSource:
    return ReadwiseSource(session=session, sleep=sleeper)
