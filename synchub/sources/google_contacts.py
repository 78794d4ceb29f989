"""Google Contacts source backed by the People API."""

from datetime import datetime
from typing import Any, Optional

import requests
import structlog
from requests.exceptions import ConnectionError, RequestException, Timeout

from synchub.errors import ConfigurationMissing, SourceUnavailable
from synchub.ingestion.paginated_fetcher import FetchResult, PaginatedFetcher
from synchub.models.config import SourceConfig
from synchub.models.items import ChangeMarker, NormalizedRecord, RawItem
from synchub.sources.base import SyncSource
from synchub.storage.base import FieldSpec
from synchub.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

PERSON_FIELDS = "names,emailAddresses,phoneNumbers,organizations,events,biographies,metadata"


class PeopleConnectionsFetcher(PaginatedFetcher):
    """People API listing: ``connections`` paged with ``pageToken``/``nextPageToken``.

    The endpoint has no updated-after filter; contacts come back sorted by
    last modification and change detection happens on ``updated_at``.
    """

    results_key = "connections"
    next_cursor_key = "nextPageToken"
    cursor_param = "pageToken"
    since_param = None


class GoogleContactsSource(SyncSource):
    """One record per contact.

    ``token`` holds the OAuth refresh token; ``options.token_endpoint`` is the
    service that exchanges it for a short-lived access token.
    """

    name = "google-contacts"
    display_name = "Google"
    change_marker = ChangeMarker(field="updated_at", kind="revision")
    tracked_fields = ("email", "phone", "organization", "job_title")
    field_specs = (
        FieldSpec(id="source"),
        FieldSpec(id="email"),
        FieldSpec(id="phone"),
        FieldSpec(id="organization"),
        FieldSpec(id="job_title"),
        FieldSpec(id="notes"),
        FieldSpec(id="anniversary", kind="datetime"),
        FieldSpec(id="updated_at"),
    )

    api_url = "https://people.googleapis.com/v1/people/me/connections"

    def validate_config(self, config: SourceConfig) -> None:
        super().validate_config(config)
        if not config.options.get("token_endpoint"):
            raise ConfigurationMissing("No token_endpoint configured for google-contacts")

    def fetch(self, config: SourceConfig, since: datetime | None) -> FetchResult:
        try:
            access_token = self.refresh_access_token(config)
        except SourceUnavailable as e:
            return FetchResult(error=e)

        fetcher = PeopleConnectionsFetcher(
            url=config.options.get("api_url", self.api_url),
            item_parser=self.parse_item,
            headers={"Authorization": f"Bearer {access_token}"},
            params={
                "personFields": PERSON_FIELDS,
                "pageSize": 1000,
                "sortOrder": "LAST_MODIFIED_DESCENDING",
            },
            session=self.session,
            timeout=self.settings.request_timeout,
            default_retry_after=self.settings.default_retry_after,
            max_rate_limit_retries=self.settings.max_rate_limit_retries,
            sleep=self.sleep,
        )
        return fetcher.fetch(since)

    def refresh_access_token(self, config: SourceConfig) -> str:
        """
        Exchange the configured refresh token for an access token.

        Raises:
            SourceUnavailable: If the token endpoint fails or returns no token
        """
        endpoint = config.options["token_endpoint"]
        post = exponential_backoff_retry(
            max_retries=3,
            base_delay=1.0,
            max_delay=30.0,
            exceptions=(ConnectionError, Timeout),
            sleep=self.sleep,
        )(self._post_refresh)
        try:
            response = post(endpoint, config.token)
        except RequestException as e:
            raise SourceUnavailable(f"Token refresh failed: {e}") from e

        if not response.ok:
            raise SourceUnavailable(
                f"Token refresh failed with status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as e:
            raise SourceUnavailable(f"Invalid JSON from token endpoint: {e}") from e

        if body.get("error"):
            raise SourceUnavailable(f"Token refresh failed: {body['error']}")
        access_token = body.get("access_token")
        if not access_token:
            raise SourceUnavailable("Token endpoint returned no access_token")

        log.debug("access_token_refreshed", source=self.name)
        return access_token

    def _post_refresh(self, endpoint: str, refresh_token: str) -> requests.Response:
        return self.session.post(
            endpoint,
            json={"refresh_token": refresh_token},
            timeout=self.settings.request_timeout,
        )

    @staticmethod
    def parse_item(raw: dict[str, Any]) -> RawItem:
        sources = (raw.get("metadata") or {}).get("sources") or [{}]
        return RawItem(
            id=raw["resourceName"],
            updated_at=sources[0].get("updateTime"),
            payload=raw,
        )

    @staticmethod
    def _first(person: RawItem, key: str) -> dict[str, Any]:
        values = person.get(key) or []
        return values[0] if values else {}

    @classmethod
    def display_name_of(cls, person: RawItem) -> str:
        name = cls._first(person, "names")
        if name.get("displayName"):
            return name["displayName"]
        parts = [name.get("givenName", ""), name.get("familyName", "")]
        return " ".join(part for part in parts if part)

    @classmethod
    def anniversary_of(cls, person: RawItem) -> Optional[datetime]:
        for event in person.get("events") or []:
            if event.get("type") != "anniversary":
                continue
            date = event.get("date") or {}
            if date.get("year") and date.get("month") and date.get("day"):
                return datetime(date["year"], date["month"], date["day"])
        return None

    def exclude(self, parent: RawItem, config: SourceConfig) -> bool:
        """Skip contacts without a name, then apply category exclusion."""
        if not self.display_name_of(parent):
            return True
        return super().exclude(parent, config)

    def normalize(self, parent: RawItem, children: list[RawItem]) -> NormalizedRecord:
        organization = self._first(parent, "organizations")
        fields: dict[str, Any] = {
            "source": self.display_name,
            "email": self._first(parent, "emailAddresses").get("value", ""),
            "phone": self._first(parent, "phoneNumbers").get("value", ""),
            "organization": organization.get("name", ""),
            "job_title": organization.get("title", ""),
            "updated_at": parent.updated_at or "",
        }

        # Existing notes on the record are kept unless the contact has some
        notes = self._first(parent, "biographies").get("value", "")
        if notes:
            fields["notes"] = notes

        anniversary = self.anniversary_of(parent)
        if anniversary is not None:
            fields["anniversary"] = anniversary

        return NormalizedRecord(
            external_id=self.external_id(parent),
            title=self.display_name_of(parent),
            fields=fields,
            child_count=0,
        )

    def render_content(self, parent: RawItem, children: list[RawItem]) -> str:
        return ""
