"""Error taxonomy for sync runs."""


class SyncError(Exception):
    """Base class for errors raised by the sync engine."""


class ConfigurationMissing(SyncError):
    """No token, no registered source, or no target collection."""


class SourceUnavailable(SyncError):
    """The remote source answered with a non-429 failure or could not be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SourceRateLimited(SyncError):
    """Rate-limit retries were exhausted (only when a retry cap is configured)."""

    def __init__(self, message: str, retries: int):
        super().__init__(message)
        self.retries = retries


class RecordNotVisible(SyncError):
    """A freshly created record never appeared on read-back."""

    def __init__(self, message: str, guid: str | None = None):
        super().__init__(message)
        self.guid = guid


class FieldWriteRejected(SyncError):
    """Storage refused a single field write."""

    def __init__(self, field_id: str, reason: str):
        super().__init__(f"Field '{field_id}' rejected: {reason}")
        self.field_id = field_id
        self.reason = reason
