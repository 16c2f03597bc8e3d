"""
Error taxonomy for the tracking-and-flush core.

Only NoProjectTokenError ever reaches the caller of ``track()``. Everything
else is caught and logged at the façade or flush boundary.
"""


class AnalyticsError(Exception):
    """Base class for all tracking errors."""


class NoProjectTokenError(AnalyticsError):
    """No project token is configured for the requested track type."""


class PersistenceError(AnalyticsError):
    """The local store failed to read, write or delete."""


class UploadError(AnalyticsError):
    """The remote service rejected an upload or could not be reached."""


class NotFoundError(AnalyticsError):
    """A record was deleted that no longer exists in the store."""


class ConfigurationError(AnalyticsError):
    """The configuration document is malformed."""


class ValidationError(ValueError):
    """A record was materialized without a required field."""
