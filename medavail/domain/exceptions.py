"""
Domain-specific exception hierarchy for the availability service.
"""


class AvailabilityError(Exception):
    """Base class for all application-level errors."""

    status_code = 500


class InvalidConfiguration(AvailabilityError, ValueError):
    """Raised when working-hours values are malformed."""

    status_code = 400


class InvalidRange(AvailabilityError, ValueError):
    """Raised when a requested date range cannot be parsed or is too wide."""

    status_code = 400


class AuthenticationError(AvailabilityError):
    """Raised when authentication or token handling fails."""

    status_code = 401


class ProviderNotFound(AvailabilityError):
    """Raised when the requested provider does not exist."""

    status_code = 404


class BackendError(AvailabilityError):
    """Raised when backend data cannot be fetched or parsed."""

    status_code = 502
