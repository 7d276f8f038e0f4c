"""
Error taxonomy for subscription and delivery paths, plus the mapping routes
use to turn an exception into an HTTP status.
"""
from __future__ import annotations

# HTTP status codes for known error categories
STATUS_BAD_REQUEST = 400
STATUS_UNAUTHORIZED = 401
STATUS_NOT_FOUND = 404
STATUS_INTERNAL_ERROR = 500


class BeaconError(Exception):
    """Base class for errors raised by beacon services."""


class NotFound(BeaconError):
    """A slug, token or entity does not exist."""


class Invalid(BeaconError):
    """Malformed input (email address, request body, queued payload)."""


class ConfigMissing(BeaconError):
    """Primary base URL or mail transport is not configured."""


class TransportFailure(BeaconError):
    """The outbound channel failed to send a message."""


class Unauthorized(BeaconError):
    """Missing or wrong admin credentials."""


# (exception type, status code). First match wins; anything else is a 500.
ERROR_STATUS_RULES: list[tuple[type[Exception], int]] = [
    (NotFound, STATUS_NOT_FOUND),
    (Invalid, STATUS_BAD_REQUEST),
    (Unauthorized, STATUS_UNAUTHORIZED),
]


def error_status(exc: Exception) -> int:
    for exc_type, status_code in ERROR_STATUS_RULES:
        if isinstance(exc, exc_type):
            return status_code
    return STATUS_INTERNAL_ERROR
