"""Exception taxonomy shared by the server and the typeahead client."""

from __future__ import annotations


class WaiverDeskError(Exception):
    """Base exception for application failures."""

    status_code = 500


class ValidationError(WaiverDeskError):
    """Raised for rejected input such as a query shorter than the minimum."""

    status_code = 400


class AuthError(WaiverDeskError):
    """Raised when a session token is missing or invalid."""

    status_code = 401


class NotFoundError(WaiverDeskError):
    """Raised when a requested record does not exist."""

    status_code = 404


class ConflictError(WaiverDeskError):
    """Raised when a write collides with an existing record."""

    status_code = 409


class StoreUnavailableError(WaiverDeskError):
    """Raised when the backing store cannot serve a request."""

    status_code = 500


class TransientFetchError(WaiverDeskError):
    """Raised by the client for network failures, timeouts and server faults."""


class DataIntegrityError(WaiverDeskError):
    """Raised for impossible internal state such as a corrupt cache entry."""
