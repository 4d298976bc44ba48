"""Errors raised by the remote lookups behind the field map."""

from typing import Optional


class FieldLookupError(Exception):
    """Base error for remote field/location lookups."""


class AnalysisFailure(FieldLookupError):
    """The field analysis service did not return a usable response.

    ``status`` is the HTTP status code, or None for network errors and
    unreadable bodies.
    """

    def __init__(self, status: Optional[int], reason: str = ""):
        self.status = status
        self.reason = reason
        if status is None:
            message = f"Analysis request failed: {reason}"
        else:
            message = f"Server Error: {status} {reason}".rstrip()
        super().__init__(message)


class SearchFailure(FieldLookupError):
    """Geocoder request failed or returned a malformed payload."""
