"""Error taxonomy for fulfillment operations.

Services raise these; the API layer renders them into the response envelope
(see ``app.main``). Anything else that escapes a handler becomes a 500.
"""
from typing import Any, Optional

from fastapi import status


class FulfillmentError(Exception):
    """Base class for expected business failures."""

    status_code: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details


class ValidationError(FulfillmentError):
    """Missing or malformed input."""
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(FulfillmentError):
    """Unknown wave, job, handover, rider or order."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(FulfillmentError):
    """Invalid state transition or duplicate resource.

    State conflicts answer 400; duplicates pass ``status_code=409``.
    """
    status_code = status.HTTP_400_BAD_REQUEST


class ForbiddenError(FulfillmentError):
    """Caller is not the assigned picker/rider or lacks a permission."""
    status_code = status.HTTP_403_FORBIDDEN


class StorageUnavailableError(FulfillmentError):
    """Photo storage credentials are not configured."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
