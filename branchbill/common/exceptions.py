"""
Domain errors raised by the document engine.

Services raise these instead of HTTPException so the engine stays usable
outside a request; ``main.py`` renders them through a single exception
handler as ``{"detail": ..., "error": ...}``.
"""
from typing import Any, Dict, Optional
from fastapi import status


class BillingError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "billing_error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error": self.error_code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(BillingError):
    """Missing or invalid customer, branch or line items"""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "validation_error"


class NotFoundError(BillingError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "not_found"


class InvalidTransitionError(BillingError):
    """Status event not permitted from the document's current status"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "invalid_transition"


class ConcurrentModificationError(BillingError):
    """The document changed between read and conditional update"""
    status_code = status.HTTP_409_CONFLICT
    error_code = "concurrent_modification"


class NumberingFailure(BillingError):
    """The document counter could not be incremented"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "numbering_failure"


class PersistenceError(BillingError):
    """The store rejected or could not complete a write"""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "persistence_error"
