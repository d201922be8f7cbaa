from typing import Optional
from fastapi import HTTPException

GENERIC_UNAVAILABLE = "Not available"
RETRY_LATER = "Temporarily unavailable, retry later"


class SettlementError(HTTPException):
    """Base class for settlement engine errors.

    These are HTTPExceptions so services can raise them directly and FastAPI
    renders them without a custom handler. ``code`` is a stable machine-readable
    identifier; ``detail`` is what a caller is allowed to see.
    """
    status_code = 500
    code = "settlement_error"
    default_detail = "Settlement error"

    def __init__(self, detail: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=detail or self.default_detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.detail}"


class Unauthenticated(SettlementError):
    status_code = 401
    code = "unauthenticated"
    default_detail = "Invalid or missing credentials"


class Forbidden(SettlementError):
    status_code = 403
    code = "forbidden"
    default_detail = GENERIC_UNAVAILABLE


class NotFound(SettlementError):
    # Out-of-scope records are reported as NotFound as well
    status_code = 404
    code = "not_found"
    default_detail = GENERIC_UNAVAILABLE


class NotOnboarded(SettlementError):
    status_code = 403
    code = "not_onboarded"
    default_detail = "Wholesaler onboarding required"


class Conflict(SettlementError):
    status_code = 409
    code = "conflict"
    default_detail = "Settlement already exists for this order"


class ValidationError(SettlementError):
    status_code = 422
    code = "validation_error"
    default_detail = "Invalid request parameters"


class StorageError(SettlementError):
    status_code = 503
    code = "storage_error"
    default_detail = RETRY_LATER


class Timeout(SettlementError):
    status_code = 504
    code = "timeout"
    default_detail = RETRY_LATER


class Cancelled(SettlementError):
    status_code = 499
    code = "cancelled"
    default_detail = "Request cancelled"
