"""Error taxonomy and classification for order assignment operations."""

from enum import Enum

from pydantic import BaseModel

from orderflow.core.config import Constants


class WorkItemNotFoundError(KeyError):
    """Raised when an order ID is unknown to the store."""

    def __init__(self, work_item_id: str) -> None:
        super().__init__(work_item_id)
        self.work_item_id = work_item_id

    def __str__(self) -> str:
        return f"Order not found: {self.work_item_id}"


class InvalidStateError(ValueError):
    """Raised when an operation is attempted against a terminal or mismatched state."""

    def __init__(self, work_item_id: str, message: str) -> None:
        super().__init__(message)
        self.work_item_id = work_item_id


class StoreUnavailableError(RuntimeError):
    """Raised when the order store cannot be reached after retries."""


class ResponseOutcome(Enum):
    """Outcome of a driver response to an offer."""

    APPLIED = "applied"
    NOT_CURRENT_CANDIDATE = "not_current_candidate"
    ALREADY_RESPONDED = "already_responded"


class ErrorSeverity(Enum):
    """Severity levels for errors."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCode:
    """Error codes for specific error conditions."""

    ERR_NOT_FOUND = "ERR_NOT_FOUND"
    ERR_INVALID_STATE = "ERR_INVALID_STATE"
    ERR_STORE_UNAVAILABLE = "ERR_STORE_UNAVAILABLE"
    ERR_UNKNOWN = "ERR_UNKNOWN"


class ErrorResponse(BaseModel):
    """Structured error response returned by the HTTP interface."""

    success: bool = False
    code: str
    message: str
    severity: ErrorSeverity


def classify_error(exception: Exception) -> tuple[int, ErrorResponse]:
    """Map an engine exception to an HTTP status code and error body.

    Args:
        exception: The exception raised by an engine or store operation

    Returns:
        Tuple of (http_status_code, ErrorResponse)
    """
    if isinstance(exception, WorkItemNotFoundError):
        return Constants.HTTP_NOT_FOUND, ErrorResponse(
            code=ErrorCode.ERR_NOT_FOUND,
            message=str(exception),
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, InvalidStateError):
        return Constants.HTTP_CONFLICT, ErrorResponse(
            code=ErrorCode.ERR_INVALID_STATE,
            message=str(exception),
            severity=ErrorSeverity.LOW,
        )

    if isinstance(exception, StoreUnavailableError):
        return Constants.HTTP_SERVICE_UNAVAILABLE, ErrorResponse(
            code=ErrorCode.ERR_STORE_UNAVAILABLE,
            message="Order storage is temporarily unavailable. Please try again later.",
            severity=ErrorSeverity.HIGH,
        )

    return 500, ErrorResponse(
        code=ErrorCode.ERR_UNKNOWN,
        message="An unexpected error occurred.",
        severity=ErrorSeverity.MEDIUM,
    )
