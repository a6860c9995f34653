"""
Custom application exceptions.
Project: BuildLedger (contractor billing)

Domain-specific exceptions for centralised error handling.

NOTE: BusinessValidationError is deliberately distinct from pydantic.ValidationError.
- pydantic.ValidationError: malformed input types/shapes (handled by FastAPI -> 422)
- BusinessValidationError: business rule violations (handled by our handler -> 422)

Non-fatal findings (progress phases not summing to 100%, a discount larger
than the document total) are not exceptions: they are returned as
ValidationWarning values by the computation services.
"""

from typing import Any, Dict, Optional

__all__ = [
    "AppException",
    "NotFoundError",
    "DuplicateError",
    "BusinessValidationError",
    "ConflictError",
    "StateTransitionError",
    "QuoteNotConvertibleError",
]


class AppException(Exception):
    """
    Base exception for the application.

    Every custom exception derives from this class.

    Attributes:
        status_code: HTTP status code returned to the client
        error_code: Stable error identifier for the frontend
        detail: Human readable error message
        extra: Additional data for the frontend
    """

    # Default values - overridden in subclasses
    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        detail: str,
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Initialise the exception.

        Args:
            detail: Detailed error message
            error_code: Stable identifier (default: the class one)
            extra: Additional data for the frontend (default: None)
        """
        self.detail = detail
        self.error_code = error_code if error_code is not None else self.error_code
        self.extra = extra
        self.status_code = self.__class__.status_code
        super().__init__(detail)


class NotFoundError(AppException):
    """Raised when a requested resource does not exist."""

    status_code: int = 404
    error_code: str = "RESOURCE_NOT_FOUND"

    def __init__(
        self,
        detail: str = "Resource not found",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class DuplicateError(AppException):
    """
    Raised when creating a resource that already exists.

    Used for unique constraint violations (e.g. a document number already
    taken for the same document type).
    """

    status_code: int = 409
    error_code: str = "DUPLICATE_RESOURCE"

    def __init__(
        self,
        detail: str = "Resource already exists",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class BusinessValidationError(ValueError, AppException):
    """
    Raised for business rule violations.

    Inherits from ValueError so that pydantic validators can raise it.

    Do NOT confuse with pydantic.ValidationError, which covers the
    schema/format of the incoming data.

    Examples:
        - "Progress phases would exceed 100% of the document total"
        - "Payment amount must be positive"
        - "Only invoices can receive payments"
    """

    status_code: int = 422
    error_code: str = "BUSINESS_VALIDATION_ERROR"

    def __init__(
        self,
        detail: str = "Validation failed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        # Call AppException.__init__ directly to skip ValueError
        AppException.__init__(self, detail, error_code, extra)


class ConflictError(AppException):
    """
    Raised for state conflicts.

    Used when an operation cannot run because of the current state of
    the resource.
    """

    status_code: int = 409
    error_code: str = "CONFLICT_STATE"

    def __init__(
        self,
        detail: str = "State conflict",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class StateTransitionError(ConflictError):
    """
    Raised for an illegal document lifecycle transition.

    Carries the current and the requested status in `extra` so the
    frontend can explain why the action was refused.
    """

    error_code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        detail: str = "Status transition not allowed",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)


class QuoteNotConvertibleError(StateTransitionError):
    """Raised when a document cannot be converted into an invoice."""

    error_code: str = "QUOTE_NOT_CONVERTIBLE"

    def __init__(
        self,
        detail: str = "Quote cannot be converted to an invoice",
        error_code: Optional[str] = None,
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(detail, error_code, extra)
