"""
FruFresco Ops - Custom Exception Hierarchy

Provides structured, typed exceptions with error codes for consistent
error handling across the procurement engine and its API.

Usage:
    from app.exceptions import NotFoundError, MissingFieldError

    # In a service
    raise NotFoundError("ProcurementTask", task_id)

    # Required purchase field missing
    raise MissingFieldError("evidence", "A photo of the voucher is required")
"""
from typing import Any, Dict, Optional


class FruFrescoException(Exception):
    """
    Base exception for all FruFresco Ops errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., "NOT_FOUND", "VALIDATION_ERROR")
        status_code: HTTP status code to return
        details: Additional context for debugging
    """

    error_code: str = "FRUFRESCO_ERROR"
    status_code: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# ===================
# 400 Bad Request Errors
# ===================


class ValidationError(FruFrescoException):
    """Raised when input validation fails."""

    error_code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        *,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)
        self.field = field
        super().__init__(message, details=details)


class MissingFieldError(ValidationError):
    """Raised when a required purchase field was not provided."""

    error_code = "MISSING_FIELD"

    def __init__(
        self,
        field: str,
        message: Optional[str] = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message or f"'{field}' is required", field=field, details=details)


class InvalidStateError(FruFrescoException):
    """Raised when an operation is invalid for the current state."""

    error_code = "INVALID_STATE"
    status_code = 400

    def __init__(
        self,
        message: str = "Operation not allowed in current state",
        *,
        current_state: Optional[str] = None,
        allowed_states: Optional[list] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if current_state:
            details["current_state"] = current_state
        if allowed_states:
            details["allowed_states"] = allowed_states
        super().__init__(message, details=details)


# ===================
# 404 Not Found Errors
# ===================


class NotFoundError(FruFrescoException):
    """Raised when a resource is not found."""

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "Resource",
        resource_id: Any = None,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["resource"] = resource
        if resource_id is not None:
            details["resource_id"] = str(resource_id)
        message = f"{resource} not found"
        if resource_id is not None:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(message, details=details)


# ===================
# 409 Conflict Errors
# ===================


class ConflictError(FruFrescoException):
    """Raised when there's a resource conflict."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "Resource conflict",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


# ===================
# 422 Unprocessable Entity Errors
# ===================


class BusinessRuleError(FruFrescoException):
    """Raised when a business rule is violated."""

    error_code = "BUSINESS_RULE_ERROR"
    status_code = 422

    def __init__(
        self,
        message: str = "Business rule violation",
        *,
        rule: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if rule:
            details["rule"] = rule
        super().__init__(message, details=details)


class UnresolvedConversionError(BusinessRuleError):
    """
    Raised when a purchase unit differs from the task unit and no
    conversion factor is on file for the product.

    Operators resolve it by registering the missing factor or by
    purchasing in the task's own unit.
    """

    error_code = "UNRESOLVED_CONVERSION"

    def __init__(
        self,
        product_id: Any,
        from_unit: str,
        to_unit: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["product_id"] = str(product_id)
        details["from_unit"] = from_unit
        details["to_unit"] = to_unit
        self.product_id = product_id
        self.from_unit = from_unit
        self.to_unit = to_unit
        message = (
            f"No conversion from '{from_unit}' to '{to_unit}' is registered "
            f"for product {product_id}"
        )
        super().__init__(message, rule="conversion_required", details=details)


# ===================
# 499 Client Closed Request
# ===================


class OperationCancelledError(FruFrescoException):
    """Raised when the caller cancels an operation before it commits."""

    error_code = "OPERATION_CANCELLED"
    status_code = 499

    def __init__(
        self,
        operation: str = "operation",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        details["operation"] = operation
        super().__init__(f"{operation} was cancelled", details=details)


# ===================
# 500 Internal Server Errors
# ===================


class DatabaseError(FruFrescoException):
    """Raised when a database operation fails."""

    error_code = "DATABASE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Database operation failed",
        *,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details=details)


class FileStorageError(FruFrescoException):
    """Raised when file storage operations fail."""

    error_code = "FILE_STORAGE_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "File storage operation failed",
        *,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = details or {}
        if filename:
            details["filename"] = filename
        super().__init__(message, details=details)


class EvidenceUploadError(FileStorageError):
    """Raised when the purchase voucher could not be stored."""

    error_code = "EVIDENCE_UPLOAD_ERROR"

    def __init__(
        self,
        message: str = "Voucher upload failed",
        *,
        filename: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, filename=filename, details=details)
