"""Exception hierarchy for the behavioral fraud review engine."""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error code enumeration."""

    # General errors
    INTERNAL_ERROR = "internal_error"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"

    # Database errors
    DATABASE_CONNECTION_FAILED = "database_connection_failed"
    DATABASE_QUERY_FAILED = "database_query_failed"

    # Workflow errors
    INVALID_TRANSITION = "invalid_transition"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class FraudDetectionException(Exception):
    """Base exception for fraud detection system."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[str] = None
    ):
        self.message = message
        self.error_code = error_code
        self.details = details
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class ValidationException(FraudDetectionException):
    """Validation error exception."""

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details
        )


class DatabaseException(FraudDetectionException):
    """Database error exception."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.DATABASE_QUERY_FAILED,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        details: Optional[str] = None
    ):
        super().__init__(message=message, error_code=error_code, details=details)
        self.operation = operation
        self.table = table


class NotFoundException(FraudDetectionException):
    """Raised when a referenced alert, case or freeze does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} not found",
            error_code=ErrorCode.NOT_FOUND,
            details=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransitionException(FraudDetectionException):
    """Raised when a workflow status change is not a permitted forward move."""

    def __init__(self, entity: str, current_status: str, target_status: str):
        super().__init__(
            message=f"Invalid {entity} transition",
            error_code=ErrorCode.INVALID_TRANSITION,
            details=f"{current_status} -> {target_status}"
        )
        self.entity = entity
        self.current_status = current_status
        self.target_status = target_status


class ConcurrentModificationException(FraudDetectionException):
    """Raised when a compare-and-set update loses against another writer."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} was modified concurrently",
            error_code=ErrorCode.CONCURRENT_MODIFICATION,
            details=entity_id
        )
        self.entity = entity
        self.entity_id = entity_id
