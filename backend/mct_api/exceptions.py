"""
MCT API — Error Codes and Application Exceptions
==================================================

What:  The closed error-code taxonomy and the AppError exception family.
Why:   Handlers select a code by condition, never a free-form string, so
       clients can switch exhaustively on ``error.code``.
How:   Each AppError carries a code, a client-safe message, optional
       details, and an optional underlying cause kept for server-side logs.
       The handler-level envelope writer (middleware/error_handler.py) maps
       the code to an HTTP status and serializes everything except the cause.
Who:   Raised by handlers and lower layers; caught by registered handlers.

Exception Hierarchy:
    AppError (code chosen by caller)
    ├── InvalidInputError       → INVALID_INPUT      → 400
    ├── NotFoundError           → NOT_FOUND          → 404
    ├── DuplicateEntryError     → DUPLICATE_ENTRY    → 409
    └── ValidationFailedError   → VALIDATION_FAILED  → 422

    PoolInitError (startup-fatal, never reaches a client)
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """
    Machine-readable error categories. The wire strings are stable:
    new members may be added, existing strings are never repurposed.
    """

    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    TOURNAMENT_FULL = "TOURNAMENT_FULL"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    VALIDATION_FAILED = "VALIDATION_FAILED"


HTTP_STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.PAYMENT_FAILED: 402,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.TOURNAMENT_FULL: 409,
    ErrorCode.DUPLICATE_ENTRY: 409,
    ErrorCode.VALIDATION_FAILED: 422,
    ErrorCode.INTERNAL_ERROR: 500,
}


class AppError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        code:     ErrorCode sent to the client
        message:  Human-readable summary (safe to return in API response)
        details:  Diagnostic detail, serialized only when explicitly set
        cause:    Underlying exception for log correlation (NEVER serialized)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        details: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.code = ErrorCode(code)
        self.message = message
        self.details = details
        self.cause = cause
        super().__init__(message)
        if cause is not None:
            self.__cause__ = cause

    @property
    def status_code(self) -> int:
        return HTTP_STATUS_BY_CODE.get(self.code, 500)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, message={self.message!r})"


class InvalidInputError(AppError):
    """Client sent input that cannot be interpreted."""

    def __init__(
        self,
        message: str = "Invalid input",
        details: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(ErrorCode.INVALID_INPUT, message, details=details, cause=cause)


class NotFoundError(AppError):
    """
    Raised when a requested resource does not exist.

    The data layer returns None for missing rows; services convert that
    into NotFoundError so the HTTP status is decided at the outer layer.
    """

    def __init__(self, resource: str = "resource", resource_id: Optional[str] = None):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        super().__init__(ErrorCode.NOT_FOUND, message)
        self.resource = resource
        self.resource_id = resource_id


class DuplicateEntryError(AppError):
    def __init__(
        self,
        message: str = "Resource already exists",
        cause: Optional[BaseException] = None,
    ):
        super().__init__(ErrorCode.DUPLICATE_ENTRY, message, cause=cause)


class ValidationFailedError(AppError):
    """Input was well-formed but broke a validation rule."""

    def __init__(self, message: str = "Validation failed", details: Optional[str] = None):
        super().__init__(ErrorCode.VALIDATION_FAILED, message, details=details)


class PoolInitError(Exception):
    """
    A backing-store pool could not be established at startup.

    Startup-fatal: the bootstrap logs it and lets the process exit.
    ``store`` names the backing store ("postgres" or "redis").
    """

    def __init__(self, store: str, message: str):
        self.store = store
        self.message = message
        super().__init__(f"{store}: {message}")
