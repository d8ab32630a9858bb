"""
Shared HTTP error classes and utilities for the Canvass services.

Provides:
- Base exception class for API errors
- Common subclasses (Validation, Auth, PermissionDenied, NotFound, Conflict,
  Service, Store)
- Shared error response model
- Utility to convert exceptions to error responses
- FastAPI exception handler registration

Common Usage Patterns:
=====================

Basic Exception Usage:
>>> from services.common.http_errors import ValidationError, NotFoundError
>>>
>>> # Validation error with field context
>>> error = ValidationError("Unknown supporter status", field="supporter_status")
>>>
>>> # Resource not found
>>> error = NotFoundError("Contact", "c-123")

FastAPI Integration:
>>> from fastapi import FastAPI
>>> from services.common.http_errors import register_canvass_exception_handlers
>>>
>>> app = FastAPI()
>>> register_canvass_exception_handlers(app)

Error Code Taxonomy:
===================
- VALIDATION_* : Input validation errors (422)
- AUTH_* : Authentication errors (401)
- ACCESS_* : Authorization/permission errors (403)
- NOT_FOUND : Resource not found (404)
- CONFLICT : Stale or conflicting write (409)
- SERVICE_* / DATABASE_ERROR : Internal service errors (5xx)
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from services.common.logging_config import log_http_error, request_id_var


class ErrorCode(str, Enum):
    """
    Standardized error codes for the Canvass services.

    Error codes are organized by category and follow the ALL_CAPS naming
    convention.
    """

    # ==========================================
    # GENERAL ERRORS (4xx client errors)
    # ==========================================
    VALIDATION_FAILED = "VALIDATION_FAILED"  # HTTP 422 - Input validation failed
    NOT_FOUND = "NOT_FOUND"  # HTTP 404 - Resource not found
    ALREADY_EXISTS = "ALREADY_EXISTS"  # HTTP 409 - Resource already exists
    CONFLICT = "CONFLICT"  # HTTP 409 - Superseded or concurrent write
    INTERNAL_ERROR = "INTERNAL_ERROR"  # HTTP 500 - Generic internal error

    # ==========================================
    # AUTHENTICATION ERRORS (401 Unauthorized)
    # ==========================================
    AUTH_FAILED = "AUTH_FAILED"  # Generic authentication failure
    TOKEN_EXPIRED = "TOKEN_EXPIRED"  # Signed token has expired
    TOKEN_INVALID = "TOKEN_INVALID"  # Token format or signature invalid

    # ==========================================
    # AUTHORIZATION ERRORS (403 Forbidden)
    # ==========================================
    ACCESS_DENIED = "ACCESS_DENIED"  # Role does not allow the operation
    FIELD_LOCKED = "FIELD_LOCKED"  # Baseline voter-file field is read-only
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"  # API key lacks permission

    # ==========================================
    # SERVICE ERRORS (5xx server errors)
    # ==========================================
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"  # Service temporarily unavailable
    SERVICE_ERROR = "SERVICE_ERROR"  # Generic service error
    DATABASE_ERROR = "DATABASE_ERROR"  # Database connectivity/operation error


class ErrorResponse(BaseModel):
    """
    Standardized error response model for the Canvass services.

    Attributes:
        type: Error type categorization (e.g., "validation_error", "conflict")
        message: Human-readable error message for end users
        details: Optional dictionary containing additional error context
        timestamp: ISO 8601 timestamp of when the error occurred
        request_id: Identifier for tracing, taken from the request context

    Example:
        >>> error = ErrorResponse(
        ...     type="validation_error",
        ...     message="Unknown supporter status",
        ...     details={"field": "supporter_status"},
        ...     timestamp="2024-01-15T10:30:00Z",
        ...     request_id="req-abc123"
        ... )
    """

    type: str
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: str
    request_id: str


def _current_request_id() -> str:
    request_id = request_id_var.get()
    if request_id and request_id != "uninitialized":
        return request_id
    return str(uuid.uuid4())


class CanvassAPIException(Exception):
    """
    Base exception class for all Canvass API errors.

    Every service exception inherits from this class, which carries the HTTP
    status, the error category and code, and converts itself into an
    ErrorResponse. The request id defaults to the one bound by the request
    logging middleware so that error bodies can be matched with log lines.

    Args:
        message: The error message to display to users
        details: Optional dictionary with additional error context
        error_type: Error category string (defaults to "internal_error")
        error_code: Specific error code from ErrorCode enum
        status_code: HTTP status code (defaults to 500)
        request_id: Optional request ID (taken from context if not provided)
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_type: str = "internal_error",
        error_code: Optional[ErrorCode] = None,
        status_code: int = 500,
        request_id: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        self.error_type = error_type
        self.error_code = error_code
        self.status_code = status_code
        self.timestamp = datetime.now(timezone.utc).isoformat()
        self.request_id = request_id or _current_request_id()
        super().__init__(self.message)

    def to_error_response(self) -> ErrorResponse:
        """
        Convert exception to ErrorResponse Pydantic model.

        The error code, when present, is added to the details.

        Example:
            >>> error = ValidationError("Invalid input", field="email")
            >>> error.to_error_response().details
            {'field': 'email', 'code': 'VALIDATION_FAILED'}
        """
        details = {
            **self.details,
            **({"code": self.error_code.value} if self.error_code else {}),
        }
        return ErrorResponse(
            type=self.error_type,
            message=self.message,
            details=details if details else None,
            timestamp=self.timestamp,
            request_id=self.request_id,
        )


class ValidationError(CanvassAPIException):
    """
    Exception for input validation errors (HTTP 422).

    Raised for malformed filters, unknown enum values, unknown or oversized
    fields and bad child-row input. The offending field is always named so
    clients can highlight it.

    Args:
        message: Human-readable description of the validation failure
        field: Optional field name that failed validation
        value: Optional invalid value that was provided
        details: Optional additional validation context
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        validation_details = details or {}
        if field:
            validation_details["field"] = field
        if value is not None:
            validation_details["value"] = str(value)
        super().__init__(
            message=message,
            details=validation_details,
            error_type="validation_error",
            error_code=ErrorCode.VALIDATION_FAILED,
            status_code=422,
        )
        self.field = field
        self.value = value


class NotFoundError(CanvassAPIException):
    """
    Exception for resource not found errors (HTTP 404).

    Examples:
        >>> error = NotFoundError("Contact", "c-123")
        >>> print(error.message)
        Contact c-123 not found

        >>> error = NotFoundError("AuditLogEntry")
        >>> print(error.message)
        AuditLogEntry not found
    """

    def __init__(
        self,
        resource: str,
        identifier: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        if identifier:
            message = f"{resource} {identifier} not found"
        else:
            message = f"{resource} not found"
        notfound_details = {
            **(details or {}),
            "resource": resource,
            "identifier": identifier,
        }
        super().__init__(
            message=message,
            details=notfound_details,
            error_type="not_found",
            error_code=ErrorCode.NOT_FOUND,
            status_code=404,
        )
        self.resource = resource
        self.identifier = identifier


class AuthError(CanvassAPIException):
    """
    Exception for authentication errors (HTTP 401).

    Used for missing or invalid API keys and unknown acting users.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.AUTH_FAILED,
        status_code: int = 401,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="auth_error",
            error_code=code,
            status_code=status_code,
        )


class PermissionDeniedError(CanvassAPIException):
    """
    Exception for authorization failures (HTTP 403).

    Raised when the acting user's role does not allow an operation (viewers
    editing, non-admins undoing) and for writes to locked voter-file fields,
    which are rejected for every role. Named to avoid shadowing the builtin
    PermissionError.

    Args:
        message: Description of the refused operation
        field: Optional field the refusal applies to
        role: Optional role of the acting user
        code: Specific error code (defaults to ACCESS_DENIED)
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        role: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.ACCESS_DENIED,
    ):
        permission_details = details or {}
        if field:
            permission_details["field"] = field
        if role:
            permission_details["role"] = role
        super().__init__(
            message=message,
            details=permission_details,
            error_type="permission_denied",
            error_code=code,
            status_code=403,
        )
        self.field = field
        self.role = role


class ConflictError(CanvassAPIException):
    """
    Exception for conflicting writes (HTTP 409).

    Raised when undoing an audit entry that later edits have superseded, and
    when a concurrent write violates a uniqueness rule such as the single
    primary phone per contact.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.CONFLICT,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="conflict",
            error_code=code,
            status_code=409,
        )


class ServiceError(CanvassAPIException):
    """
    Exception for internal service errors (HTTP 502).

    Used when a downstream dependency fails or configuration is missing.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.SERVICE_ERROR,
        status_code: int = 502,
    ):
        super().__init__(
            message=message,
            details=details,
            error_type="service_error",
            error_code=code,
            status_code=status_code,
        )


class StoreError(ServiceError):
    """
    Exception for persistence failures (HTTP 500).

    Wraps SQLAlchemy errors raised while reading or writing the directory.
    The surrounding transaction has always been rolled back by the time this
    reaches a handler.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        operation: Optional[str] = None,
    ):
        store_details = details or {}
        if operation:
            store_details["operation"] = operation
        super().__init__(
            message=message,
            details=store_details,
            code=ErrorCode.DATABASE_ERROR,
            status_code=500,
        )
        self.error_type = "store_error"
        self.operation = operation


def exception_to_response(exc: Exception) -> ErrorResponse:
    """
    Convert any exception to a standardized ErrorResponse Pydantic model.

    1. CanvassAPIException: Uses the built-in to_error_response() method
    2. HTTPException: Extracts detail information and normalizes format
    3. Generic Exception: Creates a safe internal error response

    Generic exceptions keep only their type name in the details; the message
    is replaced so that driver or SQL text never reaches clients.
    """
    if isinstance(exc, CanvassAPIException):
        return exc.to_error_response()
    elif isinstance(exc, HTTPException):
        detail = (
            exc.detail if isinstance(exc.detail, dict) else {"message": str(exc.detail)}
        )
        return ErrorResponse(
            type="http_error",
            message=detail.get("message", "HTTP error"),
            details=detail,
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )
    else:
        return ErrorResponse(
            type="internal_error",
            message="Internal server error",
            details={"error_type": type(exc).__name__},
            timestamp=datetime.now(timezone.utc).isoformat(),
            request_id=_current_request_id(),
        )


def register_canvass_exception_handlers(app: FastAPI) -> None:
    """
    Register exception handlers for FastAPI applications.

    1. CanvassAPIException: returns the exception's status code and details
    2. RequestValidationError: 422 naming the first invalid field
    3. HTTPException: converted to the standard format
    4. Generic Exception: 500 with a safe internal error response

    Every handled error is logged through log_http_error.
    """
    from fastapi import Request
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse

    @app.exception_handler(CanvassAPIException)
    async def canvass_api_exception_handler(
        request: Request, exc: CanvassAPIException
    ) -> JSONResponse:
        error_response = exc.to_error_response()
        log_http_error(
            error_type=exc.error_type,
            message=exc.message,
            status_code=exc.status_code,
            request_id=exc.request_id,
            details=error_response.details,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(part) for part in error["loc"][1:])
                or str(error["loc"][0]),
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        first = errors[0] if errors else {"field": None, "message": "Invalid request"}
        error = ValidationError(
            first["message"], field=first["field"], details={"errors": errors}
        )
        error_response = error.to_error_response()
        log_http_error(
            error_type=error.error_type,
            message=error.message,
            status_code=error.status_code,
            request_id=error.request_id,
            details=error_response.details,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=error.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        error_response = exception_to_response(exc)
        log_http_error(
            error_type=error_response.type,
            message=error_response.message,
            status_code=exc.status_code,
            request_id=error_response.request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=exc.status_code, content=error_response.model_dump()
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        error_response = exception_to_response(exc)
        log_http_error(
            error_type=error_response.type,
            message=str(exc),
            status_code=500,
            request_id=error_response.request_id,
            path=request.url.path,
            exc_info=exc,
        )
        return JSONResponse(status_code=500, content=error_response.model_dump())
