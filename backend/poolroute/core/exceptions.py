"""
Standardized exception handling for the dispatch API.

Provides consistent error responses across all endpoints with:
- Unique error codes for client-side handling
- Request tracking via request_id
- Detailed error messages with context (offending field, current state)
- HTTP status code alignment
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorDetail(BaseModel):
    """Standardized error response format."""
    code: str
    message: str
    status_code: int
    timestamp: str
    request_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class ErrorResponse(BaseModel):
    """Wrapper for error responses."""
    error: ErrorDetail


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


# =============================================================================
# Base Exception Classes
# =============================================================================

class AppException(Exception):
    """Base exception for all application errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message or self.message
        self.details = details
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_response(self, request_id: Optional[str] = None) -> ErrorResponse:
        """Convert exception to standardized error response."""
        return ErrorResponse(
            error=ErrorDetail(
                code=self.error_code,
                message=self.message,
                status_code=self.status_code,
                timestamp=_utc_timestamp(),
                request_id=request_id,
                details=self.details,
            )
        )


# =============================================================================
# Client Errors (4xx)
# =============================================================================

class ValidationException(AppException):
    """Invalid input data."""
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"
    message = "Invalid input data"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None, **details: Any):
        if field:
            details["field"] = field
        super().__init__(message=message, details=details or None)


class AuthenticationException(AppException):
    """Identity token missing or invalid."""
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "AUTHENTICATION_FAILED"
    message = "Authentication required"


class PermissionDeniedException(AppException):
    """Role lacks permission."""
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "PERMISSION_DENIED"
    message = "You do not have permission to perform this action"


class NotFoundException(AppException):
    """Resource not found (or outside the caller's scope)."""
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ConflictException(AppException):
    """Resource conflict (duplicate, state conflict)."""
    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"
    message = "Resource conflict"


class RateLimitException(AppException):
    """Rate limit exceeded."""
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error_code = "RATE_LIMIT_EXCEEDED"
    message = "Rate limit exceeded. Please retry later."

    def __init__(self, limit: int, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            message=f"Rate limit exceeded. Limit: {limit} requests per window.",
            details={"limit": limit, "retry_after_seconds": retry_after},
        )


# =============================================================================
# Domain-Specific Exceptions
# =============================================================================

class TechnicianNotFoundException(NotFoundException):
    error_code = "TECHNICIAN_NOT_FOUND"

    def __init__(self, technician_id: Any):
        super().__init__(
            message=f"Technician with ID '{technician_id}' not found",
            details={"technician_id": str(technician_id)},
        )


class ClientNotFoundException(NotFoundException):
    error_code = "CLIENT_NOT_FOUND"

    def __init__(self, client_id: Any):
        super().__init__(
            message=f"Client with ID '{client_id}' not found",
            details={"client_id": str(client_id)},
        )


class AssignmentNotFoundException(NotFoundException):
    error_code = "ASSIGNMENT_NOT_FOUND"

    def __init__(self, assignment_id: Any):
        super().__init__(
            message=f"Schedule assignment with ID '{assignment_id}' not found",
            details={"assignment_id": str(assignment_id)},
        )


class RouteInstanceNotFoundException(NotFoundException):
    error_code = "ROUTE_NOT_FOUND"

    def __init__(self, instance_id: Any):
        super().__init__(
            message=f"Route with ID '{instance_id}' not found",
            details={"route_instance_id": str(instance_id)},
        )


class RouteStopNotFoundException(NotFoundException):
    error_code = "STOP_NOT_FOUND"

    def __init__(self, stop_id: Any):
        super().__init__(
            message=f"Route stop with ID '{stop_id}' not found",
            details={"stop_id": str(stop_id)},
        )


class DuplicateAssignmentException(ConflictException):
    """Active assignment already exists for (technician, client, day)."""
    error_code = "DUPLICATE_ASSIGNMENT"

    def __init__(self, assignment_id: Any, technician_id: Any, client_id: Any, day_of_week: str):
        super().__init__(
            message=f"Client '{client_id}' is already scheduled with technician '{technician_id}' on {day_of_week}",
            details={
                "assignment_id": str(assignment_id) if assignment_id is not None else None,
                "technician_id": str(technician_id),
                "client_id": str(client_id),
                "day_of_week": day_of_week,
            },
        )


class InvalidTransitionException(ConflictException):
    """Requested state change is not allowed from the current state."""
    error_code = "INVALID_TRANSITION"

    def __init__(self, entity: str, entity_id: Any, current_status: str, action: str):
        super().__init__(
            message=f"Cannot {action} {entity} '{entity_id}' while it is {current_status}",
            details={
                "entity": entity,
                "id": str(entity_id),
                "current_status": current_status,
                "action": action,
            },
        )


class InstanceLockedException(InvalidTransitionException):
    """Completed routes can no longer be resequenced."""
    error_code = "INSTANCE_LOCKED"

    def __init__(self, instance_id: Any, current_status: str):
        super().__init__("route", instance_id, current_status, "reorder")


class ConcurrentModificationException(ConflictException):
    """Caller's view of the route is stale."""
    error_code = "CONCURRENT_MODIFICATION"

    def __init__(self, instance_id: Any, expected_version: int, current_version: int):
        super().__init__(
            message=f"Route '{instance_id}' was modified concurrently",
            details={
                "route_instance_id": str(instance_id),
                "expected_version": expected_version,
                "current_version": current_version,
            },
        )


class InvalidOrderSetException(AppException):
    """Reorder payload does not match the current membership exactly."""
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "INVALID_ORDER_SET"
    message = "Ordered ids must match the current members exactly"

    def __init__(self, missing: list, unexpected: list, duplicates: list):
        super().__init__(
            details={
                "missing": [str(i) for i in missing],
                "unexpected": [str(i) for i in unexpected],
                "duplicates": [str(i) for i in duplicates],
            },
        )


# =============================================================================
# Infrastructure Exceptions (5xx)
# =============================================================================

class StoreUnavailableException(AppException):
    """Backing store cannot be reached."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "STORE_UNAVAILABLE"
    message = "Route store is temporarily unavailable"


# =============================================================================
# Exception Handler Registration
# =============================================================================

def get_request_id(request: Request) -> str:
    """Extract or generate request ID."""
    return getattr(request.state, "request_id", None) or request.headers.get("X-Request-ID") or str(uuid4())


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all application exceptions with standardized format."""
    request_id = get_request_id(request)
    response = exc.to_response(request_id=request_id)

    headers = {"X-Request-ID": request_id}
    if isinstance(exc, RateLimitException):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=response.model_dump(),
        headers=headers,
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render FastAPI body/query validation failures in the standard envelope."""
    errors = exc.errors()
    field = None
    if errors:
        field = ".".join(str(part) for part in errors[0].get("loc", ()) if part not in ("body", "query", "path"))
    wrapped = ValidationException(
        message=errors[0].get("msg", "Invalid input data") if errors else None,
        field=field or None,
        errors=[{"loc": [str(p) for p in e.get("loc", ())], "msg": e.get("msg")} for e in errors],
    )
    return await app_exception_handler(request, wrapped)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    request_id = get_request_id(request)

    logger.exception(f"Unhandled exception: {exc}", extra={"request_id": request_id})

    error = ErrorResponse(
        error=ErrorDetail(
            code="INTERNAL_ERROR",
            message="An unexpected error occurred",
            status_code=500,
            timestamp=_utc_timestamp(),
            request_id=request_id,
        )
    )

    return JSONResponse(
        status_code=500,
        content=error.model_dump(),
        headers={"X-Request-ID": request_id},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI app."""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
