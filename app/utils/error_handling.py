"""
GroupLedger - Error Handling

Exception hierarchy and the FastAPI handlers that turn it into the
``{"detail": {code, message, timestamp, field?, details?}}`` envelope.

Row-level ingestion problems (RowValidationFailure) and storage client
failures (StorageError) never reach the HTTP layer directly; the
ingestion service converts them into batch outcomes or PersistenceFailure.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError, IntegrityError, OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger("groupledger.errors")


class ErrorCode(str, Enum):
    """Machine-readable codes carried in every error body"""

    # Request and upload validation (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    UNKNOWN_UPLOAD_TYPE = "UNKNOWN_UPLOAD_TYPE"
    INVALID_PERIOD = "INVALID_PERIOD"

    # Lookups and state (404/409)
    NOT_FOUND = "NOT_FOUND"
    ORGANIZATION_NOT_FOUND = "ORGANIZATION_NOT_FOUND"
    NO_FINANCIAL_DATA = "NO_FINANCIAL_DATA"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    PERIOD_NOT_READY = "PERIOD_NOT_READY"

    # Group rules (422)
    BUSINESS_RULE_VIOLATION = "BUSINESS_RULE_VIOLATION"
    HIERARCHY_VIOLATION = "HIERARCHY_VIOLATION"

    # Upstream APIs (502)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    OPENAI_API_ERROR = "OPENAI_API_ERROR"

    # Database (500/503)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"

    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """
    Base for errors that map to an HTTP response.

    ``original_error`` is logged with the traceback but never sent to
    the client.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return error_body(self.code, self.message, self.details, self.field, self.timestamp)


# ============================================================================
# Validation
# ============================================================================

class ValidationException(AppException):
    """Input rejected before any work was done"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code,
            message,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class UnknownUploadTypeException(ValidationException):
    """No mapping table is registered for the upload type"""

    def __init__(self, upload_type: str, batch_id: Optional[UUID] = None):
        details: Dict[str, Any] = {"upload_type": upload_type}
        if batch_id:
            details["batch_id"] = str(batch_id)
        super().__init__(
            f"Unknown upload type '{upload_type}'",
            field="upload_type",
            details=details,
            code=ErrorCode.UNKNOWN_UPLOAD_TYPE,
        )
        self.upload_type = upload_type


class InvalidPeriodException(ValidationException):
    """Period token is not YYYY-MM or YYYY-Qn"""

    def __init__(self, period: str):
        super().__init__(
            f"Invalid period '{period}'. Expected YYYY-MM or YYYY-Qn",
            field="period",
            code=ErrorCode.INVALID_PERIOD,
        )


class RowValidationFailure(Exception):
    """
    A single CSV row is missing required fields.

    Raised and caught inside ingestion; the row is skipped and logged,
    the batch carries on.
    """

    def __init__(self, row_index: int, missing_fields: List[str]):
        self.row_index = row_index
        self.missing_fields = missing_fields
        super().__init__(f"Row {row_index} is missing required fields: {', '.join(missing_fields)}")


# ============================================================================
# Lookups and state
# ============================================================================

class NotFoundException(AppException):
    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        super().__init__(
            code,
            message,
            status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class OrganizationNotFoundException(NotFoundException):
    def __init__(self, organization_id: Union[str, UUID]):
        super().__init__("Organization", organization_id, code=ErrorCode.ORGANIZATION_NOT_FOUND)


class NoFinancialDataException(NotFoundException):
    """Nothing has been ingested for the organization and period"""

    def __init__(self, organization_id: Union[str, UUID], period: str):
        super().__init__(
            "FinancialData",
            organization_id,
            message=f"No financial data for organization '{organization_id}' in period {period}",
            code=ErrorCode.NO_FINANCIAL_DATA,
        )
        self.details["period"] = period


class ConflictException(AppException):
    """Request clashes with the current state of a resource"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if resource_type:
            details["resource_type"] = resource_type
        super().__init__(code, message, status.HTTP_409_CONFLICT, details=details)


class InvalidStatusTransitionException(ConflictException):
    """Status may only move forward along its lifecycle"""

    def __init__(self, resource_type: str, current: str, requested: str):
        super().__init__(
            f"{resource_type} cannot move from '{current}' to '{requested}'",
            resource_type=resource_type,
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            details={"current_status": current, "requested_status": requested},
        )


class PeriodNotReadyException(ConflictException):
    """Uploads for the period are still being ingested"""

    def __init__(self, period: str, open_batches: List[str]):
        super().__init__(
            f"Period {period} has {len(open_batches)} upload(s) still in progress",
            resource_type="UploadBatch",
            code=ErrorCode.PERIOD_NOT_READY,
            details={"period": period, "open_batches": open_batches},
        )


# ============================================================================
# Group rules
# ============================================================================

class BusinessRuleException(AppException):
    """Well-formed request that the group's rules do not allow"""

    def __init__(
        self,
        message: str,
        rule: Optional[str] = None,
        code: ErrorCode = ErrorCode.BUSINESS_RULE_VIOLATION,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if rule:
            details["violated_rule"] = rule
        super().__init__(code, message, status.HTTP_422_UNPROCESSABLE_ENTITY, details=details)


class OrganizationHierarchyException(BusinessRuleException):
    """Parent chain is cyclic or deeper than the configured bound"""

    def __init__(self, organization: str, reason: str):
        super().__init__(
            f"Invalid ownership hierarchy at '{organization}': {reason}",
            rule="ACYCLIC_BOUNDED_HIERARCHY",
            code=ErrorCode.HIERARCHY_VIOLATION,
            details={"organization": organization},
        )


# ============================================================================
# Upstream APIs
# ============================================================================

class ExternalServiceException(AppException):
    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        details["service"] = service_name
        super().__init__(
            code,
            message,
            status.HTTP_502_BAD_GATEWAY,
            details=details,
            original_error=original_error,
        )


class AssistantUnavailableException(ExternalServiceException):
    """OpenAI is not configured or the request failed"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            "OpenAI API",
            f"AI assistant error: {message}",
            code=ErrorCode.OPENAI_API_ERROR,
            original_error=original_error,
        )


# ============================================================================
# Storage
# ============================================================================

class StorageError(Exception):
    """Storage client failure that is not tied to a single row"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(message)


class DuplicateRecordError(StorageError):
    """A uniqueness constraint rejected the insert"""


class PersistenceFailure(AppException):
    """Batch aborted because the storage layer kept failing"""

    def __init__(self, batch_id: Union[str, UUID], message: str, original_error: Optional[Exception] = None):
        super().__init__(
            ErrorCode.PERSISTENCE_FAILURE,
            f"Upload batch {batch_id} failed: {message}",
            status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"batch_id": str(batch_id)},
            original_error=original_error,
        )


# ============================================================================
# Handlers
# ============================================================================

HTTP_STATUS_CODES = {
    400: ErrorCode.INVALID_INPUT,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.INVALID_INPUT,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    502: ErrorCode.EXTERNAL_SERVICE_ERROR,
    503: ErrorCode.EXTERNAL_SERVICE_ERROR,
}


def error_body(
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "code": code.value,
        "message": message,
        "timestamp": (timestamp or datetime.now(timezone.utc)).isoformat(),
    }
    if field:
        body["field"] = field
    if details:
        body["details"] = details
    return body


def error_response(
    status_code: int,
    code: ErrorCode,
    message: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": error_body(code, message, details)})


def _request_info(request: Request) -> Dict[str, str]:
    return {"path": request.url.path, "method": request.method}


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    # Client errors log as warnings
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.code.value}: {exc.message}",
        extra=_request_info(request),
        exc_info=exc.original_error,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    logger.warning(f"HTTP {exc.status_code}: {message}", extra=_request_info(request))
    code = HTTP_STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    return error_response(exc.status_code, code, message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(f"Request validation failed with {len(errors)} error(s)", extra=_request_info(request))
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ErrorCode.VALIDATION_ERROR,
        "Request validation failed",
        {"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error(f"{type(exc).__name__}: {exc}", extra=_request_info(request), exc_info=True)

    if isinstance(exc, IntegrityError):
        reason = str(exc.orig).lower() if exc.orig else ""
        if "unique" in reason or "duplicate" in reason:
            return error_response(
                status.HTTP_409_CONFLICT, ErrorCode.DUPLICATE_ENTRY, "A record with this value already exists"
            )
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.DATABASE_ERROR, "Data integrity constraint violated"
        )
    if isinstance(exc, OperationalError):
        return error_response(
            status.HTTP_503_SERVICE_UNAVAILABLE, ErrorCode.CONNECTION_ERROR, "Database operation failed"
        )
    return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, ErrorCode.DATABASE_ERROR, "A database error occurred")


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.critical(f"Unhandled {type(exc).__name__}: {exc}", extra=_request_info(request), exc_info=True)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        ErrorCode.INTERNAL_ERROR,
        "An unexpected error occurred. Please try again later.",
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "AppException",
    "ErrorCode",
    # Validation
    "ValidationException",
    "UnknownUploadTypeException",
    "InvalidPeriodException",
    "RowValidationFailure",
    # Lookups and state
    "NotFoundException",
    "OrganizationNotFoundException",
    "NoFinancialDataException",
    "ConflictException",
    "InvalidStatusTransitionException",
    "PeriodNotReadyException",
    # Group rules
    "BusinessRuleException",
    "OrganizationHierarchyException",
    # Upstream APIs
    "ExternalServiceException",
    "AssistantUnavailableException",
    # Storage
    "StorageError",
    "DuplicateRecordError",
    "PersistenceFailure",
    "setup_exception_handlers",
]
