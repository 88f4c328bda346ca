"""Application error types and their HTTP rendering.

Service functions raise AppError subclasses; the handlers registered by
register_exception_handlers() turn them into JSON bodies of the form
{"detail": ..., "code": ..., "details": {...}}.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, enum.Enum):
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    INVALID_TOKEN = "INVALID_TOKEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"
    CANNOT_DELETE_SELF = "CANNOT_DELETE_SELF"
    USER_INACTIVE = "USER_INACTIVE"
    RANGE_NOT_SATISFIABLE = "RANGE_NOT_SATISFIABLE"
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"


STATUS_BY_CODE: Dict[ErrorCode, int] = {
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.INVALID_TOKEN: 401,
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.ADMIN_REQUIRED: 403,
    ErrorCode.CANNOT_DELETE_SELF: 400,
    ErrorCode.USER_INACTIVE: 403,
    ErrorCode.RANGE_NOT_SATISFIABLE: 416,
    ErrorCode.UNSUPPORTED_MEDIA_TYPE: 415,
}


class AppError(Exception):
    """Base error for service-level failures with a stable code."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code if status_code is not None else STATUS_BY_CODE.get(code, 500)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"detail": self.message, "code": self.code.value}
        if self.details:
            result["details"] = self.details
        return result


class NotFoundError(AppError):
    def __init__(self, resource: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"{resource} not found", ErrorCode.NOT_FOUND, details=details)


class ConflictError(AppError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.CONFLICT, details=details)


class ValidationError(AppError):
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details=details)


class ForbiddenError(AppError):
    def __init__(self, message: str = "Access denied", code: ErrorCode = ErrorCode.FORBIDDEN) -> None:
        super().__init__(message, code)


def admin_required() -> ForbiddenError:
    return ForbiddenError("Administrator privileges required", ErrorCode.ADMIN_REQUIRED)


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("app_error code=%s path=%s msg=%s", exc.code.value, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": ErrorCode.INTERNAL_ERROR.value},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
