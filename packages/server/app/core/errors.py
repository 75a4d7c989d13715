"""
Error taxonomy.

Every error is an HTTPException so services can raise them directly and the
boundary renders them as `{"detail": ..., "code": ...}`.
"""

from __future__ import annotations

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

log = structlog.get_logger()


class AppError(HTTPException):
    status_code = 500
    code = "INTERNAL_ERROR"
    default_detail = "Internal server error"

    def __init__(self, detail: str | None = None, headers: dict[str, str] | None = None):
        super().__init__(
            status_code=type(self).status_code,
            detail=detail or self.default_detail,
            headers=headers,
        )


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_detail = "Invalid request"


class AuthenticationError(AppError):
    status_code = 401
    code = "AUTHENTICATION_FAILED"
    default_detail = "Authentication required"


class AuthorizationError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_detail = "Access denied"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_detail = "Not found"


class DuplicateError(AppError):
    status_code = 409
    code = "DUPLICATE"
    default_detail = "Already exists"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"
    default_detail = "Concurrent modification, retry the request"


class CSRFValidationError(AuthorizationError):
    code = "CSRF_VALIDATION_FAILED"
    default_detail = "Invalid or missing CSRF token."


class StorageError(AppError):
    status_code = 500
    code = "STORAGE_ERROR"
    default_detail = "File storage failure"


class RangeNotSatisfiableError(AppError):
    status_code = 416
    code = "RANGE_NOT_SATISFIABLE"
    default_detail = "Requested range not satisfiable"


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"
    default_detail = "Upstream service failure"


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

def error_response(exc: AppError) -> JSONResponse:
    """Render an AppError outside the exception handlers, e.g. from middleware."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=exc.headers,
    )


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return error_response(exc)


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ())[1:]) or 'body'}: {e.get('msg')}"
        for e in errors
    )
    return JSONResponse(
        status_code=400,
        content={"detail": message or "Invalid request", "code": ValidationError.code},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    log.exception("request.unhandled_error", path=request.url.path, method=request.method)
    return JSONResponse(
        status_code=500,
        content={"detail": AppError.default_detail, "code": AppError.code},
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
