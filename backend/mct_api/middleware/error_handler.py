"""
MCT API — Application Error Handlers
======================================

What:  Maps AppError, request-validation failures and HTTP exceptions to
       envelope responses with the correct status code.
Why:   Consistent error format across all endpoints without try/except in
       each route. This is the handler-level envelope writer; together with
       RecoveryMiddleware it is the only place that decides an HTTP status
       for a failure.
How:   Registered on FastAPI's ExceptionMiddleware (innermost layer).
       Unexpected exceptions are deliberately NOT handled here so they reach
       RecoveryMiddleware, which logs the stack and returns a generic 500.

Handler hierarchy:
    AppError                → AppError.status_code (by ErrorCode)
    RequestValidationError  → 422 VALIDATION_FAILED
    HTTPException           → its status, code mapped from the status

Security: the AppError cause is logged server-side only, never serialized.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from mct_api.exceptions import AppError, ErrorCode
from mct_api.schemas.envelope import ApiResponse, envelope_response

logger = logging.getLogger(__name__)

_CODE_BY_STATUS = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.DUPLICATE_ENTRY,
    422: ErrorCode.VALIDATION_FAILED,
}


def error_code_for_status(status_code: int) -> ErrorCode:
    if status_code >= 500:
        return ErrorCode.INTERNAL_ERROR
    return _CODE_BY_STATUS.get(status_code, ErrorCode.INVALID_INPUT)


async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
    status = exc.status_code
    if status >= 500:
        logger.error(
            "%s: %s",
            exc.code.value,
            exc.message,
            exc_info=exc.cause,
            extra={"path": request.url.path, "code": exc.code.value},
        )
    else:
        logger.warning(
            "%s: %s",
            exc.code.value,
            exc.message,
            extra={"path": request.url.path, "code": exc.code.value},
        )
    return envelope_response(ApiResponse.fail(exc), status_code=status)


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Pydantic rejected the request; summarize field paths in ``details``."""
    details = "; ".join(
        f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    error = AppError(ErrorCode.VALIDATION_FAILED, "Request validation failed", details=details)
    return envelope_response(ApiResponse.fail(error), status_code=422)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Unknown routes (404), wrong methods (405) and explicit HTTPExceptions."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    error = AppError(error_code_for_status(exc.status_code), message)
    return envelope_response(
        ApiResponse.fail(error),
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Wire up the envelope writers on the FastAPI application."""
    app.add_exception_handler(AppError, handle_app_error)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, handle_validation_error)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)  # type: ignore[arg-type]
