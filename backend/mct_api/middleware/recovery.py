"""
MCT API — Fault Recovery Middleware
=====================================

What:  Converts any unhandled exception raised downstream into a generic
       INTERNAL_ERROR envelope with HTTP 500.
Why:   One failing request must never take the worker down or leak a
       stack trace. The fault, stack and request context are logged
       server-side; the client only sees "An unexpected error occurred".
How:   A try/except around call_next. Sits inside RequestLoggingMiddleware
       and outside CORSMiddleware, so faults anywhere in CORS handling or
       the route handler are caught here and still logged with status 500.

CORS headers already decided for the request are copied onto the 500, so
browsers can read the error envelope.

AppError and HTTPException never reach this layer: FastAPI's exception
middleware (innermost) turns them into envelopes first. Only true faults do.
"""

import logging
import traceback

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from mct_api.exceptions import AppError, ErrorCode
from mct_api.middleware.logging import client_address
from mct_api.schemas.envelope import ApiResponse, envelope_response

logger = logging.getLogger(__name__)

GENERIC_FAULT_MESSAGE = "An unexpected error occurred"


class RecoveryMiddleware(BaseHTTPMiddleware):
    """Protected execution scope around all downstream middleware and the handler."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                "Panic recovered",
                extra={
                    "panic": repr(exc),
                    "stack": traceback.format_exc(),
                    "method": request.method,
                    "path": request.url.path,
                    "client_ip": client_address(request),
                    "user_agent": request.headers.get("user-agent", ""),
                },
            )
            envelope = ApiResponse.fail(
                AppError(ErrorCode.INTERNAL_ERROR, GENERIC_FAULT_MESSAGE)
            )
            response = envelope_response(envelope, status_code=500)
            response.headers.update(getattr(request.state, "cors_headers", {}))
            return response
