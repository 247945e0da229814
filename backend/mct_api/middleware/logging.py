"""
MCT API — Request Logging Middleware
======================================

What:  Structured logging for every HTTP request and response.
Why:   Outermost interceptor, so it observes the full request lifecycle:
       preflight short-circuits, handler errors, and faults converted to
       500s by RecoveryMiddleware all reach this log line.
How:   Logs request details on arrival (DEBUG), response details on
       completion, with duration for performance tracking.

Logged fields:
    method, path, client_ip, status, duration_ms

This middleware is purely observational: it never short-circuits and never
modifies the response.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("mct_api.access")


def client_address(request: Request) -> str:
    # request.client is None under some test transports
    return getattr(request.client, "host", "unknown") if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs structured information about each HTTP request and response.

    Level follows the outcome:
        5xx     → ERROR (system problem, needs investigation)
        4xx     → WARNING (client error)
        2xx/3xx → INFO
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        start_time = time.perf_counter()
        method = request.method
        path = request.url.path
        client_ip = client_address(request)

        logger.debug(
            "%s %s started from %s",
            method,
            path,
            client_ip,
            extra={"method": method, "path": path, "client_ip": client_ip},
        )

        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            if status >= 500:
                log_level = logging.ERROR
            elif status >= 400:
                log_level = logging.WARNING
            else:
                log_level = logging.INFO

            logger.log(
                log_level,
                "%s %s %d %.1fms from %s",
                method,
                path,
                status,
                duration_ms,
                client_ip,
                extra={
                    "method": method,
                    "path": path,
                    "status": status,
                    "duration_ms": round(duration_ms, 2),
                    "client_ip": client_ip,
                },
            )
