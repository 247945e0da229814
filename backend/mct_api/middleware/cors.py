"""
MCT API — CORS Middleware
===========================

What:  Adds CORS headers to every response and answers every OPTIONS
       request with 204, without touching downstream handlers.
Why:   Browser frontends (localhost:3000/3001 in development) live on a
       different origin than the API. Preflights must never reach business
       logic.
How:   The request Origin is exact-matched against a configured allow-list
       and echoed back. Unknown or missing origins get the first
       allow-listed entry; an empty allow-list yields "*".

Why not Starlette's CORSMiddleware:
    It omits Access-Control-Allow-Origin for disallowed origins, answers
    only true preflights (OPTIONS + Access-Control-Request-Method), and
    returns 200 for them. Clients of this API expect the headers on every
    response and 204 for any OPTIONS request.
"""

from typing import Dict, Optional, Sequence

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

ALLOWED_HEADERS = (
    "Content-Type, Content-Length, Accept-Encoding, X-CSRF-Token, Authorization, "
    "accept, origin, Cache-Control, X-Requested-With"
)
ALLOWED_METHODS = "POST, OPTIONS, GET, PUT, DELETE, PATCH"


def resolve_allowed_origin(request_origin: Optional[str], allowed_origins: Sequence[str]) -> str:
    """Exact match → echo it; otherwise the first allow-listed origin; else ``*``."""
    if request_origin and request_origin in allowed_origins:
        return request_origin
    if allowed_origins:
        return allowed_origins[0]
    return "*"


class CORSMiddleware(BaseHTTPMiddleware):
    """
    Exact-match CORS with a configurable allow-list.

    Usage:
        app.add_middleware(CORSMiddleware, allowed_origins=settings.cors_origins_list)
    """

    def __init__(self, app: ASGIApp, allowed_origins: Sequence[str] = ()):
        super().__init__(app)
        self.allowed_origins = tuple(allowed_origins)

    def cors_headers(self, request: Request) -> Dict[str, str]:
        return {
            "Access-Control-Allow-Origin": resolve_allowed_origin(
                request.headers.get("origin"), self.allowed_origins
            ),
            "Access-Control-Allow-Credentials": "true",
            "Access-Control-Allow-Headers": ALLOWED_HEADERS,
            "Access-Control-Allow-Methods": ALLOWED_METHODS,
        }

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        headers = self.cors_headers(request)
        # RecoveryMiddleware copies these onto a 500 if the handler faults
        request.state.cors_headers = headers

        if request.method == "OPTIONS":
            return Response(status_code=204, headers=headers)

        response = await call_next(request)
        response.headers.update(headers)
        return response
