"""
MCT API — Middleware Package
==============================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (order is fixed):
    Request → [Logging] → [Recovery] → [CORS] → Route Handler

    Why this order:
    1. Logging FIRST: observes every outcome, including recovered faults
       and preflight short-circuits
    2. Recovery: protects everything downstream, CORS included
    3. CORS: answers OPTIONS with 204 before any route code runs

    Starlette executes middleware in REVERSE order of addition, so
    register_middleware() adds them innermost-first.
"""

from fastapi import FastAPI

from mct_api.config import Settings
from mct_api.middleware.cors import CORSMiddleware
from mct_api.middleware.logging import RequestLoggingMiddleware
from mct_api.middleware.recovery import RecoveryMiddleware

# Outermost first, as seen by an inbound request
MIDDLEWARE_CHAIN = (RequestLoggingMiddleware, RecoveryMiddleware, CORSMiddleware)


def register_middleware(app: FastAPI, settings: Settings) -> None:
    """Install the fixed chain: logging → recovery → CORS → dispatch."""
    app.add_middleware(CORSMiddleware, allowed_origins=settings.cors_origins_list)
    app.add_middleware(RecoveryMiddleware)
    app.add_middleware(RequestLoggingMiddleware)


__all__ = [
    "CORSMiddleware",
    "MIDDLEWARE_CHAIN",
    "RecoveryMiddleware",
    "RequestLoggingMiddleware",
    "register_middleware",
]
