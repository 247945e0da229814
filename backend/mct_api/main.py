"""
MCT API — FastAPI Application Factory
=======================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, error handlers, route mounting
       and the pool lifecycle in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn (uvicorn mct_api.main:app) or `python -m mct_api`.

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────┐ ┌────────────┐ ┌──────┐ ┌──────────┐  │
    │  │ Logging  │→│  Recovery  │→│ CORS │→│ Dispatch │  │
    │  └──────────┘ └────────────┘ └──────┘ └──────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  GET /health   GET /health/ready   GET /api/v1/ping │
    │                                                     │
    │  Pools (app.state.pools): PostgreSQL + Redis        │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure structured JSON logging
    2. Open PostgreSQL pool and ping it (5s deadline)
    3. Open Redis pool, ping it (5s deadline) and warm the idle floor
    4. Publish pools on app.state; uvicorn accepts traffic only after this

    Any pool failure is startup-fatal: logged at CRITICAL and re-raised,
    uvicorn aborts startup and the process exits non-zero.

    Shutdown:
    1. Stop accepting new requests
    2. Close Redis, then dispose the PostgreSQL engine
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI

from mct_api import __version__
from mct_api.config import Settings, settings as default_settings
from mct_api.database import open_resource_pools
from mct_api.exceptions import PoolInitError
from mct_api.logging_config import setup_logging
from mct_api.middleware import register_middleware
from mct_api.middleware.error_handler import register_error_handlers
from mct_api.routes import api, health

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manage application lifecycle: pools are created before the first request
    and released after the last one.
    """
    settings: Settings = app.state.settings
    setup_logging(settings)
    logger.info(
        "%s starting up", settings.service_name, extra={"env": settings.env}
    )

    try:
        async with open_resource_pools(settings) as pools:
            app.state.pools = pools
            logger.info("Starting server", extra={"port": settings.port})
            yield
            logger.info("%s shutting down...", settings.service_name)
    except PoolInitError as e:
        logger.critical(
            "Failed to connect to %s: %s", e.store, e.message, extra={"store": e.store}
        )
        raise
    finally:
        app.state.pools = None

    logger.info("Shutdown complete.")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Explicit configuration; defaults to the environment-loaded
                  singleton. Tests pass their own.
    """
    settings = settings or default_settings

    app = FastAPI(
        title="MCT API",
        description="Request-handling core: middleware chain, response envelope, pooled stores.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pools = None

    register_middleware(app, settings)
    register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(api.router)

    return app


# uvicorn expects `mct_api.main:app` to be importable
app = create_app()
