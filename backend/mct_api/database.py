"""
MCT API — Resource Pool Manager
=================================

What:  Builds, probes, and tears down the two process-wide connection pools:
       PostgreSQL (async SQLAlchemy + asyncpg) and Redis (redis.asyncio).
Why:   Connection exhaustion and stale sockets are the dominant failure
       mode of long-running services. Both pools are bounded in size and
       connection age, established once before the listener accepts traffic,
       and shared by every request handler.
How:   open_resource_pools() is an async context manager used by the
       application lifespan. Each pool is registered on an AsyncExitStack
       the moment it exists, so teardown runs on every exit path, including
       a Redis probe failure after PostgreSQL is already up.
Who:   Entered by main.lifespan; borrowed by handlers via the dependencies
       at the bottom of this module (never through a module-level global).

Connection Pooling Strategy (PostgreSQL):
    pool_size=5        idle floor kept open between bursts
    max_overflow=20    extra connections for spikes (total max open = 25)
    pool_recycle=300   max connection lifetime: 5 minutes
    max idle time      60 seconds, enforced by the checkin/checkout events
    pool_timeout       acquire timeout (DB_POOL_TIMEOUT, default 30s)

Connection Pooling Strategy (Redis):
    max_connections=10         pool size
    timeout=4                  wait for a free connection (blocking pool)
    socket_connect_timeout=5   dial timeout
    socket_timeout=3           read/write timeout
    health_check_interval=300  connections idle 5 minutes are re-validated
    3 connections warmed at startup as the idle floor
"""

import asyncio
import logging
import time
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncGenerator, Dict, Tuple

import redis.asyncio as aioredis
from fastapi import Request
from sqlalchemy import event, exc, text
from sqlalchemy.engine import URL
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from mct_api.config import Settings
from mct_api.exceptions import AppError, ErrorCode, PoolInitError

logger = logging.getLogger(__name__)

# ── PostgreSQL pool parameters ────────────────────────────────────────────
DB_MAX_OPEN_CONNS = 25
DB_MAX_IDLE_CONNS = 5
DB_CONN_MAX_LIFETIME = 300  # seconds
DB_CONN_MAX_IDLE_TIME = 60  # seconds
DB_CONNECT_TIMEOUT = 5  # seconds
DB_PING_TIMEOUT = 5.0  # seconds

# ── Redis pool parameters ─────────────────────────────────────────────────
REDIS_POOL_SIZE = 10
REDIS_MIN_IDLE_CONNS = 3
REDIS_DIAL_TIMEOUT = 5.0
REDIS_READ_WRITE_TIMEOUT = 3.0
REDIS_POOL_TIMEOUT = 4.0
# Approximates a 5 minute idle timeout: redis-py re-validates (PING) a
# connection idle this long before reuse instead of closing it.
REDIS_IDLE_TIMEOUT = 300  # seconds
REDIS_PING_TIMEOUT = 5.0

_CHECKED_IN_AT = "mct_checked_in_at"


# ══════════════════════════════════════════════════════════════════════════
# PostgreSQL
# ══════════════════════════════════════════════════════════════════════════

def build_database_url(settings: Settings) -> URL:
    """Assemble the asyncpg URL. URL.create escapes credentials for us."""
    return URL.create(
        "postgresql+asyncpg",
        username=settings.db_user,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
    )


def _install_idle_timeout(engine: AsyncEngine, max_idle: float) -> None:
    """
    Evict pooled connections that sat idle longer than ``max_idle`` seconds.

    QueuePool has no idle timeout of its own. The checkin event stamps the
    connection record; on checkout a stale stamp raises DisconnectionError,
    which tells the pool to discard that connection and hand out a fresh one.
    """

    @event.listens_for(engine.sync_engine, "checkin")
    def _stamp_checkin(dbapi_connection, connection_record):
        connection_record.info[_CHECKED_IN_AT] = time.monotonic()

    @event.listens_for(engine.sync_engine, "checkout")
    def _evict_idle(dbapi_connection, connection_record, connection_proxy):
        checked_in_at = connection_record.info.pop(_CHECKED_IN_AT, None)
        if checked_in_at is not None and time.monotonic() - checked_in_at > max_idle:
            logger.debug("Recycling PostgreSQL connection idle for more than %ss", max_idle)
            raise exc.DisconnectionError("connection exceeded max idle time")


def create_database_engine(settings: Settings) -> AsyncEngine:
    """
    Create the bounded PostgreSQL pool. No connection is opened yet;
    ping_database() performs the first checkout.
    """
    engine = create_async_engine(
        build_database_url(settings),
        pool_size=DB_MAX_IDLE_CONNS,
        max_overflow=DB_MAX_OPEN_CONNS - DB_MAX_IDLE_CONNS,
        pool_recycle=DB_CONN_MAX_LIFETIME,
        pool_timeout=settings.db_pool_timeout,
        connect_args={
            "ssl": settings.db_sslmode,
            "timeout": DB_CONNECT_TIMEOUT,
        },
        echo=False,
    )
    _install_idle_timeout(engine, DB_CONN_MAX_IDLE_TIME)
    return engine


async def _select_one(engine: AsyncEngine) -> None:
    async with engine.connect() as conn:
        await conn.execute(text("SELECT 1"))


async def ping_database(engine: AsyncEngine, timeout: float = DB_PING_TIMEOUT) -> None:
    """
    Liveness probe with a hard deadline. Fails fast: no retry, no fallback.

    Raises:
        PoolInitError: the probe timed out or the driver reported an error.
    """
    try:
        await asyncio.wait_for(_select_one(engine), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise PoolInitError("postgres", f"ping timed out after {timeout}s") from e
    except Exception as e:
        raise PoolInitError("postgres", f"failed to ping database: {e}") from e


# ══════════════════════════════════════════════════════════════════════════
# Redis
# ══════════════════════════════════════════════════════════════════════════

def parse_redis_addr(addr: str) -> Tuple[str, int]:
    """Split ``host:port``; a bare host gets the default port 6379."""
    host, sep, port = addr.strip().rpartition(":")
    if not sep:
        return port or "localhost", 6379
    try:
        return host or "localhost", int(port)
    except ValueError:
        raise ValueError(f"Invalid REDIS_ADDR '{addr}': port must be an integer") from None


def create_cache_client(settings: Settings) -> aioredis.Redis:
    """
    Create the bounded Redis pool.

    BlockingConnectionPool makes a caller wait up to REDIS_POOL_TIMEOUT for
    a free connection instead of failing at once when all 10 are checked out.
    """
    host, port = parse_redis_addr(settings.redis_addr)
    pool = aioredis.BlockingConnectionPool(
        host=host,
        port=port,
        db=settings.redis_db,
        password=settings.redis_password or None,
        max_connections=REDIS_POOL_SIZE,
        timeout=REDIS_POOL_TIMEOUT,
        socket_connect_timeout=REDIS_DIAL_TIMEOUT,
        socket_timeout=REDIS_READ_WRITE_TIMEOUT,
        health_check_interval=REDIS_IDLE_TIMEOUT,
        socket_keepalive=True,
    )
    return aioredis.Redis(connection_pool=pool)


async def ping_cache(client: aioredis.Redis, timeout: float = REDIS_PING_TIMEOUT) -> None:
    """
    Liveness probe for Redis, bounded by ``timeout`` seconds.

    Raises:
        PoolInitError: timeout or Redis error. No retry.
    """
    try:
        await asyncio.wait_for(client.ping(), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise PoolInitError("redis", f"ping timed out after {timeout}s") from e
    except Exception as e:
        raise PoolInitError("redis", f"failed to ping Redis: {e}") from e


async def warm_cache_pool(
    client: aioredis.Redis,
    min_idle: int = REDIS_MIN_IDLE_CONNS,
    timeout: float = REDIS_PING_TIMEOUT,
) -> None:
    """
    Open ``min_idle`` connections up front so the first requests skip the dial.

    Raises:
        PoolInitError: a warm-up ping failed or the deadline passed.
    """
    try:
        await asyncio.wait_for(
            asyncio.gather(*(client.ping() for _ in range(min_idle))), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        raise PoolInitError("redis", f"pool warm-up timed out after {timeout}s") from e
    except Exception as e:
        raise PoolInitError("redis", f"failed to warm Redis pool: {e}") from e


# ══════════════════════════════════════════════════════════════════════════
# Pool lifecycle
# ══════════════════════════════════════════════════════════════════════════

@dataclass
class ResourcePools:
    """
    The process-wide pools, owned by the bootstrap and borrowed by handlers.

    Both clients are safe for concurrent checkout/return, so handlers share
    this object without any locking.
    """

    engine: AsyncEngine
    session_factory: async_sessionmaker
    cache: aioredis.Redis

    async def health_check(self) -> Dict[str, str]:
        """Probe both stores. Never raises; reports each store's state."""
        status = {"database": "connected", "cache": "connected"}
        try:
            await ping_database(self.engine)
        except PoolInitError as e:
            status["database"] = "disconnected"
            logger.warning("Health check: database unreachable: %s", e.message)
        try:
            await ping_cache(self.cache)
        except PoolInitError as e:
            status["cache"] = "disconnected"
            logger.warning("Health check: cache unreachable: %s", e.message)
        return status

    async def close(self) -> None:
        await dispose_database(self.engine)
        await close_cache(self.cache)


async def dispose_database(engine: AsyncEngine) -> None:
    await engine.dispose()
    logger.info("PostgreSQL pool closed")


async def close_cache(client: aioredis.Redis) -> None:
    await client.aclose()
    await client.connection_pool.disconnect()
    logger.info("Redis pool closed")


@asynccontextmanager
async def open_resource_pools(settings: Settings) -> AsyncGenerator[ResourcePools, None]:
    """
    Establish both pools, yield them, and guarantee teardown.

    Startup order: PostgreSQL (create → ping), then Redis (create → ping →
    warm). Any PoolInitError propagates to the caller; pools that were
    already created are released by the exit stack before it does.
    """
    async with AsyncExitStack() as stack:
        engine = create_database_engine(settings)
        stack.push_async_callback(dispose_database, engine)
        await ping_database(engine)
        logger.info(
            "Successfully connected to PostgreSQL",
            extra={"host": settings.db_host, "database": settings.db_name},
        )

        cache = create_cache_client(settings)
        stack.push_async_callback(close_cache, cache)
        await ping_cache(cache)
        await warm_cache_pool(cache)
        logger.info("Successfully connected to Redis", extra={"addr": settings.redis_addr})

        yield ResourcePools(
            engine=engine,
            session_factory=async_sessionmaker(
                engine, class_=AsyncSession, expire_on_commit=False
            ),
            cache=cache,
        )


# ══════════════════════════════════════════════════════════════════════════
# FastAPI dependencies
# ══════════════════════════════════════════════════════════════════════════

def get_pools(request: Request) -> ResourcePools:
    """Borrow the pools the lifespan stored on ``app.state``."""
    pools = getattr(request.app.state, "pools", None)
    if pools is None:
        raise AppError(ErrorCode.INTERNAL_ERROR, "Resource pools are not initialized")
    return pools


def get_cache(request: Request) -> aioredis.Redis:
    return get_pools(request).cache


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Creates a new session from the shared factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/things")
        async def list_things(db: AsyncSession = Depends(get_db_session)):
            result = await db.execute(select(Thing))
            return ApiResponse.ok(result.scalars().all())
    """
    async with get_pools(request).session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
