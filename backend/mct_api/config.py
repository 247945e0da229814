"""
MCT API — Application Configuration
=====================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading with validation on startup.
       A typo in DB_PORT or REDIS_DB fails at boot, not on the first query.
How:   Pydantic Settings reads from environment variables (or .env file),
       validates types/ranges, and provides a singleton `settings` object.
Who:   Imported by the bootstrap (main.py) and by the pool manager.
When:  Loaded once at module import time.

Environment surface (defaults shown):
    DB_HOST=localhost  DB_PORT=5432  DB_USER=postgres  DB_PASSWORD=password
    DB_NAME=mct_api    DB_SSLMODE=disable
    REDIS_ADDR=localhost:6379  REDIS_PASSWORD=""  REDIS_DB=0
    PORT=8080          ENV=production (``development`` enables DEBUG logging)
    CORS_ALLOWED_ORIGINS=<comma-separated allow-list>
"""

from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000,"
    "http://localhost:3001,"
    "http://127.0.0.1:3000,"
    "http://127.0.0.1:3001"
)

VALID_SSL_MODES = {"disable", "allow", "prefer", "require", "verify-ca", "verify-full"}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every value has a development default. Production deployments are
    expected to override credentials and the CORS allow-list.
    """

    # ── Service ───────────────────────────────────────────────────────────
    service_name: str = Field(default="mct-api")
    env: str = Field(default="production")
    port: int = Field(default=8080, ge=1, le=65535)

    # ── PostgreSQL ────────────────────────────────────────────────────────
    db_host: str = Field(default="localhost")
    db_port: int = Field(default=5432, ge=1, le=65535)
    db_user: str = Field(default="postgres")
    db_password: str = Field(default="password")
    db_name: str = Field(default="mct_api")
    db_sslmode: str = Field(default="disable")

    # What: Seconds a request waits for a free connection once all 25 are out
    db_pool_timeout: float = Field(default=30.0, gt=0)

    # ── Redis ─────────────────────────────────────────────────────────────
    redis_addr: str = Field(default="localhost:6379")
    redis_password: str = Field(default="")
    redis_db: int = Field(default=0, ge=0)

    # ── CORS ──────────────────────────────────────────────────────────────
    # What: Exact-match allow-list; the first entry doubles as the fallback
    # origin echoed back for unknown or missing Origin headers.
    cors_allowed_origins: str = Field(default=DEFAULT_CORS_ORIGINS)

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @field_validator("db_sslmode")
    @classmethod
    def validate_sslmode(cls, v: str) -> str:
        """Ensures the TLS mode is one libpq (and asyncpg) understands."""
        lower = v.strip().lower()
        if lower not in VALID_SSL_MODES:
            raise ValueError(
                f"Invalid db_sslmode '{v}'. Must be one of: {sorted(VALID_SSL_MODES)}"
            )
        return lower

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits the comma-separated allow-list, dropping blank entries."""
        return [o.strip() for o in self.cors_allowed_origins.split(",") if o.strip()]

    @property
    def is_development(self) -> bool:
        return self.env.strip().lower() == "development"

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.is_development else "INFO"


# Singleton instance used by the module-level app in main.py
settings = Settings()
