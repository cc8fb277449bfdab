# clypse/config.py
"""
Centralized application configuration using pydantic-settings.

All settings are read from environment variables or .env file.
Switching the storage backend is a matter of setting STORE_BACKEND - no code changes needed.
"""

import os
from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Priority: environment variables > .env file > defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
    )

    # --- Storage ---
    STORE_BACKEND: str = Field(
        default="memory",
        description="Storage backend: memory, fragment, redis, sql or http"
    )
    DB_URL: str = Field(
        default="postgresql://localhost:5432/clypse",
        description="PostgreSQL connection URL (sql backend)"
    )
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (redis backend and worker)"
    )
    REDIS_KEY_PREFIX: str = Field(
        default="clypse",
        description="Namespace prepended to every Redis key"
    )
    DOCUMENT_STORE_URL: str = Field(
        default="http://localhost:9000/documents",
        description="Base URL of the remote document store (http backend)"
    )
    DOCUMENT_STORE_TIMEOUT: float = Field(
        default=10.0,
        description="Per-request timeout for the remote document store, seconds"
    )

    # --- Server ---
    HOST: str = Field(
        default="127.0.0.1",
        description="Server bind host"
    )
    PORT: int = Field(
        default=8888,
        description="Server bind port"
    )

    # --- Debug / Logging ---
    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode"
    )
    LOG_LEVEL: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )

    # --- Sharing ---
    MAX_FILE_SIZE: int = Field(
        default=100_000_000,
        description="Largest accepted upload, bytes"
    )
    FILE_TTL_SECONDS: int = Field(
        default=24 * 3600,
        description="Lifetime of a shared file; 0 keeps files until removed"
    )
    CODE_MAX_ATTEMPTS: int = Field(
        default=20,
        description="Collision retries before giving up on code allocation"
    )

    # --- Rooms ---
    DEVICE_ID_PATH: str = Field(
        default=os.path.join(os.path.expanduser("~"), ".clypse", "device_id"),
        description="Where this device keeps its id between runs"
    )
    POLL_INTERVAL: float = Field(default=1.0, description="Room poll period, seconds")
    HEARTBEAT_INTERVAL: float = Field(default=5.0, description="Presence heartbeat period, seconds")
    MAX_DEVICE_INACTIVITY: float = Field(
        default=30.0,
        description="Devices silent for longer are not counted as participants"
    )
    MAX_ROOM_MESSAGES: int = Field(default=50, description="Messages kept per room")

    # --- Expiry sweep ---
    SWEEP_INTERVAL: float = Field(default=60.0, description="Expiry sweep period, seconds")
    SWEEP_IN_PROCESS: bool = Field(
        default=True,
        description="Run the expiry sweep inside the API process"
    )

    # --- Rate limiting ---
    API_RATE_LIMIT: int = Field(default=60, description="API requests per client per minute")
    GENERAL_RATE_LIMIT: int = Field(default=200, description="Other requests per client per minute")
    TRUSTED_PROXIES: list[str] = Field(
        default_factory=list,
        description="Peer addresses whose X-Forwarded-For / X-Real-IP headers are believed"
    )

    # --- Tracing ---
    OTEL_ENABLED: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    SERVICE_NAME: str = Field(default="clypse", description="service.name for traces")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of {allowed}")
        return v_upper

    @field_validator("STORE_BACKEND")
    @classmethod
    def validate_store_backend(cls, v: str) -> str:
        allowed = {"memory", "fragment", "redis", "sql", "http"}
        v_lower = v.strip().lower()
        if v_lower not in allowed:
            raise ValueError(f"STORE_BACKEND must be one of {allowed}")
        return v_lower


@lru_cache
def get_settings() -> Settings:
    """Return cached Settings instance (singleton pattern)."""
    return Settings()


# --- Singleton instance for easy import ---
settings = get_settings()


# --- Module-level exports ---

# Storage
STORE_BACKEND: str = settings.STORE_BACKEND

# Server
HOST: str = settings.HOST
PORT: int = settings.PORT
LOG_LEVEL: str = settings.LOG_LEVEL

# --- Paths (computed, not from env) ---
PROJECT_ROOT: str = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
LOGS_PATH: str = os.path.join(PROJECT_ROOT, "logs")
