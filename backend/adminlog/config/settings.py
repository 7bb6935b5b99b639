"""
Runtime settings for the audit service.

All configuration can be overridden via environment variables. Values are
read once per process through get_settings(); tests build AppSettings
directly and pass it to create_app().
"""

import os
import logging
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


def _csv_env(name: str, default: str) -> list[str]:
    """Read a comma-separated environment variable into a list."""
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def _normalize_database_url(database_url: Optional[str]) -> Optional[str]:
    """Handle Render's postgres:// URL format (SQLAlchemy requires postgresql://)."""
    if database_url and database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


class AppSettings(BaseModel):
    """Service configuration."""

    env: str = "development"
    database_url: Optional[str] = None

    jwt_secret: Optional[str] = None
    jwt_algorithm: str = "HS256"
    jwt_lifetime_minutes: int = 1440

    api_prefix: str = "/api"
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:5173"])

    # Audit pipeline
    elevated_roles: list[str] = Field(default_factory=lambda: ["admin"])
    sensitive_fields: list[str] = Field(default_factory=lambda: ["password", "token"])
    audit_mask: str = "***"
    audit_max_body_bytes: int = 64 * 1024
    retention_months: int = 12

    # Exports
    export_max_rows: int = 50_000
    export_spool_max_bytes: int = 5 * 1024 * 1024

    # Request sanitization
    sanitize_replace_with: str = "_"

    @property
    def is_development(self) -> bool:
        return self.env.lower() == "development"

    @classmethod
    def from_env(cls) -> "AppSettings":
        """Build settings from the process environment."""
        return cls(
            env=os.getenv("ENV", "development"),
            database_url=_normalize_database_url(os.getenv("DATABASE_URL")),
            jwt_secret=os.getenv("JWT_SECRET"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            jwt_lifetime_minutes=int(os.getenv("JWT_LIFETIME_MINUTES", "1440")),
            api_prefix=os.getenv("API_PREFIX", "/api"),
            cors_origins=_csv_env("CORS_ORIGINS", "http://localhost:5173"),
            elevated_roles=_csv_env("AUDIT_ELEVATED_ROLES", "admin"),
            sensitive_fields=_csv_env("AUDIT_SENSITIVE_FIELDS", "password,token"),
            audit_mask=os.getenv("AUDIT_MASK", "***"),
            audit_max_body_bytes=int(os.getenv("AUDIT_MAX_BODY_BYTES", str(64 * 1024))),
            retention_months=int(os.getenv("AUDIT_RETENTION_MONTHS", "12")),
            export_max_rows=int(os.getenv("EXPORT_MAX_ROWS", "50000")),
            export_spool_max_bytes=int(os.getenv("EXPORT_SPOOL_MAX_BYTES", str(5 * 1024 * 1024))),
            sanitize_replace_with=os.getenv("SANITIZE_REPLACE_WITH", "_"),
        )


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """Get the process-wide settings singleton."""
    settings = AppSettings.from_env()
    logger.info(
        "Settings loaded",
        extra={
            "env": settings.env,
            "database_configured": settings.database_url is not None,
            "auth_configured": settings.jwt_secret is not None,
        },
    )
    return settings
