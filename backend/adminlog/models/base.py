"""
Column helpers shared by the audit and notification tables.

- JSONType: JSON column, JSONB on PostgreSQL
- TimestampMixin: created_at / updated_at
- generate_uuid: string primary keys
- utcnow / as_utc: every stored datetime is aware UTC
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, JSON
from sqlalchemy.dialects.postgresql import JSONB

# Use JSON with PostgreSQL variant for JSONB - allows SQLite in tests
JSONType = JSON().with_variant(JSONB(), "postgresql")


def generate_uuid() -> str:
    """Generate a UUID4 string for use as a primary key default."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    SQLite returns naive datetimes; everything is stored in UTC so a naive
    value is interpreted as UTC rather than local time.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        comment="Timestamp when record was created",
    )

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        comment="Timestamp when record was last updated",
    )
