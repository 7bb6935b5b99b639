"""
Admin audit record model.

Canonical, append-only trail of administrative actions:
- Actor identity denormalized at write time (name/email/role survive
  profile changes or deletion)
- Structured details as a tagged union (http | auth | note)
- Ordered severity levels for filtering and stats

CRITICAL:
- This table is append-only. No UPDATE path exists; the only DELETE is
  the age-based purge (AuditRecordStore.purge_older_than).
- Credentials are masked before the event reaches this module.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from sqlalchemy import Column, String, Text, DateTime, Index

from adminlog.db_base import Base
from adminlog.models.base import JSONType, generate_uuid, utcnow, as_utc

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class AuditAction(str, Enum):
    """Known audit actions. Unmapped HTTP methods are stored verbatim."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    EXPORT = "EXPORT"
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class Severity(str, Enum):
    """
    Syslog-style severity, ordered from least to most severe.

    Members compare by rank, so Severity.WARNING > Severity.INFO.
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    NOTICE = "NOTICE"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"
    ALERT = "ALERT"
    EMERGENCY = "EMERGENCY"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["Severity"]:
        """Case-insensitive lookup; None for unknown values."""
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


_SEVERITY_ORDER = list(Severity)

# Severity buckets used by stats and health checks
ERROR_SEVERITIES = (Severity.ERROR.value, Severity.CRITICAL.value, Severity.EMERGENCY.value)
WARNING_SEVERITIES = (Severity.WARNING.value, Severity.ALERT.value)


# ---------------------------------------------------------------------------
# Details (tagged union)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HttpRequestDetails:
    """Details captured by the activity middleware for an HTTP request."""

    method: str
    path: str
    query: dict[str, Any] = field(default_factory=dict)
    body: Optional[dict[str, Any]] = None
    status_code: Optional[int] = None
    status_message: Optional[str] = None
    kind: str = field(default="http", init=False)


@dataclass(frozen=True)
class AuthAttemptDetails:
    """Details for an explicit login success/failure record."""

    outcome: str
    reason: Optional[str] = None
    email: Optional[str] = None
    kind: str = field(default="auth", init=False)


@dataclass(frozen=True)
class NoteDetails:
    """Free-text details."""

    text: str
    kind: str = field(default="note", init=False)


AuditDetails = Union[HttpRequestDetails, AuthAttemptDetails, NoteDetails]


def details_to_dict(details: Optional[AuditDetails]) -> Optional[dict[str, Any]]:
    """Serialize details for the JSON column."""
    if details is None:
        return None
    if isinstance(details, HttpRequestDetails):
        return {
            "kind": details.kind,
            "method": details.method,
            "path": details.path,
            "query": dict(details.query),
            "body": dict(details.body) if details.body is not None else None,
            "status_code": details.status_code,
            "status_message": details.status_message,
        }
    if isinstance(details, AuthAttemptDetails):
        return {
            "kind": details.kind,
            "outcome": details.outcome,
            "reason": details.reason,
            "email": details.email,
        }
    return {"kind": details.kind, "text": details.text}


def details_from_dict(payload: Any) -> Optional[AuditDetails]:
    """
    Parse a stored payload back into the details union.

    Payloads without a recognised kind (legacy rows, manual inserts) are
    preserved as NoteDetails holding their JSON text.
    """
    if payload is None:
        return None
    if isinstance(payload, str):
        return NoteDetails(text=payload)
    if not isinstance(payload, dict):
        return NoteDetails(text=json.dumps(payload, default=str))

    kind = payload.get("kind")
    if kind == "http":
        return HttpRequestDetails(
            method=payload.get("method") or "",
            path=payload.get("path") or "",
            query=payload.get("query") or {},
            body=payload.get("body"),
            status_code=payload.get("status_code"),
            status_message=payload.get("status_message"),
        )
    if kind == "auth":
        return AuthAttemptDetails(
            outcome=payload.get("outcome") or "",
            reason=payload.get("reason"),
            email=payload.get("email"),
        )
    if kind == "note":
        return NoteDetails(text=str(payload.get("text", "")))
    return NoteDetails(text=json.dumps(payload, default=str, sort_keys=True))


# ---------------------------------------------------------------------------
# Model
# ---------------------------------------------------------------------------

class AuditRecord(Base):
    """
    One immutable entry describing a single administrative action.

    Actor and resource are plain strings, not foreign keys: the trail must
    stay readable after the referenced rows are gone.
    """
    __tablename__ = "admin_logs"

    id = Column(String(36), primary_key=True, default=generate_uuid)

    actor_id = Column(String(255), nullable=True, index=True)
    actor_name = Column(String(255), nullable=True)
    actor_email = Column(String(255), nullable=True)
    actor_role = Column(String(50), nullable=True)

    action = Column(String(50), nullable=True, index=True)
    entity = Column(String(100), nullable=True, index=True)
    entity_id = Column(String(255), nullable=True)
    severity = Column(String(20), nullable=False, default=Severity.INFO.value, index=True)

    details = Column(JSONType, nullable=True)

    ip_address = Column(String(45), nullable=True)  # IPv6 max length
    user_agent = Column(Text, nullable=True)

    timestamp = Column(DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("ix_admin_logs_entity_entity_id", "entity", "entity_id"),
        Index("ix_admin_logs_actor_timestamp", "actor_id", "timestamp"),
    )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation for API responses."""
        ts = as_utc(self.timestamp)
        return {
            "id": self.id,
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "actorEmail": self.actor_email,
            "actorRole": self.actor_role,
            "action": self.action,
            "entity": self.entity,
            "entityId": self.entity_id,
            "severity": self.severity,
            "details": self.details,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "timestamp": ts.isoformat() if ts else None,
        }

    def __repr__(self) -> str:
        return (
            f"AuditRecord(id={self.id}, action={self.action}, "
            f"entity={self.entity}, actor_id={self.actor_id})"
        )


# ---------------------------------------------------------------------------
# Pre-persistence event
# ---------------------------------------------------------------------------

@dataclass
class AuditEvent:
    """
    Audit event data structure built before writing to the database.

    Every field except timestamp is optional; a failed derivation leaves
    the field as None instead of aborting the write.
    """
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    severity: Severity = Severity.INFO
    details: Optional[AuditDetails] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict[str, Any]:
        """Convert to column values for DB insertion."""
        return {
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "actor_email": self.actor_email,
            "actor_role": self.actor_role,
            "action": self.action.value if isinstance(self.action, AuditAction) else self.action,
            "entity": self.entity,
            "entity_id": str(self.entity_id) if self.entity_id is not None else None,
            "severity": (
                self.severity.value if isinstance(self.severity, Severity)
                else (self.severity or Severity.INFO.value)
            ),
            "details": details_to_dict(self.details),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": as_utc(self.timestamp),
        }
