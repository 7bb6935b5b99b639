"""
Audit record store.

Persistence and read models for the admin activity trail.

CRITICAL:
- append() never raises. Failures are rolled back, written to the
  `audit.fallback` logger and returned as a failed AuditWriteResult, so a
  broken audit write can never fail the business request it describes.
- The only delete path is purge_older_than().
- Offset pagination is not stable under concurrent inserts. Acceptable for
  an admin console.

Usage:
    store = AuditRecordStore(db)
    result = store.append(event)
    if not result.ok:
        ...  # already logged

    page = store.query(AuditLogFilter(actor_id="a-1"), page=2, page_size=50)
"""

import json
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterator, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from adminlog.models.audit_record import (
    AuditAction,
    AuditEvent,
    AuditRecord,
    AuthAttemptDetails,
    ERROR_SEVERITIES,
    NoteDetails,
    Severity,
    WARNING_SEVERITIES,
    details_to_dict,
)
from adminlog.models.base import as_utc, utcnow
from adminlog.services.audit_filters import (
    AuditLogFilter,
    DEFAULT_PAGE_SIZE,
    DEFAULT_SORT_FIELD,
    DEFAULT_SORT_ORDER,
    InvalidFilterError,
    SORTABLE_FIELDS,
)

logger = logging.getLogger(__name__)

# Separate logger for audit writes that could not be persisted
fallback_logger = logging.getLogger("audit.fallback")

AGGREGATE_DIMENSIONS = {
    "action": AuditRecord.action,
    "entity": AuditRecord.entity,
    "severity": AuditRecord.severity,
    "actor_id": AuditRecord.actor_id,
}


class AuditLogError(Exception):
    """Base exception for audit store errors."""
    pass


class AuditRecordNotFoundError(AuditLogError):
    """Requested audit record does not exist."""

    def __init__(self, record_id: str):
        super().__init__(f"Audit record not found: {record_id}")
        self.record_id = record_id


@dataclass(frozen=True)
class AuditWriteError:
    """Why an audit write failed."""
    event_id: str
    reason: str
    error_type: str


@dataclass(frozen=True)
class AuditWriteResult:
    """
    Outcome of an audit write.

    Exactly one of record_id / error is set.
    """
    record_id: Optional[str] = None
    error: Optional[AuditWriteError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class AuditPage:
    """One page of audit records."""
    records: list[AuditRecord]
    total: int
    page: int
    page_size: int

    @property
    def total_pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return math.ceil(self.total / self.page_size)

    def meta(self) -> dict[str, int]:
        return {
            "total": self.total,
            "page": self.page,
            "limit": self.page_size,
            "totalPages": self.total_pages,
        }


@dataclass
class HourlyBucket:
    hour: str
    count: int = 0
    errors: int = 0
    warnings: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "hour": self.hour,
            "count": self.count,
            "errors": self.errors,
            "warnings": self.warnings,
        }


@dataclass
class AuditStats:
    total_logs: int
    by_severity: dict[str, int] = field(default_factory=dict)
    by_action: dict[str, int] = field(default_factory=dict)
    by_entity: dict[str, int] = field(default_factory=dict)
    hourly: list[HourlyBucket] = field(default_factory=list)

    @property
    def error_count(self) -> int:
        return sum(self.by_severity.get(s, 0) for s in ERROR_SEVERITIES)

    @property
    def warning_count(self) -> int:
        return sum(self.by_severity.get(s, 0) for s in WARNING_SEVERITIES)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalLogs": self.total_logs,
            "bySeverity": self.by_severity,
            "byAction": self.by_action,
            "byEntity": self.by_entity,
            "hourly": [bucket.to_dict() for bucket in self.hourly],
            "errorCount": self.error_count,
            "warningCount": self.warning_count,
        }


def _write_fallback_log(event: AuditEvent, event_id: str, error: Exception) -> None:
    """Write the event to the fallback logger when the database write fails."""
    fallback_entry = {
        "event_id": event_id,
        "actor_id": event.actor_id,
        "actor_role": event.actor_role,
        "action": event.action.value if isinstance(event.action, AuditAction) else event.action,
        "entity": event.entity,
        "entity_id": event.entity_id,
        "severity": event.severity.value if isinstance(event.severity, Severity) else event.severity,
        "details": details_to_dict(event.details),
        "ip_address": event.ip_address,
        "timestamp": as_utc(event.timestamp).isoformat() if event.timestamp else None,
        "fallback_reason": str(error),
    }
    fallback_logger.error(
        "Audit log fallback",
        extra={"audit_entry": json.dumps(fallback_entry, default=str)},
    )


class AuditRecordStore:
    """SQLAlchemy-backed store for AuditRecord rows."""

    def __init__(self, db: Session):
        self.db = db

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, event: AuditEvent) -> AuditWriteResult:
        """Insert one record. Never raises."""
        event_id = str(uuid.uuid4())
        try:
            values = event.to_dict()
            record = AuditRecord(id=event_id, **values)
            self.db.add(record)
            self.db.commit()
        except SQLAlchemyError as e:
            try:
                self.db.rollback()
            except SQLAlchemyError:
                logger.exception("Rollback failed after audit write error")
            _write_fallback_log(event, event_id, e)
            return AuditWriteResult(
                error=AuditWriteError(
                    event_id=event_id,
                    reason=str(e),
                    error_type=type(e).__name__,
                )
            )

        logger.info(
            "Audit record written",
            extra={
                "audit_id": event_id,
                "actor_id": event.actor_id,
                "action": values["action"],
                "entity": event.entity,
            },
        )
        return AuditWriteResult(record_id=event_id)

    def purge_older_than(self, cutoff: datetime, severity: Optional[Severity] = None) -> int:
        """
        Delete records with timestamp strictly before cutoff.

        Idempotent: a second call with the same cutoff deletes nothing.
        """
        query = self.db.query(AuditRecord).filter(AuditRecord.timestamp < as_utc(cutoff))
        if severity is not None:
            query = query.filter(AuditRecord.severity == severity.value)
        deleted = query.delete(synchronize_session=False)
        self.db.commit()

        logger.info(
            "Audit records purged",
            extra={
                "cutoff": as_utc(cutoff).isoformat(),
                "severity": severity.value if severity else None,
                "deleted": deleted,
            },
        )
        return deleted

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: str) -> AuditRecord:
        record = self.db.query(AuditRecord).filter(AuditRecord.id == record_id).first()
        if record is None:
            raise AuditRecordNotFoundError(record_id)
        return record

    def count(self, audit_filter: Optional[AuditLogFilter] = None) -> int:
        query = self.db.query(func.count(AuditRecord.id))
        if audit_filter is not None:
            query = audit_filter.apply(query)
        return query.scalar() or 0

    def query(
        self,
        audit_filter: Optional[AuditLogFilter] = None,
        page: int = 1,
        page_size: int = DEFAULT_PAGE_SIZE,
        sort_field: str = DEFAULT_SORT_FIELD,
        sort_order: str = DEFAULT_SORT_ORDER,
    ) -> AuditPage:
        """Return one page of records matching the filter."""
        audit_filter = audit_filter or AuditLogFilter()
        column = SORTABLE_FIELDS.get(sort_field)
        if column is None:
            raise InvalidFilterError(f"Unsupported sort field: {sort_field}")

        page = max(page, 1)
        query = audit_filter.apply(self.db.query(AuditRecord))
        ordering = column.asc() if sort_order == "asc" else column.desc()
        # id as a tiebreaker keeps page boundaries deterministic for equal keys
        query = query.order_by(ordering, AuditRecord.id.desc())

        records = query.offset((page - 1) * page_size).limit(page_size).all()
        return AuditPage(
            records=records,
            total=self.count(audit_filter),
            page=page,
            page_size=page_size,
        )

    def aggregate_by_dimension(
        self, dimension: str, audit_filter: Optional[AuditLogFilter] = None,
    ) -> dict[str, int]:
        """Grouped counts over one of action, entity, severity, actor_id."""
        column = AGGREGATE_DIMENSIONS.get(dimension)
        if column is None:
            raise InvalidFilterError(f"Unsupported aggregation dimension: {dimension}")

        query = self.db.query(column, func.count(AuditRecord.id))
        if audit_filter is not None:
            query = audit_filter.apply(query)
        rows = query.group_by(column).all()
        # NULL groups are reported under "unknown"
        return {(key if key is not None else "unknown"): count for key, count in rows}

    def hourly_histogram(self, audit_filter: Optional[AuditLogFilter] = None) -> list[HourlyBucket]:
        """Per-hour counts with error and warning tallies, oldest first."""
        query = self.db.query(AuditRecord.timestamp, AuditRecord.severity)
        if audit_filter is not None:
            query = audit_filter.apply(query)

        buckets: dict[str, HourlyBucket] = {}
        for timestamp, severity in query.yield_per(1000):
            ts = as_utc(timestamp)
            key = ts.strftime("%Y-%m-%d %H:00")
            bucket = buckets.setdefault(key, HourlyBucket(hour=key))
            bucket.count += 1
            if severity in ERROR_SEVERITIES:
                bucket.errors += 1
            elif severity in WARNING_SEVERITIES:
                bucket.warnings += 1
        return [buckets[key] for key in sorted(buckets)]

    def stats(self, audit_filter: Optional[AuditLogFilter] = None) -> AuditStats:
        return AuditStats(
            total_logs=self.count(audit_filter),
            by_severity=self.aggregate_by_dimension("severity", audit_filter),
            by_action=self.aggregate_by_dimension("action", audit_filter),
            by_entity=self.aggregate_by_dimension("entity", audit_filter),
            hourly=self.hourly_histogram(audit_filter),
        )

    def entity_trail(self, entity: str, entity_id: str) -> list[AuditRecord]:
        """Every record for one resource, newest first."""
        return (
            self.db.query(AuditRecord)
            .filter(AuditRecord.entity == entity, AuditRecord.entity_id == entity_id)
            .order_by(AuditRecord.timestamp.desc(), AuditRecord.id.desc())
            .all()
        )

    def recent_error_count(self, since: datetime) -> int:
        return (
            self.db.query(func.count(AuditRecord.id))
            .filter(
                AuditRecord.timestamp >= as_utc(since),
                AuditRecord.severity.in_(ERROR_SEVERITIES),
            )
            .scalar()
        ) or 0

    def iter_export_rows(
        self, audit_filter: Optional[AuditLogFilter] = None, limit: Optional[int] = None,
    ) -> Iterator[AuditRecord]:
        """Records in default order (newest first) for export."""
        query = self.db.query(AuditRecord)
        if audit_filter is not None:
            query = audit_filter.apply(query)
        query = query.order_by(AuditRecord.timestamp.desc(), AuditRecord.id.desc())
        if limit is not None:
            query = query.limit(limit)
        return iter(query.yield_per(500))


class AuditWriter:
    """
    Writes audit events outside the request's session.

    Used from post-response background tasks: opens its own session,
    appends, and logs the result. Never raises.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def write(self, event: AuditEvent) -> AuditWriteResult:
        try:
            db = self._session_factory()
        except (SQLAlchemyError, ValueError) as e:
            event_id = str(uuid.uuid4())
            _write_fallback_log(event, event_id, e)
            return AuditWriteResult(
                error=AuditWriteError(event_id=event_id, reason=str(e), error_type=type(e).__name__)
            )

        try:
            result = AuditRecordStore(db).append(event)
        finally:
            db.close()

        if not result.ok:
            logger.warning(
                "Audit write failed; entry sent to fallback log",
                extra={"event_id": result.error.event_id, "error_type": result.error.error_type},
            )
        return result


class AdminActionLogger:
    """
    Explicit audit entries for events the middleware does not see.

    Authentication endpoints are skipped by the middleware so that login
    attempts can be recorded here with their outcome and reason.
    """

    def __init__(self, db: Session):
        self.store = AuditRecordStore(db)

    def log_login(
        self,
        *,
        success: bool,
        actor_id: Optional[str] = None,
        actor_name: Optional[str] = None,
        actor_email: Optional[str] = None,
        actor_role: Optional[str] = None,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditWriteResult:
        event = AuditEvent(
            actor_id=actor_id,
            actor_name=actor_name,
            actor_email=actor_email,
            actor_role=actor_role,
            action=AuditAction.LOGIN.value if success else AuditAction.LOGIN_FAILED.value,
            entity="Auth",
            severity=Severity.INFO if success else Severity.WARNING,
            details=AuthAttemptDetails(
                outcome="success" if success else "failure",
                reason=reason,
                email=actor_email,
            ),
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utcnow(),
        )
        return self.store.append(event)

    def log_action(
        self,
        *,
        action: str,
        entity: Optional[str] = None,
        entity_id: Optional[str] = None,
        actor_id: Optional[str] = None,
        actor_name: Optional[str] = None,
        actor_email: Optional[str] = None,
        actor_role: Optional[str] = None,
        note: Optional[str] = None,
        severity: Severity = Severity.INFO,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> AuditWriteResult:
        """Record a domain action such as APPROVE or REJECT."""
        event = AuditEvent(
            actor_id=actor_id,
            actor_name=actor_name,
            actor_email=actor_email,
            actor_role=actor_role,
            action=action,
            entity=entity,
            entity_id=entity_id,
            severity=severity,
            details=NoteDetails(text=note) if note else None,
            ip_address=ip_address,
            user_agent=user_agent,
            timestamp=utcnow(),
        )
        return self.store.append(event)
