"""
Allow-listed filter for audit record queries.

Query-string input is partially trusted: only the recognised keys are read,
everything else is dropped at the boundary. Invalid dates are dropped rather
than failing the request.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Any, Mapping, Optional

from dateutil.parser import isoparse
from sqlalchemy import or_

from adminlog.models.audit_record import AuditRecord, Severity

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100
# Row offset cap, inside the signed 64-bit range databases accept
MAX_OFFSET = 2 ** 62

DEFAULT_SORT_FIELD = "timestamp"
DEFAULT_SORT_ORDER = "desc"

SORTABLE_FIELDS = {
    "timestamp": AuditRecord.timestamp,
    "action": AuditRecord.action,
    "entity": AuditRecord.entity,
    "severity": AuditRecord.severity,
    "actor_name": AuditRecord.actor_name,
}

# Query-string aliases accepted for sort fields
_SORT_ALIASES = {
    "createdAt": "timestamp",
    "actorName": "actor_name",
    "adminName": "actor_name",
}

_LIKE_ESCAPE = "\\"


class InvalidFilterError(ValueError):
    """Raised for a filter or aggregation request that cannot be served."""
    pass


def _is_date_only(raw: str) -> bool:
    return "T" not in raw and " " not in raw.strip() and len(raw.strip()) <= 10


def parse_timestamp(raw: Optional[str], end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse an ISO-8601 date or datetime, returning None when invalid.

    Naive values are treated as UTC. With end_of_day, a date-only value is
    widened to the last microsecond of that day.
    """
    if raw is None:
        return None
    raw = str(raw).strip()
    if not raw:
        return None
    try:
        parsed = isoparse(raw)
    except (ValueError, OverflowError):
        logger.debug("Dropping invalid date filter", extra={"value": raw})
        return None

    if end_of_day and _is_date_only(raw):
        parsed = datetime.combine(parsed.date(), time.max)

    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        # Repeated or structured values are not accepted for scalar filters
        return None
    value = value.strip()
    return value or None


def escape_like(value: str) -> str:
    return (
        value.replace(_LIKE_ESCAPE, _LIKE_ESCAPE * 2)
        .replace("%", _LIKE_ESCAPE + "%")
        .replace("_", _LIKE_ESCAPE + "_")
    )


@dataclass(frozen=True)
class AuditLogFilter:
    """
    Filter over the audit stream.

    start/end are inclusive bounds on the record timestamp.
    """

    start: Optional[datetime] = None
    end: Optional[datetime] = None
    actor_id: Optional[str] = None
    action: Optional[str] = None
    entity: Optional[str] = None
    severity: Optional[Severity] = None
    search: Optional[str] = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> "AuditLogFilter":
        """Build a filter from query-string parameters, ignoring unknown keys."""
        severity_raw = _clean_str(params.get("severity"))
        severity = Severity.parse(severity_raw)
        if severity_raw and severity is None:
            logger.debug("Dropping unknown severity filter", extra={"value": severity_raw})

        action = _clean_str(params.get("action"))

        return cls(
            start=parse_timestamp(_clean_str(params.get("startDate"))),
            end=parse_timestamp(_clean_str(params.get("endDate")), end_of_day=True),
            actor_id=_clean_str(params.get("adminId")) or _clean_str(params.get("actorId")),
            action=action.upper() if action else None,
            entity=_clean_str(params.get("entity")),
            severity=severity,
            search=_clean_str(params.get("search")),
        )

    @property
    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (
                self.start, self.end, self.actor_id, self.action,
                self.entity, self.severity, self.search,
            )
        )

    def apply(self, query):
        """Add this filter's predicates to a SQLAlchemy query over AuditRecord."""
        if self.start is not None:
            query = query.filter(AuditRecord.timestamp >= self.start)
        if self.end is not None:
            query = query.filter(AuditRecord.timestamp <= self.end)
        if self.actor_id:
            query = query.filter(AuditRecord.actor_id == self.actor_id)
        if self.action:
            query = query.filter(AuditRecord.action == self.action)
        if self.entity:
            query = query.filter(AuditRecord.entity == self.entity)
        if self.severity is not None:
            query = query.filter(AuditRecord.severity == self.severity.value)
        if self.search:
            pattern = f"%{escape_like(self.search)}%"
            query = query.filter(
                or_(
                    AuditRecord.actor_name.ilike(pattern, escape=_LIKE_ESCAPE),
                    AuditRecord.actor_email.ilike(pattern, escape=_LIKE_ESCAPE),
                )
            )
        return query

    def describe_range(self) -> str:
        """Human-readable date range for export metadata."""
        start = self.start.date().isoformat() if self.start else "All"
        end = self.end.date().isoformat() if self.end else "All"
        return f"{start} to {end}"


def _to_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_pagination(page: Any = None, limit: Any = None) -> tuple[int, int]:
    """Clamp page >= 1, 1 <= limit <= MAX_PAGE_SIZE and the offset to MAX_OFFSET."""
    page_size = _to_int(limit, DEFAULT_PAGE_SIZE)
    if page_size < 1:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)
    page_num = max(_to_int(page, DEFAULT_PAGE), 1)
    return min(page_num, MAX_OFFSET // page_size + 1), page_size


def parse_sort(sort_by: Optional[str] = None, sort_order: Optional[str] = None) -> tuple[str, str]:
    """Validate sort parameters, falling back to timestamp desc."""
    field = _SORT_ALIASES.get(sort_by or "", sort_by or DEFAULT_SORT_FIELD)
    if field not in SORTABLE_FIELDS:
        field = DEFAULT_SORT_FIELD
    order = (sort_order or DEFAULT_SORT_ORDER).lower()
    if order not in ("asc", "desc"):
        order = DEFAULT_SORT_ORDER
    return field, order


def recent_window(minutes: int, now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now - timedelta(minutes=minutes)
