"""
Admin log API routes.

Provides endpoints for:
- Listing audit records (filtered, paginated, sorted) with stats
- Aggregate stats
- Export (csv, pdf, excel, json) as an attachment
- Age-based purge
- Log-based health status
- Audit trail for a single resource
- Single record lookup

SECURITY:
- Every endpoint requires the admin role; the check runs as a dependency,
  before any query is built.
- Filter keys are allow-listed; unknown query parameters are ignored.
"""

import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from adminlog.api.schemas.logs import (
    AuditLogListResponse,
    AuditRecordResponse,
    AuditStatsResponse,
    AuditTrailResponse,
    PurgeResponse,
    SystemHealthResponse,
)
from adminlog.auth.dependencies import require_admin
from adminlog.auth.tokens import Actor
from adminlog.config.settings import AppSettings, get_settings
from adminlog.database.session import get_db_session
from adminlog.exports import (
    ADMIN_LOG_EXPORT_CONFIG,
    ExportGenerationError,
    UnsupportedExportFormatError,
    parse_export_format,
    render_export,
)
from adminlog.models.audit_record import Severity
from adminlog.services.audit_filters import (
    AuditLogFilter,
    parse_pagination,
    parse_sort,
    parse_timestamp,
    recent_window,
)
from adminlog.services.audit_store import AuditRecordNotFoundError, AuditRecordStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/logs", tags=["admin-logs"])

# Health thresholds on error-class records in the recent window
HEALTH_WINDOW_MINUTES = 5
DEGRADED_ERROR_THRESHOLD = 10
UNHEALTHY_ERROR_THRESHOLD = 50


def _settings(request: Request) -> AppSettings:
    return getattr(request.app.state, "settings", None) or get_settings()


def _record_response(record) -> AuditRecordResponse:
    return AuditRecordResponse.model_validate(record.to_dict())


@router.get("", response_model=AuditLogListResponse)
@router.get("/admin-logs", response_model=AuditLogListResponse)
async def list_logs(
    request: Request,
    page: Optional[str] = Query(None, description="1-based page number"),
    limit: Optional[str] = Query(None, description="Page size (max 100)"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query(None, alias="sortOrder"),
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """
    List audit records, newest first by default.

    Filters: startDate, endDate, adminId/actorId, action, entity, severity,
    search (case-insensitive substring over actor name and email).
    """
    audit_filter = AuditLogFilter.from_params(request.query_params)
    page_num, page_size = parse_pagination(page, limit)
    sort_field, order = parse_sort(sort_by, sort_order)

    store = AuditRecordStore(db_session)
    result = store.query(audit_filter, page_num, page_size, sort_field, order)
    stats = store.stats(audit_filter)

    return AuditLogListResponse.model_validate({
        "data": [record.to_dict() for record in result.records],
        "meta": result.meta(),
        "stats": stats.to_dict(),
    })


@router.get("/stats", response_model=AuditStatsResponse)
async def get_log_stats(
    request: Request,
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """Counts by severity, action and entity plus an hourly histogram."""
    audit_filter = AuditLogFilter.from_params(request.query_params)
    stats = AuditRecordStore(db_session).stats(audit_filter)
    return AuditStatsResponse.model_validate(stats.to_dict())


@router.get("/export")
async def export_logs(
    request: Request,
    format: Optional[str] = Query("csv", description="csv | pdf | excel | json"),
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """
    Export the filtered audit stream as an attachment.

    The same filter keys as the list endpoint apply. Rows are capped at
    EXPORT_MAX_ROWS.
    """
    try:
        fmt = parse_export_format(format)
    except UnsupportedExportFormatError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    settings = _settings(request)
    audit_filter = AuditLogFilter.from_params(request.query_params)
    config = ADMIN_LOG_EXPORT_CONFIG.with_metadata(**{
        "Generated By": actor.name or actor.email or actor.id,
        "Date Range": audit_filter.describe_range(),
    })

    store = AuditRecordStore(db_session)

    def _render():
        rows = (record.to_dict() for record in store.iter_export_rows(audit_filter, settings.export_max_rows))
        return render_export(
            rows,
            config,
            fmt,
            filename=f"admin_logs.{fmt.extension}",
            spool_max_bytes=settings.export_spool_max_bytes,
        )

    try:
        rendered = await run_in_threadpool(_render)
    except ExportGenerationError as e:
        content = {"message": "Error generating export"}
        if settings.is_development:
            content["error"] = str(e)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    logger.info(
        "Admin logs exported",
        extra={"actor_id": actor.id, "format": fmt.value, "rows": rendered.rows},
    )
    return StreamingResponse(
        rendered.iter_chunks(),
        media_type=rendered.media_type,
        headers={"Content-Disposition": rendered.content_disposition},
    )


@router.delete("/clear", response_model=PurgeResponse)
async def clear_logs(
    request: Request,
    older_than: Optional[str] = Query(None, alias="olderThan", description="ISO date or datetime"),
    severity: Optional[str] = Query(None),
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """Delete records with a timestamp strictly before olderThan."""
    cutoff = parse_timestamp(older_than)
    if cutoff is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="olderThan must be a valid ISO date",
        )

    severity_level = None
    if severity:
        severity_level = Severity.parse(severity)
        if severity_level is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown severity: {severity}",
            )

    deleted = AuditRecordStore(db_session).purge_older_than(cutoff, severity_level)
    logger.warning(
        "Admin logs cleared",
        extra={"actor_id": actor.id, "cutoff": cutoff.isoformat(), "deleted": deleted},
    )
    return PurgeResponse(message=f"Deleted {deleted} logs", deleted_count=deleted)


@router.get("/health", response_model=SystemHealthResponse)
async def get_system_health(
    request: Request,
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """Health derived from error-class records in the last few minutes."""
    recent_errors = AuditRecordStore(db_session).recent_error_count(
        recent_window(HEALTH_WINDOW_MINUTES)
    )

    health_status = "healthy"
    if recent_errors > UNHEALTHY_ERROR_THRESHOLD:
        health_status = "unhealthy"
    elif recent_errors > DEGRADED_ERROR_THRESHOLD:
        health_status = "degraded"

    started_at = getattr(request.app.state, "started_at", None) or time.monotonic()
    return SystemHealthResponse.model_validate({
        "status": health_status,
        "metrics": {
            "recentErrors": recent_errors,
            "uptime": round(time.monotonic() - started_at, 3),
        },
        "recommendations": ["Check recent error logs"] if recent_errors else [],
    })


@router.get("/audit/{entity}/{entity_id}", response_model=AuditTrailResponse)
async def get_audit_trail(
    entity: str,
    entity_id: str,
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    """Every record for one resource, newest first."""
    records = AuditRecordStore(db_session).entity_trail(entity, entity_id)
    return AuditTrailResponse(
        entity=entity,
        entity_id=entity_id,
        data=[_record_response(record) for record in records],
        total=len(records),
    )


@router.get("/{record_id}", response_model=AuditRecordResponse)
async def get_log(
    record_id: str,
    actor: Actor = Depends(require_admin),
    db_session: Session = Depends(get_db_session),
):
    try:
        record = AuditRecordStore(db_session).get(record_id)
    except AuditRecordNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Log not found")
    return _record_response(record)
