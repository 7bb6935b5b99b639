"""
Pydantic schemas for the admin log API.

Responses are serialized with camelCase keys for the admin console.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AuditRecordResponse(_CamelModel):
    id: str
    actor_id: Optional[str] = None
    actor_name: Optional[str] = None
    actor_email: Optional[str] = None
    actor_role: Optional[str] = None
    action: Optional[str] = None
    entity: Optional[str] = None
    entity_id: Optional[str] = None
    severity: str
    details: Optional[Any] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    timestamp: Optional[str] = None


class PageMeta(_CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int


class HourlyBucketResponse(_CamelModel):
    hour: str
    count: int
    errors: int
    warnings: int


class AuditStatsResponse(_CamelModel):
    total_logs: int
    by_severity: dict[str, int]
    by_action: dict[str, int]
    by_entity: dict[str, int]
    hourly: list[HourlyBucketResponse]
    error_count: int
    warning_count: int


class AuditLogListResponse(_CamelModel):
    data: list[AuditRecordResponse]
    meta: PageMeta
    stats: AuditStatsResponse


class AuditTrailResponse(_CamelModel):
    entity: str
    entity_id: str
    data: list[AuditRecordResponse]
    total: int


class PurgeResponse(_CamelModel):
    message: str
    deleted_count: int


class HealthMetrics(_CamelModel):
    recent_errors: int
    uptime: float


class SystemHealthResponse(_CamelModel):
    status: str
    metrics: HealthMetrics
    recommendations: list[str]
