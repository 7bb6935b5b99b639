"""
Request classifier for the admin activity trail.

Pure derivation of (action, entity, entity_id, severity, details) from a
completed request/response pair. No I/O: the middleware captures a
RequestSnapshot and everything here is deterministic given that snapshot.

Rules:
- Safe reads (GET/HEAD/OPTIONS) are skipped unless the path is an export
  or report operation.
- Authentication endpoints are skipped; they are recorded explicitly with
  richer context (see AdminActionLogger.log_login).
- POST -> CREATE, PUT/PATCH -> UPDATE, DELETE -> DELETE, other methods
  verbatim; an /export path overrides to EXPORT.
- Entity is the first meaningful path segment after the API prefix,
  capitalized. This is a heuristic and mislabels nested routes.
"""

import re
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Iterable, Mapping, Optional

from adminlog.models.audit_record import (
    AuditAction,
    HttpRequestDetails,
    Severity,
)

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

METHOD_ACTIONS = {
    "POST": AuditAction.CREATE.value,
    "PUT": AuditAction.UPDATE.value,
    "PATCH": AuditAction.UPDATE.value,
    "DELETE": AuditAction.DELETE.value,
}

EXPORT_MARKER = "/export"
REPORT_MARKER = "/report"
AUTH_MARKERS = ("/login", "/auth/")

DEFAULT_MASK = "***"
DEFAULT_SENSITIVE_FIELDS = frozenset({"password", "token"})

_VERSION_SEGMENT = re.compile(r"^v\d+$", re.IGNORECASE)
_IDENTIFIER_PATTERNS = (
    re.compile(r"^[0-9a-fA-F]{24}$"),  # Mongo-style ObjectId
    re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"),
    re.compile(r"^\d+$"),
)
_BODY_ID_FIELDS = ("id", "_id")


@dataclass(frozen=True)
class RequestSnapshot:
    """State of a finished request as seen by the activity middleware."""

    method: str
    path: str
    status_code: int
    query: Mapping[str, Any] = field(default_factory=dict)
    path_params: Mapping[str, Any] = field(default_factory=dict)
    body: Optional[Any] = None


@dataclass(frozen=True)
class Classification:
    """What the audit trail records about a request."""

    action: str
    entity: Optional[str]
    entity_id: Optional[str]
    severity: Severity
    details: HttpRequestDetails


def should_log(method: str, path: str) -> bool:
    """Decide whether a request belongs in the admin activity trail."""
    lowered = path.lower()
    if any(marker in lowered for marker in AUTH_MARKERS):
        return False
    if method.upper() in SAFE_METHODS:
        return EXPORT_MARKER in lowered or REPORT_MARKER in lowered
    return True


def derive_action(method: str, path: str) -> str:
    """Map HTTP method (and export marker) to an audit action."""
    if EXPORT_MARKER in path.lower():
        return AuditAction.EXPORT.value
    upper = method.upper()
    return METHOD_ACTIONS.get(upper, upper)


def _path_segments(path: str, api_prefix: str) -> list[str]:
    prefix = api_prefix.rstrip("/")
    if prefix and (path == prefix or path.startswith(prefix + "/")):
        path = path[len(prefix):]
    return [segment for segment in path.split("/") if segment]


def _entity_index(segments: list[str]) -> Optional[int]:
    for index, segment in enumerate(segments):
        if not _VERSION_SEGMENT.match(segment):
            return index
    return None


def derive_entity(path: str, api_prefix: str = "/api") -> Optional[str]:
    """First meaningful path segment after the API prefix, capitalized."""
    segments = _path_segments(path, api_prefix)
    index = _entity_index(segments)
    if index is None:
        return None
    segment = segments[index]
    return segment[:1].upper() + segment[1:]


def looks_like_identifier(value: str) -> bool:
    return any(pattern.match(value) for pattern in _IDENTIFIER_PATTERNS)


def derive_entity_id(
    path: str,
    path_params: Mapping[str, Any],
    body: Optional[Any],
    api_prefix: str = "/api",
) -> Optional[str]:
    """
    Resolve the affected resource id.

    Priority: route path parameter, then the identifier-shaped segment that
    follows the entity segment, then an id field in the request body.
    """
    if path_params:
        if path_params.get("id") not in (None, ""):
            return str(path_params["id"])
        for key, value in path_params.items():
            if key.lower().endswith("_id") or key.endswith("Id"):
                if value not in (None, ""):
                    return str(value)

    segments = _path_segments(path, api_prefix)
    index = _entity_index(segments)
    if index is not None and index + 1 < len(segments):
        candidate = segments[index + 1]
        if looks_like_identifier(candidate):
            return candidate

    if isinstance(body, Mapping):
        for key in _BODY_ID_FIELDS:
            value = body.get(key)
            if value not in (None, ""):
                return str(value)

    return None


def derive_severity(status_code: int) -> Severity:
    if status_code >= 500:
        return Severity.ERROR
    if status_code >= 400:
        return Severity.WARNING
    return Severity.INFO


def mask_sensitive(
    body: Optional[Any],
    sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS,
    mask: str = DEFAULT_MASK,
) -> Optional[dict[str, Any]]:
    """
    Shallow-clone a request body, replacing credential keys with the mask.

    Non-object bodies are not recorded (None).
    """
    if not isinstance(body, Mapping):
        return None
    sensitive = {name.lower() for name in sensitive_fields}
    cloned = dict(body)
    for key in list(cloned.keys()):
        if isinstance(key, str) and key.lower() in sensitive:
            cloned[key] = mask
    return cloned


def status_phrase(status_code: int) -> Optional[str]:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return None


def classify_request(
    snapshot: RequestSnapshot,
    *,
    api_prefix: str = "/api",
    sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS,
    mask: str = DEFAULT_MASK,
) -> Optional[Classification]:
    """
    Classify a finished request.

    Returns None when the request should not be recorded.
    """
    if not should_log(snapshot.method, snapshot.path):
        return None

    details = HttpRequestDetails(
        method=snapshot.method.upper(),
        path=snapshot.path,
        query=dict(snapshot.query),
        body=mask_sensitive(snapshot.body, sensitive_fields, mask),
        status_code=snapshot.status_code,
        status_message=status_phrase(snapshot.status_code),
    )

    return Classification(
        action=derive_action(snapshot.method, snapshot.path),
        entity=derive_entity(snapshot.path, api_prefix),
        entity_id=derive_entity_id(
            snapshot.path, snapshot.path_params, snapshot.body, api_prefix,
        ),
        severity=derive_severity(snapshot.status_code),
        details=details,
    )
