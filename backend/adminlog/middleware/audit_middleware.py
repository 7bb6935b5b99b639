"""
Admin activity middleware: records mutating admin requests to the audit trail.

Intercepts every request from an actor with an elevated role. After the
downstream app has produced its response, the request is classified and,
if it qualifies, a background task is attached to the response that writes
the AuditRecord once the response has been sent.

REQUIREMENTS:
- Never block or fail the response. The write runs after the response and
  its failure is contained in AuditWriteResult and logged.
- Credentials in the request body are masked before they leave this module.

This middleware is added BEFORE ActorContextMiddleware (so it runs inside
it) and can read request.state.actor.
"""

import json
import logging
from typing import Callable, Iterable, Optional

from fastapi import Request, Response
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.middleware.base import BaseHTTPMiddleware

from adminlog.audit.classifier import (
    DEFAULT_MASK,
    DEFAULT_SENSITIVE_FIELDS,
    RequestSnapshot,
    classify_request,
    should_log,
)
from adminlog.auth.context import get_request_actor
from adminlog.models.audit_record import AuditEvent
from adminlog.models.base import utcnow
from adminlog.services.audit_store import AuditWriter

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 64 * 1024


def get_client_ip(request: Request) -> Optional[str]:
    """First X-Forwarded-For hop, else the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


class AdminActivityMiddleware(BaseHTTPMiddleware):
    """
    Writes one AuditRecord per qualifying admin request.

    The writer is resolved per request from `writer_factory` so the session
    factory installed on app.state at startup (or by tests) is used.
    """

    def __init__(
        self,
        app,
        writer_factory: Callable[[Request], Optional[AuditWriter]],
        api_prefix: str = "/api",
        elevated_roles: Iterable[str] = ("admin",),
        sensitive_fields: Iterable[str] = DEFAULT_SENSITIVE_FIELDS,
        mask: str = DEFAULT_MASK,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ):
        super().__init__(app)
        self.writer_factory = writer_factory
        self.api_prefix = api_prefix
        self.elevated_roles = {role.lower() for role in elevated_roles}
        self.sensitive_fields = tuple(sensitive_fields)
        self.mask = mask
        self.max_body_bytes = max_body_bytes

    def _is_elevated(self, request: Request) -> bool:
        actor = get_request_actor(request)
        return actor is not None and (actor.role or "").lower() in self.elevated_roles

    async def _read_json_body(self, request: Request):
        """JSON body as parsed data, or None when absent, too large or not JSON."""
        if "json" not in request.headers.get("content-type", "").lower():
            return None
        length = request.headers.get("content-length")
        if length is not None:
            try:
                if int(length) > self.max_body_bytes:
                    return None
            except ValueError:
                return None

        # Chunked uploads carry no length; check the buffered size instead
        raw = await request.body()
        if not raw or len(raw) > self.max_body_bytes:
            return None
        try:
            return json.loads(raw)
        except (ValueError, UnicodeDecodeError):
            return None

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self._is_elevated(request) or not should_log(request.method, request.url.path):
            return await call_next(request)

        body = await self._read_json_body(request)
        response = await call_next(request)

        try:
            event = self._build_event(request, response.status_code, body)
        except Exception:
            # Classification is best-effort; the response is already built
            logger.exception(
                "Failed to build audit event",
                extra={"path": request.url.path, "method": request.method},
            )
            return response

        if event is None:
            return response

        writer = self.writer_factory(request)
        if writer is None:
            logger.warning("Audit writer unavailable; activity not recorded")
            return response

        self._attach_background(response, BackgroundTask(writer.write, event))
        return response

    def _build_event(self, request: Request, status_code: int, body) -> Optional[AuditEvent]:
        snapshot = RequestSnapshot(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            query=dict(request.query_params),
            path_params=dict(request.path_params),
            body=body,
        )
        classification = classify_request(
            snapshot,
            api_prefix=self.api_prefix,
            sensitive_fields=self.sensitive_fields,
            mask=self.mask,
        )
        if classification is None:
            return None

        actor = get_request_actor(request)
        return AuditEvent(
            actor_id=actor.id if actor else None,
            actor_name=actor.name if actor else None,
            actor_email=actor.email if actor else None,
            actor_role=actor.role if actor else None,
            action=classification.action,
            entity=classification.entity,
            entity_id=classification.entity_id,
            severity=classification.severity,
            details=classification.details,
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            timestamp=utcnow(),
        )

    @staticmethod
    def _attach_background(response: Response, task: BackgroundTask) -> None:
        """Run `task` after the response, keeping any task already attached."""
        existing = response.background
        if existing is None:
            response.background = task
            return
        tasks = BackgroundTasks()
        tasks.add_task(existing)
        tasks.add_task(task.func, *task.args, **task.kwargs)
        response.background = tasks
