"""
FastAPI application factory.

Middleware order (outermost first):
1. OperatorKeySanitizerMiddleware - rewrites $ and . in request keys
2. CORSMiddleware
3. ActorContextMiddleware - resolves request.state.actor from the bearer token
4. AdminActivityMiddleware - records mutating admin requests

Starlette runs the middleware added last first, so they are added in
reverse order below.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session, sessionmaker

from adminlog import __version__
from adminlog.api.routes import health, logs, notifications, realtime
from adminlog.auth.context import ActorContextMiddleware
from adminlog.auth.tokens import TokenService
from adminlog.config.settings import AppSettings, get_settings
from adminlog.database.session import build_engine
from adminlog.middleware.audit_middleware import AdminActivityMiddleware
from adminlog.middleware.request_sanitizer import OperatorKeySanitizerMiddleware
from adminlog.realtime import InMemoryConnectionRegistry, NotificationHub
from adminlog.realtime.registry import ConnectionRegistry
from adminlog.services.audit_store import AuditWriter

logger = logging.getLogger(__name__)


def _audit_writer_factory(request: Request) -> Optional[AuditWriter]:
    factory = getattr(request.app.state, "session_factory", None)
    if factory is None:
        return None
    return AuditWriter(factory)


def _build_session_factory(settings: AppSettings) -> Optional[Callable[[], Session]]:
    if not settings.database_url:
        logger.error(
            "DATABASE_URL is not set. Database-backed endpoints will return 503 "
            "and admin activity will not be recorded."
        )
        return None
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=build_engine(settings.database_url),
    )


def _build_token_service(settings: AppSettings) -> Optional[TokenService]:
    try:
        return TokenService.from_settings(settings)
    except ValueError:
        logger.warning(
            "JWT_SECRET is not set. Authenticated endpoints will return 401 "
            "and WebSocket connections will be refused."
        )
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info(
        "Starting admin audit service",
        extra={
            "env": app.state.settings.env,
            "database_configured": app.state.session_factory is not None,
            "auth_configured": app.state.token_service is not None,
        },
    )
    yield
    logger.info("Shutting down admin audit service", extra={"realtime": app.state.hub.online_stats()})


def create_app(
    settings: Optional[AppSettings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    registry: Optional[ConnectionRegistry] = None,
) -> FastAPI:
    """
    Build the application.

    Tests pass their own settings, session factory and registry; in
    production everything is derived from the environment.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Admin Audit API",
        description="Admin activity trail, log exports and real-time notifications",
        version=__version__,
        lifespan=lifespan,
    )

    token_service = _build_token_service(settings)
    app.state.settings = settings
    app.state.session_factory = session_factory or _build_session_factory(settings)
    app.state.token_service = token_service
    app.state.hub = NotificationHub(registry or InMemoryConnectionRegistry())
    app.state.started_at = time.monotonic()

    # Innermost first
    app.add_middleware(
        AdminActivityMiddleware,
        writer_factory=_audit_writer_factory,
        api_prefix=settings.api_prefix,
        elevated_roles=settings.elevated_roles,
        sensitive_fields=settings.sensitive_fields,
        mask=settings.audit_mask,
        max_body_bytes=settings.audit_max_body_bytes,
    )
    app.add_middleware(ActorContextMiddleware, token_service=token_service)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # CRITICAL: sanitizer must stay outermost so nothing sees raw keys
    app.add_middleware(OperatorKeySanitizerMiddleware, replace_with=settings.sanitize_replace_with)

    app.include_router(health.router)
    app.include_router(logs.router)
    app.include_router(notifications.router)
    app.include_router(realtime.router)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "message": "Invalid request",
                "errors": [
                    {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                    for error in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unhandled exceptions with proper logging."""
        logger.error(
            "Unhandled exception",
            extra={
                "error": str(exc),
                "error_type": type(exc).__name__,
                "path": request.url.path,
            },
            exc_info=True,
        )
        content = {"message": "Internal server error"}
        if settings.is_development:
            content["error"] = str(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    return app
