"""
Engine and session handling for the audit service.

Request handlers get a session from get_db_session(), which prefers the
factory installed on app.state (tests inject an in-memory one). Background
audit writes and jobs open their own sessions from the same factory.

Usage:
    from adminlog.database.session import get_db_session

    @router.get("/api/logs/{record_id}")
    async def get_log(record_id: str, db_session: Session = Depends(get_db_session)):
        return AuditRecordStore(db_session).get(record_id)
"""

import logging
from typing import Callable, Generator, Optional

from fastapi import HTTPException, Request, status
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from adminlog.config.settings import get_settings

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]

# Process-wide fallbacks when the app has no factory on its state
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def build_engine(database_url: str) -> Engine:
    """
    Create an engine for database_url.

    SQLite connections may be used from the threadpool and the background
    writer, so same-thread checking is disabled. Other databases get a
    small pre-pinged pool recycled every 30 minutes.
    """
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
        pool_recycle=1800,
    )


def get_engine() -> Engine:
    global _engine
    if _engine is None:
        database_url = get_settings().database_url
        if not database_url:
            raise ValueError("DATABASE_URL environment variable is not set")
        _engine = build_engine(database_url)
        logger.info("Database engine created", extra={"dialect": _engine.dialect.name})
    return _engine


def get_session_factory() -> sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=get_engine(),
        )
    return _session_factory


def _resolve_factory(request: Request) -> SessionFactory:
    factory = getattr(request.app.state, "session_factory", None)
    if factory is not None:
        return factory
    return get_session_factory()


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """
    One session per request, closed when the response is done.

    Responds 503 when no database is configured.
    """
    try:
        factory = _resolve_factory(request)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not configured",
        )

    db_session = factory()
    try:
        yield db_session
    finally:
        db_session.close()


def get_db_session_sync() -> Generator[Session, None, None]:
    """
    Session for jobs and scripts running outside a request.

    Usage:
        for db_session in get_db_session_sync():
            AuditRetention(db_session, 12).run()
    """
    try:
        factory = get_session_factory()
    except ValueError as e:
        raise RuntimeError(f"Database not configured: {e}")

    db_session = factory()
    try:
        yield db_session
    finally:
        db_session.close()
