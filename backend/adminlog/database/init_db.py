"""
Database initialization.

Creates the admin_logs and notifications tables if they don't exist.
Existing tables are not modified.

Usage:
    python -m adminlog.database.init_db

Environment variables:
    DATABASE_URL: database connection string
"""

import logging
import sys

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from adminlog.config.settings import get_settings
from adminlog.database.session import build_engine
from adminlog.db_base import Base
import adminlog.models  # noqa: F401 - registers every table on Base.metadata

logger = logging.getLogger(__name__)


def init_database(engine: Engine) -> list[str]:
    """Create missing tables. Returns the sorted table names now present."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    logger.info("Database connection successful")

    table_names = sorted(Base.metadata.tables.keys())
    logger.info(f"Tables to create/verify: {', '.join(table_names)}")
    Base.metadata.create_all(bind=engine)

    existing = set(inspect(engine).get_table_names())
    for table_name in table_names:
        logger.info(f"  {table_name}: {'EXISTS' if table_name in existing else 'MISSING'}")
    return sorted(name for name in table_names if name in existing)


def main():
    logging.basicConfig(level=logging.INFO)
    database_url = get_settings().database_url
    if not database_url:
        logger.error("DATABASE_URL environment variable is required")
        sys.exit(1)

    try:
        init_database(build_engine(database_url))
    except SQLAlchemyError as e:
        logger.error(f"Failed to initialize database: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
