"""
Audit Retention Job.

Purges admin log records older than the retention period. This is the
scheduled counterpart of DELETE /api/logs/clear.

Run as a daily cron job:
    python -m adminlog.jobs.audit_retention

Configuration:
- AUDIT_RETENTION_MONTHS: Retention period in months (default: 12)
"""

import sys
import logging
from datetime import datetime, timezone
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from adminlog.config.settings import get_settings
from adminlog.database.session import get_db_session_sync
from adminlog.services.audit_store import AuditRecordStore

logger = logging.getLogger(__name__)


class AuditRetention:
    """Enforces the admin log retention policy."""

    def __init__(self, db_session: Session, retention_months: int, now: Optional[datetime] = None):
        if retention_months < 1:
            raise ValueError("retention_months must be at least 1")
        self.db = db_session
        self.retention_months = retention_months
        now = now or datetime.now(timezone.utc)
        self.cutoff_date = now - relativedelta(months=retention_months)

    def run(self) -> dict:
        logger.info(
            "Starting audit retention",
            extra={
                "retention_months": self.retention_months,
                "cutoff_date": self.cutoff_date.isoformat(),
            },
        )
        deleted = AuditRecordStore(self.db).purge_older_than(self.cutoff_date)
        stats = {
            "deleted": deleted,
            "cutoff_date": self.cutoff_date.isoformat(),
            "retention_months": self.retention_months,
        }
        logger.info("Audit retention completed", extra=stats)
        return stats


def main():
    """Main entry point for the audit retention job."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    retention_months = get_settings().retention_months

    try:
        for session in get_db_session_sync():
            AuditRetention(session, retention_months).run()
    except Exception as e:
        logger.error("Audit retention failed", extra={"error": str(e)}, exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
