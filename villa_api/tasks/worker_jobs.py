import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError, OperationalError
from villa_api.db.session import SessionLocal
from villa_api.services.checkout_service import expire_stale_checkouts
from villa_api.services.email_service import process_pending_emails

logger = logging.getLogger(__name__)


def expire_checkout_sessions(db: Session | None = None) -> dict:
    """Close open checkout sessions whose provider session can no longer be paid."""
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            expired = expire_stale_checkouts(db)
        except (ProgrammingError, OperationalError):
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        if expired:
            logger.info("expired %s stale checkout sessions", expired)
        return {"expired": expired}
    finally:
        if own:
            db.close()


def process_email_queue(limit: int = 50, db: Session | None = None) -> dict:
    """Process queued/failed emails (retry send). Run periodically via Celery beat."""
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            return process_pending_emails(db, limit=limit)
        except (ProgrammingError, OperationalError):
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
    finally:
        if own:
            db.close()
