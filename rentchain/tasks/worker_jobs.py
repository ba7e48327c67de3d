import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import ProgrammingError

from rentchain.core.errors import NotFoundError
from rentchain.db.session import SessionLocal
from rentchain.services import settlement_service
from rentchain.services.settlement_service import settlement_view

logger = logging.getLogger(__name__)


def process_settlement_queue(limit: int = 50, db: Session | None = None) -> dict:
    """Retry queued/failed payouts. Run periodically via Celery beat."""
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            result = settlement_service.process_pending_settlements(db, limit=limit)
        except ProgrammingError:
            # DB not migrated yet; don't crash the worker.
            db.rollback()
            return {"skipped": True, "reason": "missing_tables"}
        if result["processed"]:
            logger.info("settlement queue: %s", result)
        return result
    finally:
        if own:
            db.close()


def retry_settlement(booking_id: str, db: Session | None = None) -> dict:
    own = db is None
    db = db or SessionLocal()
    try:
        try:
            job = settlement_service.retry_settlement(db, booking_id)
        except NotFoundError as e:
            return {"skipped": True, "reason": e.message}
        return {"bookingId": booking_id, **settlement_view(job)}
    finally:
        if own:
            db.close()
