import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from rentchain.core.config import settings
from rentchain.core.errors import NotFoundError, SettlementError
from rentchain.models.settlement_job import SettlementJob
from rentchain.services.audit_service import log_audit
from rentchain.services.settlement_client import SettlementClient, get_settlement_client

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
RETRYABLE = ("queued", "failed")


def queue_settlement(db: Session, booking_id: str, client: SettlementClient | None = None) -> SettlementJob:
    """Record the payout in the outbox, then attempt delivery once.

    The job row is committed before the call so a failure stays visible and
    the worker can retry it via process_pending_settlements.
    """
    job = db.query(SettlementJob).filter(SettlementJob.booking_id == booking_id).first()
    if job is None:
        job = SettlementJob(id=str(uuid.uuid4()), booking_id=booking_id, status="queued", attempts=0)
        db.add(job)
        db.commit()
    if job.status == "sent":
        return job
    return dispatch(db, job, client)


def _claimable(now: datetime):
    # a "sending" row whose claim is older than the timeout belongs to a dispatcher that died mid-call
    stale = now - timedelta(seconds=settings.SETTLEMENT_CLAIM_TIMEOUT_SECONDS)
    return or_(
        SettlementJob.status.in_(RETRYABLE),
        and_(SettlementJob.status == "sending", SettlementJob.claimed_at < stale),
    )


def claim(db: Session, job: SettlementJob) -> bool:
    """Move the job to ``sending`` with a single conditional UPDATE.

    Only one session can win the claim, so the gateway is called at most once
    per attempt even when checkout, the beat task and an admin retry overlap.
    """
    now = datetime.now(timezone.utc)
    claimed = (
        db.query(SettlementJob)
        .filter(SettlementJob.id == job.id, _claimable(now))
        .update(
            {"status": "sending", "claimed_at": now, "attempts": SettlementJob.attempts + 1},
            synchronize_session=False,
        )
    )
    db.commit()
    if claimed != 1:
        db.refresh(job)
        logger.info("settlement for booking %s already claimed (%s)", job.booking_id, job.status)
        return False
    return True


def _deliver(db: Session, job: SettlementJob, client: SettlementClient) -> SettlementJob:
    booking_id = job.booking_id
    try:
        tx_hash = client.complete_booking(booking_id)
    except SettlementError as e:
        job.status = "failed"
        job.last_error = e.message
        logger.warning("settlement for booking %s failed (attempt %s): %s", booking_id, job.attempts, e.message)
    else:
        job.status = "sent"
        job.transaction_hash = tx_hash
        job.last_error = None
        job.sent_at = datetime.now(timezone.utc)
        log_audit(db, SYSTEM_ACTOR, "settlement.sent", "booking", booking_id, {"tx": tx_hash, "attempts": job.attempts})
        logger.info("settlement for booking %s sent: %s", booking_id, tx_hash)
    job.claimed_at = None
    db.commit()
    return job


def dispatch(db: Session, job: SettlementJob, client: SettlementClient | None = None) -> SettlementJob:
    if not claim(db, job):
        return job
    return _deliver(db, job, client or get_settlement_client())


def retry_settlement(db: Session, booking_id: str, client: SettlementClient | None = None) -> SettlementJob:
    job = db.query(SettlementJob).filter(SettlementJob.booking_id == booking_id).first()
    if not job:
        raise NotFoundError(f"no settlement recorded for booking {booking_id}")
    if job.status == "sent":
        return job
    return dispatch(db, job, client)


def list_settlements(db: Session, status: str | None = None, limit: int = 100) -> list[SettlementJob]:
    q = db.query(SettlementJob)
    if status:
        q = q.filter(SettlementJob.status == status)
    return q.order_by(SettlementJob.created_at.desc()).limit(min(limit, 500)).all()


def process_pending_settlements(db: Session, limit: int = 50, client: SettlementClient | None = None) -> dict:
    """Retry queued/failed payouts that still have attempts left. Run periodically via Celery beat.

    Rows claimed by another dispatcher in the meantime are counted as skipped.
    """
    pending = (
        db.query(SettlementJob)
        .filter(
            _claimable(datetime.now(timezone.utc)),
            SettlementJob.attempts < settings.SETTLEMENT_MAX_ATTEMPTS,
        )
        .order_by(SettlementJob.created_at.asc())
        .limit(limit)
        .all()
    )
    client = client or get_settlement_client()
    sent, failed, skipped = 0, 0, 0
    for job in pending:
        if not claim(db, job):
            skipped += 1
            continue
        _deliver(db, job, client)
        if job.status == "sent":
            sent += 1
        else:
            failed += 1
    return {"processed": len(pending), "sent": sent, "failed": failed, "skipped": skipped}


def settlement_view(job: SettlementJob | None) -> dict:
    if job is None:
        return {"status": "none"}
    return {
        "status": job.status,
        "attempts": job.attempts,
        "lastError": job.last_error,
        "transactionHash": job.transaction_hash,
    }
