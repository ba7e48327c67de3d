import logging
import os
import re
import shutil
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rentchain.core.config import settings
from rentchain.core.errors import (
    DuplicateReclamationError,
    FixedSeverityError,
    InvalidTransitionError,
    NotFoundError,
    PermissionDeniedError,
    StateConflictError,
    ValidationError,
)
from rentchain.domain.booking_states import BookingStatus, normalize_status
from rentchain.domain.pricing import money
from rentchain.domain.reclamation_rules import (
    SEVERITY_EDITABLE_STATUSES,
    ComplainantRole,
    Outcome,
    ReclamationStatus,
    ReclamationType,
    Severity,
    compute_outcome,
    is_fixed_severity,
    next_status,
)
from rentchain.models.booking import Booking
from rentchain.models.property import Property
from rentchain.models.reclamation import Reclamation, ReclamationAttachment
from rentchain.models.user import User
from rentchain.services.audit_service import log_audit

logger = logging.getLogger(__name__)

# Bookings a party can still complain about.
RECLAIMABLE_STATUSES = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.TENANT_CHECKED_OUT,
    BookingStatus.IN_DISPUTE,
})

DEFAULT_SEVERITY = Severity.MEDIUM

# (filename, content, content_type), same shape the email queue uses for attachments
Upload = tuple[str, bytes, str]

_SAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _enum(cls, value, field: str):
    try:
        return cls(str(value).strip().upper())
    except ValueError:
        raise ValidationError(f"invalid {field} {value!r}", allowed=[m.value for m in cls])


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _get(db: Session, reclamation_id: str, lock: bool = False) -> Reclamation:
    stmt = select(Reclamation).where(Reclamation.id == reclamation_id)
    if lock:
        stmt = stmt.with_for_update()
    rec = db.execute(stmt).scalar_one_or_none()
    if not rec:
        raise NotFoundError(f"reclamation {reclamation_id} not found")
    return rec


def _require_complainant(rec: Reclamation, user_id: str) -> None:
    if rec.complainant_id != user_id:
        raise PermissionDeniedError("only the complainant can change this reclamation", reclamationId=rec.id)


def _require_open(rec: Reclamation, action: str) -> None:
    if rec.status != ReclamationStatus.OPEN.value:
        raise InvalidTransitionError(rec.status, action, f"cannot {action} a reclamation in status {rec.status}")


def _upload_dir(reclamation_id: str) -> str:
    return os.path.join(settings.RECLAMATION_UPLOAD_DIR, reclamation_id)


def _check_files(files: list[Upload], existing: int = 0) -> None:
    if existing + len(files) > settings.RECLAMATION_MAX_FILES:
        raise ValidationError(f"at most {settings.RECLAMATION_MAX_FILES} images per reclamation")
    for name, _, content_type in files:
        if content_type and not content_type.startswith("image/"):
            raise ValidationError(f"{name}: only images can be attached", contentType=content_type)


def _store_files(db: Session, rec: Reclamation, files: list[Upload]) -> list[ReclamationAttachment]:
    """Write the images and stage their rows; the caller commits.

    Files written before a disk error are removed again so the folder only
    ever holds images that have a row.
    """
    if not files:
        return []
    existing = db.query(func.count(ReclamationAttachment.id)).filter(ReclamationAttachment.reclamation_id == rec.id).scalar() or 0
    _check_files(files, existing)
    folder = _upload_dir(rec.id)
    written = []
    out = []
    try:
        os.makedirs(folder, exist_ok=True)
        for name, content, content_type in files:
            stored = f"{uuid.uuid4().hex[:12]}_{_SAFE_NAME.sub('_', os.path.basename(name or 'image'))}"
            path = os.path.join(folder, stored)
            with open(path, "wb") as fh:
                written.append(path)
                fh.write(content)
            att = ReclamationAttachment(
                id=str(uuid.uuid4()),
                reclamation_id=rec.id,
                filename=stored,
                original_name=name or "",
                content_type=content_type or "application/octet-stream",
            )
            db.add(att)
            out.append(att)
    except OSError:
        logger.exception("storing images for reclamation %s failed", rec.id)
        for path in written:
            if os.path.exists(path):
                os.remove(path)
        raise
    return out


def _discard_uploads(reclamation_id: str) -> None:
    folder = _upload_dir(reclamation_id)
    if os.path.isdir(folder):
        shutil.rmtree(folder)


def attachment_path(att: ReclamationAttachment) -> str:
    return os.path.join(_upload_dir(att.reclamation_id), att.filename)


# ---------------------------------------------------------------------------
# party operations
# ---------------------------------------------------------------------------

def create_reclamation(db: Session, booking_id: str, user_id: str, role, rtype, title: str | None = None,
                       description: str | None = None, files: list[Upload] | None = None) -> Reclamation:
    role = _enum(ComplainantRole, role, "complainantRole")
    rtype = _enum(ReclamationType, rtype, "reclamationType")
    _check_files(files or [])

    b = db.get(Booking, booking_id)
    if not b:
        raise NotFoundError(f"booking {booking_id} not found")
    status = normalize_status(b.status, b.requested_negotiation_percent)
    if status not in RECLAIMABLE_STATUSES:
        raise StateConflictError(
            f"cannot file a reclamation on a booking in status {status.value}",
            bookingStatus=status.value,
        )
    if role is ComplainantRole.GUEST:
        if user_id != b.tenant_id:
            raise PermissionDeniedError("only the tenant can file a guest reclamation", bookingId=b.id)
        target = b.owner_id
    else:
        if user_id != b.owner_id:
            raise PermissionDeniedError("only the host can file a host reclamation", bookingId=b.id)
        target = b.tenant_id

    if db.query(Reclamation.id).filter(Reclamation.booking_id == b.id, Reclamation.complainant_id == user_id).first():
        raise DuplicateReclamationError("a reclamation already exists for this booking", bookingId=b.id)

    rec = Reclamation(
        id=str(uuid.uuid4()),
        booking_id=b.id,
        complainant_id=user_id,
        complainant_role=role.value,
        target_user_id=target,
        type=rtype.value,
        title=(title or "").strip(),
        description=(description or "").strip(),
        status=ReclamationStatus.OPEN.value,
        severity=DEFAULT_SEVERITY.value,
    )
    db.add(rec)
    log_audit(db, user_id, "reclamation.create", "reclamation", rec.id,
              {"bookingId": b.id, "role": role.value, "type": rtype.value})
    try:
        db.flush()
    except IntegrityError as e:
        # lost the race against a concurrent create for the same pair
        db.rollback()
        raise DuplicateReclamationError("a reclamation already exists for this booking", bookingId=b.id) from e

    # the row and its images land in one commit
    rec_id = rec.id
    try:
        _store_files(db, rec, files or [])
        db.commit()
    except (OSError, SQLAlchemyError):
        db.rollback()
        _discard_uploads(rec_id)
        raise
    db.refresh(rec)
    logger.info("reclamation %s opened on booking %s by %s (%s/%s)", rec.id, b.id, user_id, role.value, rtype.value)
    return rec


def update_reclamation(db: Session, reclamation_id: str, user_id: str, title: str | None = None,
                       description: str | None = None, files: list[Upload] | None = None) -> Reclamation:
    rec = _get(db, reclamation_id, lock=True)
    _require_complainant(rec, user_id)
    _require_open(rec, "update")
    if title is not None:
        rec.title = title.strip()
    if description is not None:
        rec.description = description.strip()
    _store_files(db, rec, files or [])
    log_audit(db, user_id, "reclamation.update", "reclamation", rec.id, {"files": len(files or [])})
    db.commit()
    db.refresh(rec)
    return rec


def delete_reclamation(db: Session, reclamation_id: str, user_id: str) -> None:
    rec = _get(db, reclamation_id, lock=True)
    _require_complainant(rec, user_id)
    _require_open(rec, "delete")
    db.query(ReclamationAttachment).filter(ReclamationAttachment.reclamation_id == rec.id).delete()
    db.delete(rec)
    log_audit(db, user_id, "reclamation.delete", "reclamation", reclamation_id, {"bookingId": rec.booking_id})
    db.commit()
    _discard_uploads(reclamation_id)
    logger.info("reclamation %s deleted by %s", reclamation_id, user_id)


def get_reclamation(db: Session, reclamation_id: str) -> Reclamation:
    return _get(db, reclamation_id)


def get_by_booking_and_complainant(db: Session, booking_id: str, complainant_id: str) -> Reclamation:
    rec = (
        db.query(Reclamation)
        .filter(Reclamation.booking_id == booking_id, Reclamation.complainant_id == complainant_id)
        .first()
    )
    if not rec:
        raise NotFoundError("no reclamation for this booking and complainant")
    return rec


def my_complaints(db: Session, user_id: str) -> list[Reclamation]:
    return db.query(Reclamation).filter(Reclamation.complainant_id == user_id).order_by(Reclamation.created_at.desc()).all()


def complaints_against(db: Session, user_id: str) -> list[Reclamation]:
    return db.query(Reclamation).filter(Reclamation.target_user_id == user_id).order_by(Reclamation.created_at.desc()).all()


def attachments(db: Session, reclamation_id: str) -> list[ReclamationAttachment]:
    _get(db, reclamation_id)
    return (
        db.query(ReclamationAttachment)
        .filter(ReclamationAttachment.reclamation_id == reclamation_id)
        .order_by(ReclamationAttachment.created_at.asc())
        .all()
    )


def user_phone(db: Session, user_id: str) -> str | None:
    u = db.get(User, user_id)
    if not u:
        raise NotFoundError(f"user {user_id} not found")
    return u.phone_number or None


# ---------------------------------------------------------------------------
# admin operations
# ---------------------------------------------------------------------------

def list_reclamations(db: Session, status: str | None = None) -> list[Reclamation]:
    q = db.query(Reclamation)
    if status:
        q = q.filter(Reclamation.status == _enum(ReclamationStatus, status, "status").value)
    return q.order_by(Reclamation.created_at.desc()).all()


def update_severity(db: Session, reclamation_id: str, severity, admin_id: str) -> Reclamation:
    severity = _enum(Severity, severity, "severity")
    rec = _get(db, reclamation_id, lock=True)
    if is_fixed_severity(rec.type):
        raise FixedSeverityError(
            f"{rec.type} has a fixed penalty; severity cannot be changed",
            type=rec.type,
        )
    if ReclamationStatus(rec.status) not in SEVERITY_EDITABLE_STATUSES:
        raise InvalidTransitionError(rec.status, "update severity",
                                     f"cannot change severity of a reclamation in status {rec.status}")
    previous = rec.severity
    rec.severity = severity.value
    log_audit(db, admin_id, "reclamation.severity", "reclamation", rec.id, {"from": previous, "to": severity.value})
    db.commit()
    db.refresh(rec)
    return rec


def review(db: Session, reclamation_id: str, admin_id: str) -> Reclamation:
    rec = _get(db, reclamation_id, lock=True)
    rec.status = next_status(rec.status, "review").value
    log_audit(db, admin_id, "reclamation.review", "reclamation", rec.id, {})
    db.commit()
    db.refresh(rec)
    logger.info("reclamation %s moved to review by %s", rec.id, admin_id)
    return rec


def _amounts(db: Session, rec: Reclamation) -> tuple[Decimal, Decimal]:
    b = db.get(Booking, rec.booking_id)
    if not b:
        raise NotFoundError(f"booking {rec.booking_id} not found")
    prop = db.get(Property, b.property_id)
    deposit = prop.deposit_amount if prop else Decimal("0")
    return b.total_price, deposit


def expected_outcome(db: Session, rec: Reclamation) -> Outcome:
    rent, deposit = _amounts(db, rec)
    return compute_outcome(rec.complainant_role, rec.type, rec.severity, rent, deposit)


def resolve(db: Session, reclamation_id: str, notes: str | None, approved: bool, admin_id: str) -> Reclamation:
    """Close a reclamation under review. Approval applies the refund and penalty; refusal is a rejection."""
    if not approved:
        return reject(db, reclamation_id, notes, admin_id)
    rec = _get(db, reclamation_id, lock=True)
    target_status = next_status(rec.status, "resolve")
    outcome = expected_outcome(db, rec)

    rec.status = target_status.value
    rec.refund_amount = money(outcome.refund)
    rec.penalty_points = outcome.penalty_points
    rec.resolution_notes = (notes or "").strip()
    rec.resolved_at = _now()
    penalised = db.get(User, rec.target_user_id)
    if penalised and outcome.penalty_points:
        penalised.penalty_points = (penalised.penalty_points or 0) + outcome.penalty_points
    log_audit(db, admin_id, "reclamation.resolve", "reclamation", rec.id,
              {"refund": rec.refund_amount, "penaltyPoints": rec.penalty_points, "target": rec.target_user_id})
    db.commit()
    db.refresh(rec)
    logger.info("reclamation %s resolved: refund=%s penalty=%s", rec.id, rec.refund_amount, rec.penalty_points)
    return rec


def reject(db: Session, reclamation_id: str, notes: str | None, admin_id: str) -> Reclamation:
    if not notes or not notes.strip():
        raise ValidationError("rejection notes are required")
    rec = _get(db, reclamation_id, lock=True)
    rec.status = next_status(rec.status, "reject").value
    rec.refund_amount = None
    rec.penalty_points = None
    rec.resolution_notes = notes.strip()
    rec.resolved_at = _now()
    log_audit(db, admin_id, "reclamation.reject", "reclamation", rec.id, {"notes": rec.resolution_notes})
    db.commit()
    db.refresh(rec)
    logger.info("reclamation %s rejected by %s", rec.id, admin_id)
    return rec


def statistics(db: Session) -> dict:
    def grouped(col):
        return {k: int(n) for k, n in db.query(col, func.count(Reclamation.id)).group_by(col).all()}

    refunded = (
        db.query(func.coalesce(func.sum(Reclamation.refund_amount), 0))
        .filter(Reclamation.status == ReclamationStatus.RESOLVED.value)
        .scalar()
    )
    points = (
        db.query(func.coalesce(func.sum(Reclamation.penalty_points), 0))
        .filter(Reclamation.status == ReclamationStatus.RESOLVED.value)
        .scalar()
    )
    by_status = grouped(Reclamation.status)
    return {
        "total": sum(by_status.values()),
        "byStatus": {s.value: by_status.get(s.value, 0) for s in ReclamationStatus},
        "byType": grouped(Reclamation.type),
        "byRole": grouped(Reclamation.complainant_role),
        "totalRefunded": money(refunded or 0),
        "totalPenaltyPoints": int(points or 0),
    }
