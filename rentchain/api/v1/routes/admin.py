from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from rentchain.db.session import get_db
from rentchain.api.deps import require_roles
from rentchain.api.v1.routes.bookings import booking_out
from rentchain.api.v1.routes.reclamations import attachment_out, reclamation_out
from rentchain.domain.pricing import money
from rentchain.domain.reclamation_rules import ReclamationStatus
from rentchain.models.user import User
from rentchain.schemas.reclamation import (
    AdminReclamationOut,
    AttachmentOut,
    ExpectedOutcome,
    RejectRequest,
    ResolveRequest,
    SeverityUpdate,
)
from rentchain.services import booking_service as bookings
from rentchain.services import reclamation_service as reclamations
from rentchain.services import settlement_service as settlements

router = APIRouter(tags=["admin"])

admin_only = require_roles("ADMIN")


def _admin_view(db: Session, r) -> AdminReclamationOut:
    expected = None
    if r.status in (ReclamationStatus.OPEN.value, ReclamationStatus.IN_REVIEW.value):
        outcome = reclamations.expected_outcome(db, r)
        expected = ExpectedOutcome(refund=money(outcome.refund), penaltyPoints=outcome.penalty_points)
    return reclamation_out(db, r, cls=AdminReclamationOut, expected=expected)


# -------------------------
# BOOKINGS
# -------------------------
@router.get("/admin/bookings/all")
def admin_all_bookings(status: str | None = None, limit: int = 200, offset: int = 0,
                       db: Session = Depends(get_db), me: User = Depends(admin_only)):
    total, rows = bookings.all_bookings(db, status=status, limit=limit, offset=offset)
    return {"total": total, "items": [booking_out(b) for b in rows]}


# -------------------------
# RECLAMATIONS
# -------------------------
@router.get("/admin/reclamations", response_model=list[AdminReclamationOut])
def admin_list_reclamations(status: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return [_admin_view(db, r) for r in reclamations.list_reclamations(db, status)]


@router.get("/admin/reclamations/statistics")
def admin_reclamation_statistics(db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return reclamations.statistics(db)


@router.get("/admin/reclamations/{reclamation_id}", response_model=AdminReclamationOut)
def admin_get_reclamation(reclamation_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return _admin_view(db, reclamations.get_reclamation(db, reclamation_id))


@router.get("/admin/reclamations/{reclamation_id}/attachments", response_model=list[AttachmentOut])
def admin_reclamation_attachments(reclamation_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return [attachment_out(a) for a in reclamations.attachments(db, reclamation_id)]


@router.put("/admin/reclamations/{reclamation_id}/severity", response_model=AdminReclamationOut)
def admin_update_severity(reclamation_id: str, body: SeverityUpdate,
                          db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return _admin_view(db, reclamations.update_severity(db, reclamation_id, body.severity, me.id))


@router.post("/admin/reclamations/{reclamation_id}/review", response_model=AdminReclamationOut)
def admin_review(reclamation_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return _admin_view(db, reclamations.review(db, reclamation_id, me.id))


@router.post("/admin/reclamations/{reclamation_id}/resolve", response_model=AdminReclamationOut)
def admin_resolve(reclamation_id: str, body: ResolveRequest,
                  db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return _admin_view(db, reclamations.resolve(db, reclamation_id, body.notes, body.approved, me.id))


@router.post("/admin/reclamations/{reclamation_id}/reject", response_model=AdminReclamationOut)
def admin_reject(reclamation_id: str, body: RejectRequest,
                 db: Session = Depends(get_db), me: User = Depends(admin_only)):
    return _admin_view(db, reclamations.reject(db, reclamation_id, body.notes, me.id))


# -------------------------
# SETTLEMENTS
# -------------------------
@router.get("/admin/settlements")
def admin_list_settlements(status: str | None = None, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    jobs = settlements.list_settlements(db, status)
    return [{"bookingId": j.booking_id, **settlements.settlement_view(j)} for j in jobs]


@router.post("/admin/settlements/{booking_id}/retry")
def admin_retry_settlement(booking_id: str, db: Session = Depends(get_db), me: User = Depends(admin_only)):
    job = settlements.retry_settlement(db, booking_id)
    return {"bookingId": job.booking_id, **settlements.settlement_view(job)}
