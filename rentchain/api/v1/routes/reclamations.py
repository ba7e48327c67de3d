from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from rentchain.api.deps import acting_user_id, ensure_visible, get_current_user
from rentchain.db.session import get_db
from rentchain.domain.reclamation_rules import is_fixed_severity
from rentchain.models.reclamation import Reclamation, ReclamationAttachment
from rentchain.models.user import User
from rentchain.schemas.reclamation import AttachmentOut, ReclamationOut
from rentchain.services import reclamation_service as reclamations

router = APIRouter(tags=["reclamations"])


def _uploads(files: list[UploadFile] | None) -> list[tuple[str, bytes, str]]:
    return [(f.filename or "", f.file.read(), f.content_type or "") for f in (files or []) if f.filename]


def attachment_url(att: ReclamationAttachment) -> str:
    return f"/api/v1/reclamations/{att.reclamation_id}/attachments/{att.filename}"


def reclamation_out(db: Session, r: Reclamation, cls=ReclamationOut, **extra):
    atts = (
        db.query(ReclamationAttachment)
        .filter(ReclamationAttachment.reclamation_id == r.id)
        .order_by(ReclamationAttachment.created_at.asc())
        .all()
    )
    return cls(
        id=r.id,
        bookingId=r.booking_id,
        complainantId=r.complainant_id,
        complainantRole=r.complainant_role,
        targetUserId=r.target_user_id,
        type=r.type,
        title=r.title or "",
        description=r.description or "",
        status=r.status,
        severity=r.severity,
        fixedSeverity=is_fixed_severity(r.type),
        refundAmount=r.refund_amount,
        penaltyPoints=r.penalty_points,
        resolutionNotes=r.resolution_notes,
        createdAt=r.created_at.isoformat() if r.created_at else None,
        updatedAt=r.updated_at.isoformat() if r.updated_at else None,
        resolvedAt=r.resolved_at.isoformat() if r.resolved_at else None,
        attachments=[attachment_url(a) for a in atts],
        **extra,
    )


def attachment_out(att: ReclamationAttachment) -> AttachmentOut:
    return AttachmentOut(
        id=att.id,
        filename=att.filename,
        originalName=att.original_name,
        contentType=att.content_type,
        url=attachment_url(att),
    )


@router.post("/reclamations/create", response_model=ReclamationOut)
def create_reclamation(
    bookingId: str = Form(...),
    complainantRole: str = Form(...),
    reclamationType: str = Form(...),
    userId: str | None = Form(None),
    title: str | None = Form(None),
    description: str | None = Form(None),
    files: list[UploadFile] | None = File(None),
    me: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rec = reclamations.create_reclamation(
        db, bookingId, acting_user_id(me, userId), complainantRole, reclamationType,
        title=title, description=description, files=_uploads(files),
    )
    return reclamation_out(db, rec)


@router.get("/reclamations/my-complaints", response_model=list[ReclamationOut])
def my_complaints(userId: str | None = None, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [reclamation_out(db, r) for r in reclamations.my_complaints(db, acting_user_id(me, userId))]


@router.get("/reclamations/against-me", response_model=list[ReclamationOut])
def against_me(userId: str | None = None, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return [reclamation_out(db, r) for r in reclamations.complaints_against(db, acting_user_id(me, userId))]


@router.get("/reclamations/booking/{booking_id}/complainant/{complainant_id}", response_model=ReclamationOut)
def by_booking_and_complainant(booking_id: str, complainant_id: str,
                               me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rec = reclamations.get_by_booking_and_complainant(db, booking_id, complainant_id)
    ensure_visible(me, rec.complainant_id, rec.target_user_id)
    return reclamation_out(db, rec)


@router.get("/reclamations/user/{user_id}/phone")
def user_phone(user_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return {"phoneNumber": reclamations.user_phone(db, user_id)}


@router.get("/reclamations/{reclamation_id}", response_model=ReclamationOut)
def get_reclamation(reclamation_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rec = reclamations.get_reclamation(db, reclamation_id)
    ensure_visible(me, rec.complainant_id, rec.target_user_id)
    return reclamation_out(db, rec)


@router.put("/reclamations/{reclamation_id}", response_model=ReclamationOut)
def update_reclamation(
    reclamation_id: str,
    userId: str | None = Form(None),
    title: str | None = Form(None),
    description: str | None = Form(None),
    files: list[UploadFile] | None = File(None),
    me: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rec = reclamations.update_reclamation(
        db, reclamation_id, acting_user_id(me, userId), title=title, description=description, files=_uploads(files),
    )
    return reclamation_out(db, rec)


@router.delete("/reclamations/{reclamation_id}")
def delete_reclamation(reclamation_id: str, userId: str | None = None,
                       me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    reclamations.delete_reclamation(db, reclamation_id, acting_user_id(me, userId))
    return {"ok": True}


@router.get("/reclamations/{reclamation_id}/attachments", response_model=list[AttachmentOut])
def list_attachments(reclamation_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rec = reclamations.get_reclamation(db, reclamation_id)
    ensure_visible(me, rec.complainant_id, rec.target_user_id)
    return [attachment_out(a) for a in reclamations.attachments(db, reclamation_id)]


@router.get("/reclamations/{reclamation_id}/attachments/{filename}")
def download_attachment(reclamation_id: str, filename: str,
                        me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rec = reclamations.get_reclamation(db, reclamation_id)
    ensure_visible(me, rec.complainant_id, rec.target_user_id)
    att = (
        db.query(ReclamationAttachment)
        .filter(ReclamationAttachment.reclamation_id == reclamation_id, ReclamationAttachment.filename == filename)
        .first()
    )
    if not att:
        raise HTTPException(status_code=404, detail="Not found")
    return FileResponse(path=reclamations.attachment_path(att), media_type=att.content_type, filename=att.original_name or att.filename)
