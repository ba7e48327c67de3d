from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from rentchain.api.deps import acting_user_id, ensure_visible, get_current_user
from rentchain.db.session import get_db
from rentchain.domain.booking_states import allowed_actions
from rentchain.models.booking import Booking
from rentchain.models.user import User
from rentchain.schemas.booking import (
    BookingCreate,
    BookingOut,
    BookingResultOut,
    BookingUpdate,
    CheckoutOut,
    PaymentConfirm,
    SettlementOut,
)
from rentchain.services import booking_service as bookings
from rentchain.services.booking_service import BookingResult
from rentchain.services.settlement_service import settlement_view

router = APIRouter(tags=["bookings"])


def booking_out(b: Booking) -> BookingOut:
    status = bookings.current_status(b)
    return BookingOut(
        id=b.id,
        tenantId=b.tenant_id,
        propertyId=b.property_id,
        ownerId=b.owner_id,
        checkInDate=b.check_in_date,
        checkOutDate=b.check_out_date,
        numberOfGuests=b.number_of_guests,
        listPrice=b.list_price,
        totalPrice=b.total_price,
        longStayDiscountPercent=b.long_stay_discount_percent or 0,
        requestedPrice=b.requested_price,
        requestedNegotiationPercent=b.requested_negotiation_percent,
        negotiationExpiresAt=b.negotiation_expires_at.isoformat() if b.negotiation_expires_at else None,
        transactionHash=b.transaction_hash,
        status=status.value,
        allowedActions=[a.value for a in allowed_actions(status)],
        createdAt=b.created_at.isoformat() if b.created_at else None,
    )


def result_out(r: BookingResult) -> BookingResultOut:
    return BookingResultOut(
        status=r.status,
        booking=booking_out(r.booking) if r.booking is not None else None,
        error=r.error,
        message=r.message,
        minPrice=r.min_price,
        hasNegotiation=r.has_negotiation,
    )


@router.post("/bookings/request", response_model=BookingResultOut)
def request_booking(body: BookingCreate, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = bookings.create_booking(
        db,
        tenant_id=acting_user_id(me, body.userId),
        property_id=body.propertyId,
        check_in=body.checkInDate,
        check_out=body.checkOutDate,
        guests=body.numberOfGuests,
        requested_price=body.requestedPrice,
    )
    return result_out(result)


@router.get("/bookings", response_model=list[BookingOut])
def list_bookings(tenantId: str | None = None, ownerId: str | None = None, propertyId: str | None = None,
                  me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    if tenantId:
        ensure_visible(me, tenantId)
        rows = bookings.bookings_for_tenant(db, tenantId)
    elif ownerId:
        ensure_visible(me, ownerId)
        rows = bookings.bookings_for_owner(db, ownerId)
    elif propertyId:
        # confirmed stays only; used for the availability calendar
        rows = bookings.confirmed_bookings_for_property(db, propertyId)
    else:
        raise HTTPException(status_code=400, detail="tenantId, ownerId or propertyId required")
    return [booking_out(b) for b in rows]


@router.get("/bookings/tenant/{tenant_id}/current", response_model=BookingOut | None)
def tenant_current(tenant_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_visible(me, tenant_id)
    b = bookings.current_booking_for_tenant(db, tenant_id)
    return booking_out(b) if b else None


@router.get("/bookings/tenant/{tenant_id}/pending", response_model=list[BookingOut])
def tenant_pending(tenant_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_visible(me, tenant_id)
    return [booking_out(b) for b in bookings.pending_bookings_for_tenant(db, tenant_id)]


@router.get("/bookings/tenant/{tenant_id}/awaiting-payment", response_model=list[BookingOut])
def tenant_awaiting_payment(tenant_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_visible(me, tenant_id)
    return [booking_out(b) for b in bookings.awaiting_payment_for_tenant(db, tenant_id)]


@router.get("/bookings/owner/{owner_id}/{scope}", response_model=list[BookingOut])
def owner_bookings(owner_id: str, scope: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    ensure_visible(me, owner_id)
    return [booking_out(b) for b in bookings.bookings_for_owner(db, owner_id, scope)]


@router.get("/bookings/{booking_id}", response_model=BookingOut)
def get_booking(booking_id: str, me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    b = bookings.get_booking(db, booking_id)
    ensure_visible(me, b.tenant_id, b.owner_id)
    return booking_out(b)


@router.put("/bookings/{booking_id}", response_model=BookingResultOut)
def update_booking(booking_id: str, body: BookingUpdate, userId: str | None = None,
                   me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = bookings.update_booking(
        db,
        booking_id,
        acting_user_id(me, userId),
        check_in=body.checkInDate,
        check_out=body.checkOutDate,
        guests=body.numberOfGuests,
        requested_price=body.requestedPrice,
    )
    return result_out(result)


@router.delete("/bookings/{booking_id}", response_model=BookingOut)
def cancel_booking(booking_id: str, userId: str | None = None,
                   me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return booking_out(bookings.cancel_booking(db, booking_id, acting_user_id(me, userId)))


@router.post("/bookings/{booking_id}/accept", response_model=BookingOut)
def accept_negotiation(booking_id: str, ownerId: str | None = None,
                       me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return booking_out(bookings.accept_negotiation(db, booking_id, acting_user_id(me, ownerId)))


@router.post("/bookings/{booking_id}/reject", response_model=BookingOut)
def reject_negotiation(booking_id: str, ownerId: str | None = None,
                       me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return booking_out(bookings.reject_negotiation(db, booking_id, acting_user_id(me, ownerId)))


@router.post("/bookings/{booking_id}/payment", response_model=BookingOut)
def confirm_payment(booking_id: str, body: PaymentConfirm, userId: str | None = None,
                    me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    tenant_id = acting_user_id(me, userId)
    return booking_out(bookings.confirm_payment(db, booking_id, tenant_id, body.transactionHash or None))


@router.post("/bookings/{booking_id}/checkout/tenant", response_model=BookingOut)
def tenant_checkout(booking_id: str, userId: str | None = None,
                    me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return booking_out(bookings.tenant_checkout(db, booking_id, acting_user_id(me, userId)))


@router.post("/bookings/{booking_id}/checkout/owner", response_model=CheckoutOut)
def owner_confirm_checkout(booking_id: str, userId: str | None = None,
                           me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    result = bookings.owner_confirm_checkout(db, booking_id, acting_user_id(me, userId))
    return CheckoutOut(
        booking=booking_out(result.booking),
        settlement=SettlementOut(**settlement_view(result.settlement)),
        degraded=result.degraded,
    )


@router.post("/bookings/{booking_id}/dispute", response_model=BookingOut)
def report_dispute(booking_id: str, userId: str | None = None,
                   me: User = Depends(get_current_user), db: Session = Depends(get_db)):
    return booking_out(bookings.report_dispute(db, booking_id, acting_user_id(me, userId)))
