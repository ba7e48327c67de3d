import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from rentchain.core.config import settings
from rentchain.core.errors import (
    ActiveBookingExistsError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NegotiationExpiredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from rentchain.domain.booking_states import (
    ACTIVE_STATUSES,
    EDITABLE_STATUSES,
    LEGACY_PENDING,
    OPEN_STATUSES,
    Actor,
    BookingAction,
    BookingStatus,
    normalize_status,
    parse_status,
    transition,
)
from rentchain.domain.pricing import (
    StayQuote,
    is_negotiation,
    money,
    negotiation_percent,
    nights_between,
    price_acceptable,
    quote_stay,
    to_decimal,
)
from rentchain.models.booking import ACTIVE_BOOKING_INDEX, Booking
from rentchain.models.property import Property
from rentchain.models.settlement_job import SettlementJob
from rentchain.models.user import User
from rentchain.services.audit_service import log_audit
from rentchain.services.settlement_client import SettlementClient
from rentchain.services.settlement_service import queue_settlement

logger = logging.getLogger(__name__)

PRICE_TOO_LOW = "PRICE_TOO_LOW"


@dataclass
class BookingResult:
    """Outcome of create/update. ``rejected`` is a normal answer, not a failure."""
    status: str                      # created | updated | rejected
    booking: Booking | None = None
    error: str | None = None
    message: str = ""
    min_price: Decimal | None = None
    has_negotiation: bool = False

    @classmethod
    def price_too_low(cls, quote: StayQuote, booking: Booking | None = None) -> "BookingResult":
        floor = money(quote.min_negotiated_price)
        return cls(
            status="rejected",
            booking=booking,
            error=PRICE_TOO_LOW,
            message=f"requested price is below the minimum acceptable price of {floor}",
            min_price=floor,
        )


@dataclass
class CheckoutResult:
    booking: Booking
    settlement: SettlementJob | None = None

    @property
    def degraded(self) -> bool:
        return self.settlement is None or self.settlement.status != "sent"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes for timezone-aware columns
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def validate_dates(check_in: date, check_out: date) -> None:
    if check_in is None or check_out is None:
        raise ValidationError("check-in and check-out dates are required")
    if check_in < date.today():
        raise ValidationError("check-in date cannot be in the past", checkInDate=check_in.isoformat())
    if check_out <= check_in:
        raise ValidationError(
            "check-out date must be after check-in date",
            checkInDate=check_in.isoformat(),
            checkOutDate=check_out.isoformat(),
        )


def _validate_guests(guests: int, prop: Property) -> None:
    if guests is None or guests < 1:
        raise ValidationError("numberOfGuests must be >= 1")
    if prop.capacity and guests > prop.capacity:
        raise ValidationError(f"property accepts at most {prop.capacity} guests")


def _validate_requested_price(requested_price) -> None:
    # zero means "no offer"; a negative amount is never one
    if requested_price is not None and to_decimal(requested_price) < 0:
        raise ValidationError("requestedPrice cannot be negative", requestedPrice=str(requested_price))


def _get_property(db: Session, property_id: str) -> Property:
    prop = db.get(Property, property_id)
    if not prop:
        raise NotFoundError(f"property {property_id} not found")
    return prop


def _quote(prop: Property, check_in: date, check_out: date) -> StayQuote:
    return quote_stay(
        prop.daily_price,
        nights_between(check_in, check_out),
        bool(prop.discount_enabled),
        prop.negotiation_percentage,
    )


def _lock(db: Session, booking_id: str) -> Booking:
    # Row lock serialises competing transitions on the same booking.
    b = db.execute(
        select(Booking).where(Booking.id == booking_id).with_for_update()
    ).scalar_one_or_none()
    if not b:
        raise NotFoundError(f"booking {booking_id} not found")
    return b


def _actor(b: Booking, user_id: str) -> Actor:
    if user_id == b.tenant_id:
        return Actor.TENANT
    if user_id == b.owner_id:
        return Actor.HOST
    raise PermissionDeniedError("user is not a party to this booking", bookingId=b.id)


def current_status(b: Booking) -> BookingStatus:
    return normalize_status(b.status, b.requested_negotiation_percent)


def _ensure_no_active_booking(db: Session, b: Booking) -> None:
    other = db.execute(
        select(Booking.id)
        .where(
            Booking.tenant_id == b.tenant_id,
            Booking.id != b.id,
            Booking.status.in_([s.value for s in ACTIVE_STATUSES]),
        )
        .with_for_update()
    ).first()
    if other:
        raise ActiveBookingExistsError(
            "tenant already has a current booking",
            tenantId=b.tenant_id,
            currentBookingId=other[0],
        )


def _is_active_booking_clash(e: IntegrityError) -> bool:
    # postgres names the index; sqlite only names the indexed column
    msg = str(e.orig)
    return ACTIVE_BOOKING_INDEX in msg or "bookings.tenant_id" in msg


def _commit(db: Session, b: Booking) -> None:
    try:
        db.commit()
    except StaleDataError as e:
        db.rollback()
        raise ConcurrentModificationError("booking was modified concurrently, reload and retry", bookingId=b.id) from e
    except IntegrityError as e:
        db.rollback()
        if _is_active_booking_clash(e):
            raise ActiveBookingExistsError("tenant already has a current booking", tenantId=b.tenant_id) from e
        raise ValidationError("booking violates a storage constraint", bookingId=b.id, reason=str(e.orig)) from e
    db.refresh(b)


def _apply(db: Session, b: Booking, action: BookingAction, user_id: str, details: dict | None = None) -> BookingStatus:
    current = current_status(b)
    target = transition(current, action, _actor(b, user_id))
    if target in ACTIVE_STATUSES:
        _ensure_no_active_booking(db, b)
    b.status = target.value
    log_audit(db, user_id, f"booking.{action.value.lower()}", "booking", b.id,
              {"from": current.value, "to": target.value, **(details or {})})
    logger.info("booking %s: %s -> %s (%s by %s)", b.id, current.value, target.value, action.value, user_id)
    return target


def _open_negotiation(b: Booking, requested, quote: StayQuote) -> None:
    b.requested_price = money(requested)
    b.requested_negotiation_percent = negotiation_percent(requested, quote.list_price)
    b.negotiation_expires_at = _now() + timedelta(hours=settings.NEGOTIATION_TTL_HOURS)


def _clear_negotiation(b: Booking) -> None:
    b.requested_price = None
    b.requested_negotiation_percent = None
    b.negotiation_expires_at = None


# ---------------------------------------------------------------------------
# commands
# ---------------------------------------------------------------------------

def create_booking(db: Session, tenant_id: str, property_id: str, check_in: date, check_out: date,
                   guests: int = 1, requested_price=None) -> BookingResult:
    validate_dates(check_in, check_out)
    prop = _get_property(db, property_id)
    _validate_guests(guests, prop)
    _validate_requested_price(requested_price)
    if not db.get(User, tenant_id):
        raise NotFoundError(f"user {tenant_id} not found")
    if prop.owner_id == tenant_id:
        raise ValidationError("owners cannot book their own property")

    quote = _quote(prop, check_in, check_out)
    negotiating = is_negotiation(requested_price, quote)
    if negotiating and not price_acceptable(requested_price, quote):
        logger.info("booking request on %s by %s refused: %s", property_id, tenant_id, PRICE_TOO_LOW)
        return BookingResult.price_too_low(quote)

    b = Booking(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        property_id=prop.id,
        owner_id=prop.owner_id,
        check_in_date=check_in,
        check_out_date=check_out,
        number_of_guests=guests,
        list_price=money(quote.list_price),
        total_price=money(quote.list_price),
        long_stay_discount_percent=quote.discount_percent,
        status=(BookingStatus.PENDING_NEGOTIATION if negotiating else BookingStatus.PENDING_PAYMENT).value,
    )
    if negotiating:
        _open_negotiation(b, requested_price, quote)
    db.add(b)
    log_audit(db, tenant_id, "booking.create", "booking", b.id,
              {"status": b.status, "listPrice": b.list_price, "requestedPrice": b.requested_price})
    db.commit()
    db.refresh(b)
    logger.info("booking %s created for tenant %s in %s", b.id, tenant_id, b.status)
    return BookingResult(status="created", booking=b, has_negotiation=negotiating)


def accept_negotiation(db: Session, booking_id: str, owner_id: str) -> Booking:
    b = _lock(db, booking_id)
    current = current_status(b)
    transition(current, BookingAction.ACCEPT_NEGOTIATION, _actor(b, owner_id))
    expires = _aware(b.negotiation_expires_at)
    if expires is not None and expires < _now():
        raise NegotiationExpiredError("negotiation has expired", bookingId=b.id, expiredAt=expires.isoformat())
    _apply(db, b, BookingAction.ACCEPT_NEGOTIATION, owner_id, {"price": b.requested_price})
    if b.requested_price is not None:
        b.total_price = money(b.requested_price)
    b.negotiation_expires_at = None
    _commit(db, b)
    return b


def reject_negotiation(db: Session, booking_id: str, owner_id: str) -> Booking:
    b = _lock(db, booking_id)
    _apply(db, b, BookingAction.REJECT_NEGOTIATION, owner_id, {"price": b.requested_price})
    b.negotiation_expires_at = None
    _commit(db, b)
    return b


def update_booking(db: Session, booking_id: str, user_id: str, check_in: date | None = None,
                   check_out: date | None = None, guests: int | None = None, requested_price=None) -> BookingResult:
    """Edit dates/guests/price while the booking is still unpaid.

    Nothing is written when the new price is refused (PRICE_TOO_LOW).
    """
    b = _lock(db, booking_id)
    if _actor(b, user_id) is not Actor.TENANT:
        raise PermissionDeniedError("only the tenant can edit a booking", bookingId=b.id)
    current = current_status(b)
    if current not in EDITABLE_STATUSES:
        raise InvalidTransitionError(current.value, "UPDATE", f"cannot edit a booking in status {current.value}")

    new_in = check_in or b.check_in_date
    new_out = check_out or b.check_out_date
    validate_dates(new_in, new_out)
    prop = _get_property(db, b.property_id)
    new_guests = guests if guests is not None else b.number_of_guests
    _validate_guests(new_guests, prop)
    _validate_requested_price(requested_price)

    if current is BookingStatus.NEGOTIATION_REJECTED and requested_price is None:
        raise ValidationError("a new requested price is required after a rejected negotiation")

    offer = requested_price
    if offer is None and current is BookingStatus.PENDING_NEGOTIATION:
        offer = b.requested_price
    quote = _quote(prop, new_in, new_out)
    negotiating = is_negotiation(offer, quote)
    if negotiating and not price_acceptable(offer, quote):
        db.rollback()
        return BookingResult.price_too_low(quote, booking=b)
    if negotiating and current is BookingStatus.PENDING_PAYMENT:
        raise ValidationError("a booking awaiting payment cannot be renegotiated; cancel it and request again")

    if negotiating:
        if current is BookingStatus.NEGOTIATION_REJECTED:
            _apply(db, b, BookingAction.RESUBMIT_PRICE, user_id, {"price": money(offer)})
        _open_negotiation(b, offer, quote)
    elif current is not BookingStatus.PENDING_PAYMENT:
        _apply(db, b, BookingAction.ACCEPT_LIST_PRICE, user_id, {"price": money(quote.list_price)})
        _clear_negotiation(b)

    b.check_in_date = new_in
    b.check_out_date = new_out
    b.number_of_guests = new_guests
    b.list_price = money(quote.list_price)
    b.total_price = money(quote.list_price)
    b.long_stay_discount_percent = quote.discount_percent
    log_audit(db, user_id, "booking.update", "booking", b.id,
              {"checkIn": new_in.isoformat(), "checkOut": new_out.isoformat(), "guests": new_guests})
    _commit(db, b)
    return BookingResult(status="updated", booking=b, has_negotiation=negotiating)


def cancel_booking(db: Session, booking_id: str, user_id: str) -> Booking:
    b = _lock(db, booking_id)
    action = BookingAction.CANCEL if _actor(b, user_id) is Actor.TENANT else BookingAction.HOST_CANCEL
    _apply(db, b, action, user_id)
    _clear_negotiation(b)
    _commit(db, b)
    return b


def confirm_payment(db: Session, booking_id: str, tenant_id: str, transaction_hash: str | None = None) -> Booking:
    b = _lock(db, booking_id)
    _apply(db, b, BookingAction.CONFIRM_PAYMENT, tenant_id, {"tx": transaction_hash})
    if transaction_hash:
        b.transaction_hash = transaction_hash
    _commit(db, b)
    return b


def tenant_checkout(db: Session, booking_id: str, tenant_id: str) -> Booking:
    b = _lock(db, booking_id)
    _apply(db, b, BookingAction.TENANT_CHECKOUT, tenant_id)
    _commit(db, b)
    return b


def owner_confirm_checkout(db: Session, booking_id: str, owner_id: str,
                           client: SettlementClient | None = None) -> CheckoutResult:
    """Complete the stay, then hand the payout to the settlement layer.

    The status change is committed on its own; a payout failure leaves the
    booking COMPLETED with a failed settlement job that can be retried.
    """
    b = _lock(db, booking_id)
    _apply(db, b, BookingAction.OWNER_CONFIRM_CHECKOUT, owner_id)
    _commit(db, b)
    job = queue_settlement(db, b.id, client)
    return CheckoutResult(booking=b, settlement=job)


def report_dispute(db: Session, booking_id: str, user_id: str) -> Booking:
    b = _lock(db, booking_id)
    _apply(db, b, BookingAction.REPORT_DISPUTE, user_id)
    _commit(db, b)
    return b


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------

def get_booking(db: Session, booking_id: str) -> Booking:
    b = db.get(Booking, booking_id)
    if not b:
        raise NotFoundError(f"booking {booking_id} not found")
    return b


def bookings_for_tenant(db: Session, tenant_id: str) -> list[Booking]:
    return db.query(Booking).filter(Booking.tenant_id == tenant_id).order_by(Booking.created_at.desc()).all()


def current_booking_for_tenant(db: Session, tenant_id: str) -> Booking | None:
    return (
        db.query(Booking)
        .filter(Booking.tenant_id == tenant_id, Booking.status.in_([s.value for s in ACTIVE_STATUSES]))
        .first()
    )


def _in_statuses(q, wanted: frozenset[BookingStatus]) -> list[Booking]:
    """Filter by status, reading legacy PENDING rows through normalize_status."""
    stored = [s.value for s in wanted]
    if wanted & {BookingStatus.PENDING_NEGOTIATION, BookingStatus.PENDING_PAYMENT}:
        stored.append(LEGACY_PENDING)
    rows = q.filter(Booking.status.in_(stored)).all()
    return [b for b in rows if current_status(b) in wanted]


def pending_bookings_for_tenant(db: Session, tenant_id: str) -> list[Booking]:
    q = db.query(Booking).filter(Booking.tenant_id == tenant_id).order_by(Booking.created_at.desc())
    return _in_statuses(q, frozenset({BookingStatus.PENDING_NEGOTIATION}))


def awaiting_payment_for_tenant(db: Session, tenant_id: str) -> list[Booking]:
    q = db.query(Booking).filter(Booking.tenant_id == tenant_id).order_by(Booking.created_at.desc())
    return _in_statuses(q, frozenset({BookingStatus.PENDING_PAYMENT}))


OWNER_SCOPES = {
    "all": None,
    "current": OPEN_STATUSES,
    "confirmed": frozenset({BookingStatus.CONFIRMED}),
    "pending-negotiations": frozenset({BookingStatus.PENDING_NEGOTIATION}),
}


def bookings_for_owner(db: Session, owner_id: str, scope: str = "all") -> list[Booking]:
    if scope not in OWNER_SCOPES:
        raise ValidationError(f"unknown scope {scope!r}", allowed=sorted(OWNER_SCOPES))
    q = db.query(Booking).filter(Booking.owner_id == owner_id).order_by(Booking.check_in_date.asc())
    wanted = OWNER_SCOPES[scope]
    if wanted is None:
        return q.all()
    return _in_statuses(q, wanted)


def confirmed_bookings_for_property(db: Session, property_id: str) -> list[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.property_id == property_id, Booking.status == BookingStatus.CONFIRMED.value)
        .order_by(Booking.check_in_date.asc())
        .all()
    )


def all_bookings(db: Session, status: str | None = None, limit: int = 200, offset: int = 0) -> tuple[int, list[Booking]]:
    q = db.query(Booking)
    if status:
        q = q.filter(Booking.status == parse_status(status).value)
    total = q.count()
    rows = q.order_by(Booking.created_at.desc()).limit(min(limit, 500)).offset(max(offset, 0)).all()
    return total, rows
