import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from rentchain.core.errors import (
    ActiveBookingExistsError,
    ConcurrentModificationError,
    InvalidTransitionError,
    NegotiationExpiredError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from rentchain.domain.booking_states import BookingStatus
from rentchain.models.audit_log import AuditLog
from rentchain.models.booking import Booking
from rentchain.services import booking_service as svc

from conftest import stay


def test_full_price_request_waits_for_payment(db, book, tenant):
    b = book(tenant)
    assert b.status == BookingStatus.PENDING_PAYMENT.value
    assert b.list_price == Decimal("300.00")
    assert b.total_price == Decimal("300.00")
    assert b.requested_price is None
    assert b.negotiation_expires_at is None


def test_long_stay_discount_is_applied(db, book, tenant):
    b = book(tenant, nights=6)
    assert b.long_stay_discount_percent == 10
    assert b.total_price == Decimal("540.00")


def test_counter_offer_opens_negotiation(db, book, tenant):
    b = book(tenant, requested_price=Decimal("250"))
    assert b.status == BookingStatus.PENDING_NEGOTIATION.value
    assert b.requested_price == Decimal("250.00")
    assert b.requested_negotiation_percent == Decimal("16.67")
    assert b.negotiation_expires_at is not None
    assert b.total_price == Decimal("300.00")


def test_offer_below_floor_is_refused_without_writing(db, prop, tenant):
    check_in, check_out = stay()
    result = svc.create_booking(db, tenant.id, prop.id, check_in, check_out, requested_price=Decimal("239.99"))
    assert result.status == "rejected"
    assert result.error == svc.PRICE_TOO_LOW
    assert result.min_price == Decimal("240.00")
    assert result.booking is None
    assert db.query(Booking).count() == 0


def test_edit_below_floor_leaves_booking_untouched(db, book, tenant):
    b = book(tenant, requested_price=Decimal("250"))
    version = b.version
    result = svc.update_booking(db, b.id, tenant.id, requested_price=Decimal("100"))
    assert result.error == svc.PRICE_TOO_LOW
    db.refresh(b)
    assert b.requested_price == Decimal("250.00")
    assert b.status == BookingStatus.PENDING_NEGOTIATION.value
    assert b.version == version


def test_past_check_in_is_refused(db, prop, tenant):
    yesterday = date.today() - timedelta(days=1)
    with pytest.raises(ValidationError):
        svc.create_booking(db, tenant.id, prop.id, yesterday, yesterday + timedelta(days=3))


def test_check_out_must_follow_check_in(db, prop, tenant):
    check_in, _ = stay()
    with pytest.raises(ValidationError):
        svc.create_booking(db, tenant.id, prop.id, check_in, check_in)


def test_too_many_guests(db, prop, tenant):
    check_in, check_out = stay()
    with pytest.raises(ValidationError):
        svc.create_booking(db, tenant.id, prop.id, check_in, check_out, guests=9)


def test_owner_cannot_book_own_property(db, prop, host):
    check_in, check_out = stay()
    with pytest.raises(ValidationError):
        svc.create_booking(db, host.id, prop.id, check_in, check_out)


def test_unknown_property(db, tenant):
    check_in, check_out = stay()
    with pytest.raises(NotFoundError):
        svc.create_booking(db, tenant.id, "missing", check_in, check_out)


def test_accepting_negotiation_confirms_at_requested_price(db, book, tenant, host):
    b = book(tenant, requested_price=Decimal("250"))
    b = svc.accept_negotiation(db, b.id, host.id)
    assert b.status == BookingStatus.CONFIRMED.value
    assert b.total_price == Decimal("250.00")
    assert svc.current_booking_for_tenant(db, tenant.id).id == b.id


def test_tenant_cannot_accept_own_offer(db, book, tenant):
    b = book(tenant, requested_price=Decimal("250"))
    with pytest.raises(PermissionDeniedError):
        svc.accept_negotiation(db, b.id, tenant.id)


def test_expired_negotiation_cannot_be_accepted(db, book, tenant, host):
    b = book(tenant, requested_price=Decimal("250"))
    b.negotiation_expires_at = datetime.now(timezone.utc) - timedelta(minutes=1)
    db.commit()
    with pytest.raises(NegotiationExpiredError):
        svc.accept_negotiation(db, b.id, host.id)
    db.rollback()
    assert svc.get_booking(db, b.id).status == BookingStatus.PENDING_NEGOTIATION.value


def test_rejected_negotiation_needs_a_new_price(db, book, tenant, host):
    b = book(tenant, requested_price=Decimal("250"))
    b = svc.reject_negotiation(db, b.id, host.id)
    assert b.status == BookingStatus.NEGOTIATION_REJECTED.value

    with pytest.raises(ValidationError):
        svc.update_booking(db, b.id, tenant.id)
    db.rollback()

    result = svc.update_booking(db, b.id, tenant.id, requested_price=Decimal("270"))
    assert result.status == "updated"
    assert result.has_negotiation
    assert result.booking.status == BookingStatus.PENDING_NEGOTIATION.value
    assert result.booking.requested_price == Decimal("270.00")


def test_tenant_can_fall_back_to_list_price(db, book, tenant, host):
    b = book(tenant, requested_price=Decimal("250"))
    svc.reject_negotiation(db, b.id, host.id)
    result = svc.update_booking(db, b.id, tenant.id, requested_price=Decimal("300"))
    assert result.booking.status == BookingStatus.PENDING_PAYMENT.value
    assert result.booking.requested_price is None
    assert result.booking.total_price == Decimal("300.00")


def test_awaiting_payment_cannot_be_renegotiated(db, book, tenant):
    b = book(tenant)
    with pytest.raises(ValidationError):
        svc.update_booking(db, b.id, tenant.id, requested_price=Decimal("260"))


def test_edit_dates_requotes(db, book, tenant):
    b = book(tenant)
    check_in, check_out = stay(nights=6)
    result = svc.update_booking(db, b.id, tenant.id, check_in=check_in, check_out=check_out)
    assert result.booking.total_price == Decimal("540.00")
    assert result.booking.status == BookingStatus.PENDING_PAYMENT.value


def test_only_tenant_edits(db, book, tenant, host):
    b = book(tenant)
    with pytest.raises(PermissionDeniedError):
        svc.update_booking(db, b.id, host.id, requested_price=Decimal("300"))


def test_confirmed_booking_cannot_be_edited(db, confirmed, tenant):
    with pytest.raises(InvalidTransitionError):
        svc.update_booking(db, confirmed.id, tenant.id, requested_price=Decimal("300"))


def test_stranger_is_refused(db, book, tenant, other_tenant):
    b = book(tenant)
    with pytest.raises(PermissionDeniedError):
        svc.cancel_booking(db, b.id, other_tenant.id)


def test_cancel_by_each_side(db, book, tenant, host):
    first = book(tenant)
    assert svc.cancel_booking(db, first.id, tenant.id).status == BookingStatus.CANCELLED_BY_TENANT.value
    second = book(tenant)
    assert svc.cancel_booking(db, second.id, host.id).status == BookingStatus.CANCELLED_BY_HOST.value


def test_confirmed_booking_cannot_be_cancelled(db, confirmed, tenant):
    with pytest.raises(InvalidTransitionError):
        svc.cancel_booking(db, confirmed.id, tenant.id)


def test_one_current_booking_per_tenant(db, book, tenant, host):
    first = book(tenant)
    second = book(tenant, start_in_days=30)
    svc.confirm_payment(db, first.id, tenant.id)

    with pytest.raises(ActiveBookingExistsError):
        svc.confirm_payment(db, second.id, tenant.id)
    db.rollback()
    assert svc.get_booking(db, second.id).status == BookingStatus.PENDING_PAYMENT.value

    svc.tenant_checkout(db, first.id, tenant.id)
    svc.owner_confirm_checkout(db, first.id, host.id)
    assert svc.confirm_payment(db, second.id, tenant.id).status == BookingStatus.CONFIRMED.value


def test_storage_rejects_a_second_current_booking(db, prop, tenant):
    check_in, check_out = stay()
    for _ in range(2):
        db.add(Booking(
            id=str(uuid.uuid4()),
            tenant_id=tenant.id,
            property_id=prop.id,
            owner_id=prop.owner_id,
            check_in_date=check_in,
            check_out_date=check_out,
            status=BookingStatus.CONFIRMED.value,
        ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_stale_write_surfaces_as_concurrent_modification():
    class StaleSession:
        rolled_back = False

        def commit(self):
            raise StaleDataError("version mismatch")

        def rollback(self):
            self.rolled_back = True

    session = StaleSession()
    with pytest.raises(ConcurrentModificationError):
        svc._commit(session, Booking(id="b-1", tenant_id="t-1"))
    assert session.rolled_back


def test_checkout_flow_and_dispute(db, book, tenant, host):
    b = book(tenant)
    svc.confirm_payment(db, b.id, tenant.id, "0xabc")
    b = svc.tenant_checkout(db, b.id, tenant.id)
    assert b.status == BookingStatus.TENANT_CHECKED_OUT.value
    with pytest.raises(PermissionDeniedError):
        svc.owner_confirm_checkout(db, b.id, tenant.id)
    db.rollback()
    b = svc.report_dispute(db, b.id, host.id)
    assert b.status == BookingStatus.IN_DISPUTE.value


def test_payment_stores_transaction_hash(db, confirmed):
    assert confirmed.transaction_hash == "0xpaid"
    assert confirmed.status == BookingStatus.CONFIRMED.value


def test_completed_booking_cannot_be_paid_again(db, confirmed, tenant, host):
    svc.tenant_checkout(db, confirmed.id, tenant.id)
    svc.owner_confirm_checkout(db, confirmed.id, host.id)
    with pytest.raises(InvalidTransitionError):
        svc.confirm_payment(db, confirmed.id, tenant.id)


def test_transitions_are_audited(db, confirmed, tenant):
    actions = {a.action for a in db.query(AuditLog).filter(AuditLog.entity_id == confirmed.id)}
    assert {"booking.create", "booking.confirm_payment"} <= actions


def test_legacy_pending_rows_are_read_by_negotiation_percent(db, prop, tenant):
    check_in, check_out = stay()
    for pct in (Decimal("10"), None):
        db.add(Booking(
            id=str(uuid.uuid4()),
            tenant_id=tenant.id,
            property_id=prop.id,
            owner_id=prop.owner_id,
            check_in_date=check_in,
            check_out_date=check_out,
            requested_negotiation_percent=pct,
            status="PENDING",
        ))
    db.commit()
    assert len(svc.pending_bookings_for_tenant(db, tenant.id)) == 1
    assert len(svc.awaiting_payment_for_tenant(db, tenant.id)) == 1


def test_owner_views(db, book, tenant, other_tenant, host):
    negotiating = book(tenant, requested_price=Decimal("250"))
    paid = book(other_tenant)
    svc.confirm_payment(db, paid.id, other_tenant.id)

    assert {b.id for b in svc.bookings_for_owner(db, host.id, "all")} == {negotiating.id, paid.id}
    assert [b.id for b in svc.bookings_for_owner(db, host.id, "confirmed")] == [paid.id]
    assert [b.id for b in svc.bookings_for_owner(db, host.id, "pending-negotiations")] == [negotiating.id]
    assert [b.id for b in svc.confirmed_bookings_for_property(db, paid.property_id)] == [paid.id]
    with pytest.raises(ValidationError):
        svc.bookings_for_owner(db, host.id, "archived")


class FailingSession:
    def __init__(self, orig):
        self.orig = orig
        self.rolled_back = False

    def commit(self):
        raise IntegrityError("UPDATE bookings", {}, self.orig)

    def rollback(self):
        self.rolled_back = True


def test_check_constraint_failure_is_not_an_active_booking_clash():
    session = FailingSession(Exception("CHECK constraint failed: ck_bookings_total_price"))
    with pytest.raises(ValidationError) as exc:
        svc._commit(session, Booking(id="b-1", tenant_id="t-1"))
    assert "ck_bookings_total_price" in exc.value.context["reason"]
    assert session.rolled_back


@pytest.mark.parametrize("message", [
    'duplicate key value violates unique constraint "uq_bookings_tenant_active"',
    "UNIQUE constraint failed: bookings.tenant_id",
])
def test_current_booking_index_clash_is_recognised(message):
    with pytest.raises(ActiveBookingExistsError):
        svc._commit(FailingSession(Exception(message)), Booking(id="b-1", tenant_id="t-1"))


def test_negative_requested_price_is_refused(db, prop, book, tenant):
    check_in, check_out = stay()
    with pytest.raises(ValidationError):
        svc.create_booking(db, tenant.id, prop.id, check_in, check_out, requested_price=Decimal("-10"))
    assert db.query(Booking).count() == 0

    b = book(tenant, requested_price=Decimal("250"))
    with pytest.raises(ValidationError):
        svc.update_booking(db, b.id, tenant.id, requested_price=Decimal("-1"))


def test_owner_views_read_legacy_pending_rows(db, prop, tenant, other_tenant, host):
    check_in, check_out = stay()
    negotiating, awaiting = str(uuid.uuid4()), str(uuid.uuid4())
    for booking_id, user, pct in ((negotiating, tenant, Decimal("10")), (awaiting, other_tenant, None)):
        db.add(Booking(
            id=booking_id,
            tenant_id=user.id,
            property_id=prop.id,
            owner_id=prop.owner_id,
            check_in_date=check_in,
            check_out_date=check_out,
            requested_negotiation_percent=pct,
            status="PENDING",
        ))
    db.commit()
    assert [b.id for b in svc.bookings_for_owner(db, host.id, "pending-negotiations")] == [negotiating]
    assert {b.id for b in svc.bookings_for_owner(db, host.id, "current")} == {negotiating, awaiting}
    assert svc.bookings_for_owner(db, host.id, "confirmed") == []
