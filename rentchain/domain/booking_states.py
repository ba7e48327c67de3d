"""Booking lifecycle.

Every status change a booking can make is listed in ``TRANSITIONS``; anything
not in the table is refused with ``InvalidTransitionError``.
"""
from enum import Enum
from typing import NamedTuple

from rentchain.core.errors import InvalidTransitionError, PermissionDeniedError, ValidationError


class BookingStatus(str, Enum):
    PENDING_NEGOTIATION = "PENDING_NEGOTIATION"
    PENDING_PAYMENT = "PENDING_PAYMENT"
    NEGOTIATION_REJECTED = "NEGOTIATION_REJECTED"
    CONFIRMED = "CONFIRMED"
    TENANT_CHECKED_OUT = "TENANT_CHECKED_OUT"
    COMPLETED = "COMPLETED"
    CANCELLED_BY_TENANT = "CANCELLED_BY_TENANT"
    CANCELLED_BY_HOST = "CANCELLED_BY_HOST"
    IN_DISPUTE = "IN_DISPUTE"


class BookingAction(str, Enum):
    ACCEPT_NEGOTIATION = "ACCEPT_NEGOTIATION"
    REJECT_NEGOTIATION = "REJECT_NEGOTIATION"
    RESUBMIT_PRICE = "RESUBMIT_PRICE"
    ACCEPT_LIST_PRICE = "ACCEPT_LIST_PRICE"
    CONFIRM_PAYMENT = "CONFIRM_PAYMENT"
    CANCEL = "CANCEL"
    HOST_CANCEL = "HOST_CANCEL"
    TENANT_CHECKOUT = "TENANT_CHECKOUT"
    OWNER_CONFIRM_CHECKOUT = "OWNER_CONFIRM_CHECKOUT"
    REPORT_DISPUTE = "REPORT_DISPUTE"


class Actor(str, Enum):
    TENANT = "TENANT"
    HOST = "HOST"
    EITHER = "EITHER"


class Transition(NamedTuple):
    target: BookingStatus
    actor: Actor


S = BookingStatus
A = BookingAction

TRANSITIONS: dict[tuple[BookingStatus, BookingAction], Transition] = {
    (S.PENDING_NEGOTIATION, A.ACCEPT_NEGOTIATION): Transition(S.CONFIRMED, Actor.HOST),
    (S.PENDING_NEGOTIATION, A.REJECT_NEGOTIATION): Transition(S.NEGOTIATION_REJECTED, Actor.HOST),
    (S.PENDING_NEGOTIATION, A.CANCEL): Transition(S.CANCELLED_BY_TENANT, Actor.TENANT),
    (S.PENDING_NEGOTIATION, A.HOST_CANCEL): Transition(S.CANCELLED_BY_HOST, Actor.HOST),
    (S.PENDING_NEGOTIATION, A.ACCEPT_LIST_PRICE): Transition(S.PENDING_PAYMENT, Actor.TENANT),
    (S.NEGOTIATION_REJECTED, A.RESUBMIT_PRICE): Transition(S.PENDING_NEGOTIATION, Actor.TENANT),
    (S.NEGOTIATION_REJECTED, A.ACCEPT_LIST_PRICE): Transition(S.PENDING_PAYMENT, Actor.TENANT),
    (S.NEGOTIATION_REJECTED, A.CANCEL): Transition(S.CANCELLED_BY_TENANT, Actor.TENANT),
    (S.PENDING_PAYMENT, A.CONFIRM_PAYMENT): Transition(S.CONFIRMED, Actor.TENANT),
    (S.PENDING_PAYMENT, A.CANCEL): Transition(S.CANCELLED_BY_TENANT, Actor.TENANT),
    (S.PENDING_PAYMENT, A.HOST_CANCEL): Transition(S.CANCELLED_BY_HOST, Actor.HOST),
    (S.CONFIRMED, A.TENANT_CHECKOUT): Transition(S.TENANT_CHECKED_OUT, Actor.TENANT),
    (S.CONFIRMED, A.REPORT_DISPUTE): Transition(S.IN_DISPUTE, Actor.EITHER),
    (S.TENANT_CHECKED_OUT, A.OWNER_CONFIRM_CHECKOUT): Transition(S.COMPLETED, Actor.HOST),
    (S.TENANT_CHECKED_OUT, A.REPORT_DISPUTE): Transition(S.IN_DISPUTE, Actor.EITHER),
}

TERMINAL_STATUSES = frozenset({S.COMPLETED, S.CANCELLED_BY_TENANT, S.CANCELLED_BY_HOST})
ACTIVE_STATUSES = frozenset({S.CONFIRMED, S.TENANT_CHECKED_OUT})
EDITABLE_STATUSES = frozenset({S.PENDING_PAYMENT, S.PENDING_NEGOTIATION, S.NEGOTIATION_REJECTED})

# Bookings that still hold a tenant's attention (for owner "current" views).
OPEN_STATUSES = frozenset(set(BookingStatus) - TERMINAL_STATUSES)

LEGACY_PENDING = "PENDING"


def normalize_status(raw: str, negotiation_percent=None) -> BookingStatus:
    """Map a stored status string onto the enum.

    Rows written before the negotiation split carry plain ``PENDING``; those
    with a non-zero requested discount were negotiations, the rest were waiting
    for payment.
    """
    value = (raw or "").strip().upper()
    if value == LEGACY_PENDING:
        if negotiation_percent:
            return S.PENDING_NEGOTIATION
        return S.PENDING_PAYMENT
    try:
        return BookingStatus(value)
    except ValueError:
        raise InvalidTransitionError(value or "<empty>", "read", f"unknown booking status {raw!r}")


def parse_status(raw: str) -> BookingStatus:
    """Read a status supplied by a caller, e.g. a list filter."""
    value = (raw or "").strip().upper()
    try:
        return BookingStatus(value)
    except ValueError:
        raise ValidationError(f"unknown booking status {raw!r}", allowed=[s.value for s in BookingStatus])


def allowed_actions(status: BookingStatus) -> list[BookingAction]:
    return [action for (src, action) in TRANSITIONS if src == status]


def transition(current: BookingStatus, action: BookingAction, actor: Actor) -> BookingStatus:
    """Return the status ``action`` leads to, or raise.

    ``actor`` is who is asking (TENANT or HOST). A pair that is not in the
    table is a state conflict; a known pair asked for by the wrong party is a
    permission error.
    """
    step = TRANSITIONS.get((current, action))
    if step is None:
        raise InvalidTransitionError(current.value, action.value)
    if step.actor is not Actor.EITHER and step.actor is not actor:
        raise PermissionDeniedError(
            f"{action.value} on a {current.value} booking is reserved to the {step.actor.value.lower()}",
            action=action.value,
        )
    return step.target
