"""Reclamation lifecycle and the refund / penalty matrix.

The matrix is one flat dict keyed by ``(role, type, severity)``. Rent-based
guest refunds keep back the platform fee (PLATFORM_FEE_PERCENT, 10% by default)
from the rent only; host compensation is drawn from the tenant's deposit with no
fee.
"""
from decimal import Decimal
from enum import Enum
from typing import NamedTuple

from rentchain.core.config import settings
from rentchain.core.errors import InvalidTransitionError
from rentchain.domain.pricing import to_decimal


class ReclamationStatus(str, Enum):
    OPEN = "OPEN"
    IN_REVIEW = "IN_REVIEW"
    RESOLVED = "RESOLVED"
    REJECTED = "REJECTED"


class ComplainantRole(str, Enum):
    GUEST = "GUEST"
    HOST = "HOST"


class ReclamationType(str, Enum):
    ACCESS_ISSUE = "ACCESS_ISSUE"
    NOT_AS_DESCRIBED = "NOT_AS_DESCRIBED"
    CLEANLINESS = "CLEANLINESS"
    SAFETY_HEALTH = "SAFETY_HEALTH"
    PROPERTY_DAMAGE = "PROPERTY_DAMAGE"
    EXTRA_CLEANING = "EXTRA_CLEANING"
    HOUSE_RULE_VIOLATION = "HOUSE_RULE_VIOLATION"
    UNAUTHORIZED_GUESTS_OR_STAY = "UNAUTHORIZED_GUESTS_OR_STAY"


class Severity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class Base(str, Enum):
    RENT = "RENT"
    RENT_PLUS_DEPOSIT = "RENT_PLUS_DEPOSIT"
    DEPOSIT = "DEPOSIT"


class PenaltyRule(NamedTuple):
    base: Base
    fraction: Decimal
    fee_factor: Decimal
    penalty_points: int


class Outcome(NamedTuple):
    refund: Decimal
    penalty_points: int


FIXED_SEVERITY_TYPES = frozenset({ReclamationType.ACCESS_ISSUE, ReclamationType.NOT_AS_DESCRIBED})
TERMINAL_STATUSES = frozenset({ReclamationStatus.RESOLVED, ReclamationStatus.REJECTED})
SEVERITY_EDITABLE_STATUSES = frozenset({ReclamationStatus.OPEN, ReclamationStatus.IN_REVIEW})

GUEST_TYPES = frozenset({
    ReclamationType.ACCESS_ISSUE,
    ReclamationType.NOT_AS_DESCRIBED,
    ReclamationType.CLEANLINESS,
    ReclamationType.SAFETY_HEALTH,
})
HOST_TYPES = frozenset(set(ReclamationType) - GUEST_TYPES)

# share of the rent a guest gets back once the platform keeps its fee
PLATFORM_FEE_FACTOR = 1 - Decimal(settings.PLATFORM_FEE_PERCENT) / 100
NO_FEE = Decimal("1")

R = ComplainantRole
T = ReclamationType
SEVERITIES = (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)


def _scaled(role, rtype, base, fee, fractions, points):
    return {
        (role, rtype, sev): PenaltyRule(base, Decimal(frac), fee, pts)
        for sev, frac, pts in zip(SEVERITIES, fractions, points)
    }


def _fixed(role, rtype, points):
    return {
        (role, rtype, sev): PenaltyRule(Base.RENT_PLUS_DEPOSIT, Decimal("1"), PLATFORM_FEE_FACTOR, points)
        for sev in SEVERITIES
    }


PENALTY_MATRIX: dict[tuple[ComplainantRole, ReclamationType, Severity], PenaltyRule] = {
    **_fixed(R.GUEST, T.ACCESS_ISSUE, 10),
    **_fixed(R.GUEST, T.NOT_AS_DESCRIBED, 10),
    **_scaled(R.GUEST, T.CLEANLINESS, Base.RENT, PLATFORM_FEE_FACTOR,
              ("0.05", "0.125", "0.325", "0.50"), (0, 2, 5, 10)),
    **_scaled(R.GUEST, T.SAFETY_HEALTH, Base.RENT, PLATFORM_FEE_FACTOR,
              ("0.10", "0.30", "0.70", "1.00"), (3, 7, 15, 25)),
    **_scaled(R.HOST, T.PROPERTY_DAMAGE, Base.DEPOSIT, NO_FEE,
              ("0.075", "0.30", "0.70", "1.00"), (2, 5, 10, 15)),
    **_scaled(R.HOST, T.EXTRA_CLEANING, Base.DEPOSIT, NO_FEE,
              ("0.075", "0.20", "0.40", "0.70"), (1, 3, 5, 8)),
    **_scaled(R.HOST, T.HOUSE_RULE_VIOLATION, Base.DEPOSIT, NO_FEE,
              ("0", "0.15", "0.50", "1.00"), (2, 5, 10, 15)),
    **_scaled(R.HOST, T.UNAUTHORIZED_GUESTS_OR_STAY, Base.DEPOSIT, NO_FEE,
              ("0.10", "0.325", "0.70", "1.00"), (3, 7, 12, 20)),
}

# Role/type pairs filed by the "wrong" side resolve to nothing.
DEFAULTED_PAIRS = frozenset(
    {(R.GUEST, t) for t in HOST_TYPES} | {(R.HOST, t) for t in GUEST_TYPES}
)

NO_OUTCOME = Outcome(Decimal("0"), 0)


def validate_penalty_matrix() -> None:
    """Every (role, type, severity) is either priced or explicitly defaulted."""
    for role in ComplainantRole:
        for rtype in ReclamationType:
            for sev in Severity:
                key = (role, rtype, sev)
                priced = key in PENALTY_MATRIX
                defaulted = (role, rtype) in DEFAULTED_PAIRS
                if priced == defaulted:
                    raise RuntimeError(f"penalty matrix is ambiguous or missing for {key}")


validate_penalty_matrix()


def compute_outcome(role, rtype, severity, rent, deposit) -> Outcome:
    """Refund (or host compensation) and penalty points for an approved reclamation.

    Pure and unrounded; callers quantise when persisting.
    """
    rule = PENALTY_MATRIX.get((ComplainantRole(role), ReclamationType(rtype), Severity(severity)))
    if rule is None:
        return NO_OUTCOME
    rent = to_decimal(rent)
    deposit = to_decimal(deposit)
    if rule.base is Base.RENT_PLUS_DEPOSIT:
        refund = rent * rule.fee_factor + deposit
    elif rule.base is Base.RENT:
        refund = rent * rule.fraction * rule.fee_factor
    else:
        refund = deposit * rule.fraction * rule.fee_factor
    return Outcome(refund, rule.penalty_points)


def is_fixed_severity(rtype) -> bool:
    return ReclamationType(rtype) in FIXED_SEVERITY_TYPES


RECLAMATION_TRANSITIONS = {
    (ReclamationStatus.OPEN, "review"): ReclamationStatus.IN_REVIEW,
    (ReclamationStatus.IN_REVIEW, "resolve"): ReclamationStatus.RESOLVED,
    (ReclamationStatus.IN_REVIEW, "reject"): ReclamationStatus.REJECTED,
}


def next_status(current, action: str) -> ReclamationStatus:
    target = RECLAMATION_TRANSITIONS.get((ReclamationStatus(current), action))
    if target is None:
        raise InvalidTransitionError(
            ReclamationStatus(current).value, action,
            f"cannot {action} a reclamation in status {ReclamationStatus(current).value}",
        )
    return target
