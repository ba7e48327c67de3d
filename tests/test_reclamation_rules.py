from decimal import Decimal

import pytest
from pydantic import ValidationError as SettingsError

from rentchain.core.config import Settings, settings
from rentchain.core.errors import InvalidTransitionError
from rentchain.domain.pricing import money
from rentchain.domain.reclamation_rules import (
    PENALTY_MATRIX,
    PLATFORM_FEE_FACTOR,
    ComplainantRole,
    ReclamationStatus,
    ReclamationType,
    Severity,
    compute_outcome,
    is_fixed_severity,
    next_status,
    validate_penalty_matrix,
)

RENT = Decimal("1000")
DEPOSIT = Decimal("500")


def outcome(role, rtype, severity):
    refund, points = compute_outcome(role, rtype, severity, RENT, DEPOSIT)
    return money(refund), points


def test_matrix_covers_every_rightful_pair():
    validate_penalty_matrix()
    assert len(PENALTY_MATRIX) == 8 * 4


def test_safety_issue_refund_keeps_platform_fee():
    assert outcome("GUEST", "SAFETY_HEALTH", "HIGH") == (Decimal("630.00"), 15)


def test_property_damage_takes_whole_deposit():
    assert outcome("HOST", "PROPERTY_DAMAGE", "CRITICAL") == (Decimal("500.00"), 15)


def test_cleanliness_medium():
    assert outcome("GUEST", "CLEANLINESS", "MEDIUM") == (Decimal("112.50"), 2)


@pytest.mark.parametrize("severity", list(Severity))
def test_access_issue_refunds_rent_and_deposit_whatever_the_severity(severity):
    assert outcome("GUEST", "ACCESS_ISSUE", severity) == (Decimal("1400.00"), 10)


def test_minor_house_rule_violation_is_points_only():
    assert outcome("HOST", "HOUSE_RULE_VIOLATION", "LOW") == (Decimal("0.00"), 2)


def test_complaint_filed_by_the_wrong_side_yields_nothing():
    assert outcome("GUEST", "PROPERTY_DAMAGE", "CRITICAL") == (Decimal("0.00"), 0)
    assert outcome("HOST", "CLEANLINESS", "HIGH") == (Decimal("0.00"), 0)


def test_outcome_is_unrounded():
    refund, _ = compute_outcome(ComplainantRole.GUEST, ReclamationType.CLEANLINESS, Severity.LOW,
                                Decimal("333.33"), 0)
    assert refund == Decimal("333.33") * Decimal("0.05") * Decimal("0.90")


def test_fixed_severity_types():
    assert is_fixed_severity("ACCESS_ISSUE")
    assert is_fixed_severity("NOT_AS_DESCRIBED")
    assert not is_fixed_severity("CLEANLINESS")


def test_reclamation_lifecycle():
    assert next_status("OPEN", "review") is ReclamationStatus.IN_REVIEW
    assert next_status("IN_REVIEW", "resolve") is ReclamationStatus.RESOLVED
    assert next_status("IN_REVIEW", "reject") is ReclamationStatus.REJECTED


@pytest.mark.parametrize("current, action", [
    ("OPEN", "resolve"),
    ("RESOLVED", "review"),
    ("REJECTED", "resolve"),
])
def test_reclamation_lifecycle_refuses_shortcuts(current, action):
    with pytest.raises(InvalidTransitionError):
        next_status(current, action)


def test_platform_fee_follows_configuration():
    assert PLATFORM_FEE_FACTOR == 1 - Decimal(settings.PLATFORM_FEE_PERCENT) / 100
    rule = PENALTY_MATRIX[(ComplainantRole.GUEST, ReclamationType.CLEANLINESS, Severity.LOW)]
    assert rule.fee_factor == PLATFORM_FEE_FACTOR


@pytest.mark.parametrize("percent", [-1, 100])
def test_platform_fee_must_leave_something_to_refund(percent):
    with pytest.raises(SettingsError):
        Settings(PLATFORM_FEE_PERCENT=percent)
