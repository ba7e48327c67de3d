"""Stay pricing: nightly rate, long-stay discount and negotiation floor."""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")
HUNDRED = Decimal("100")

# (minimum nights exclusive, discount percent), checked top-down
LONG_STAY_TIERS = (
    (30, 20),
    (15, 15),
    (5, 10),
)


def to_decimal(value) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def money(value) -> Decimal:
    """Quantise to cents. Only call this when a value is about to be stored."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def nights_between(check_in: date, check_out: date) -> int:
    return (check_out - check_in).days


def long_stay_discount_percent(nights: int, discount_enabled: bool) -> int:
    if not discount_enabled:
        return 0
    for threshold, percent in LONG_STAY_TIERS:
        if nights > threshold:
            return percent
    return 0


@dataclass(frozen=True)
class StayQuote:
    nights: int
    base_price: Decimal
    discount_percent: int
    list_price: Decimal
    min_negotiated_price: Decimal

    @property
    def negotiable(self) -> bool:
        return self.min_negotiated_price < self.list_price


def quote_stay(daily_price, nights: int, discount_enabled: bool, negotiation_percentage) -> StayQuote:
    base = to_decimal(daily_price) * nights
    pct = long_stay_discount_percent(nights, discount_enabled)
    list_price = base * (1 - Decimal(pct) / HUNDRED)
    floor = list_price * (1 - to_decimal(negotiation_percentage) / HUNDRED)
    return StayQuote(
        nights=nights,
        base_price=base,
        discount_percent=pct,
        list_price=list_price,
        min_negotiated_price=floor,
    )


def is_negotiation(requested_price, quote: StayQuote) -> bool:
    """A non-zero price below list is a counter-offer; anything else is full price."""
    if requested_price is None:
        return False
    requested = to_decimal(requested_price)
    if requested <= 0:
        return False
    return money(requested) < money(quote.list_price)


def price_acceptable(requested_price, quote: StayQuote) -> bool:
    return money(requested_price) >= money(quote.min_negotiated_price)


def negotiation_percent(requested_price, list_price) -> Decimal:
    list_price = to_decimal(list_price)
    if list_price <= 0:
        return Decimal("0")
    return money((1 - to_decimal(requested_price) / list_price) * HUNDRED)
