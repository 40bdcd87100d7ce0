"""
Commission Engine - Platform Cut per Shop

Pure functions only: no session, no I/O. Rates are percentages (10.00 means
the platform keeps 10% of a child order's amount).
"""
import json
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from marketplace.core.config import settings
from marketplace.core.exceptions import ValidationException, ErrorCode

CENT = Decimal("0.01")
MIN_COMMISSION_RATE = Decimal("0")
MAX_COMMISSION_RATE = Decimal("100")

# (min_earnings, max_earnings or None, rate_percent); ranges are [min, max)
Tier = Tuple[Decimal, Optional[Decimal], Decimal]

DEFAULT_TIERS: List[Tier] = [
    (Decimal("0"), Decimal("10000"), Decimal("10.00")),
    (Decimal("10000"), Decimal("50000"), Decimal("8.00")),
    (Decimal("50000"), Decimal("100000"), Decimal("6.00")),
    (Decimal("100000"), None, Decimal("5.00")),
]


def _to_decimal(value) -> Decimal:
    # str() first so floats from JSON keep their printed value
    return Decimal(str(value))


def parse_tiers(raw: str) -> List[Tier]:
    """Parse the COMMISSION_TIERS setting into tier tuples"""
    tiers: List[Tier] = []
    for low, high, rate in json.loads(raw):
        tiers.append((
            _to_decimal(low),
            _to_decimal(high) if high is not None else None,
            _to_decimal(rate),
        ))
    return tiers


def configured_tiers() -> List[Tier]:
    if settings.COMMISSION_TIERS:
        return parse_tiers(settings.COMMISSION_TIERS)
    return DEFAULT_TIERS


def rate_for(total_earnings: Decimal, tiers: Optional[Iterable[Tier]] = None) -> Decimal:
    """Commission rate for a shop with the given lifetime earnings.

    The first tier whose half-open range contains the earnings wins. Earnings
    outside every tier (e.g. negative after heavy refunds) fall back to
    DEFAULT_COMMISSION_RATE.
    """
    earnings = _to_decimal(total_earnings)
    for low, high, rate in (tiers if tiers is not None else configured_tiers()):
        if earnings >= low and (high is None or earnings < high):
            return rate.quantize(CENT)
    return _to_decimal(settings.DEFAULT_COMMISSION_RATE).quantize(CENT)


def split_commission(amount: Decimal, rate: Decimal) -> Tuple[Decimal, Decimal]:
    """Split an order amount into (commission, shop_earnings).

    The commission is rounded half-up to cents and the shop gets the rest,
    so the two parts always add back to the amount.
    """
    amount = _to_decimal(amount).quantize(CENT)
    commission = (amount * _to_decimal(rate) / Decimal("100")).quantize(CENT, rounding=ROUND_HALF_UP)
    return commission, amount - commission


def validate_custom_rate(rate) -> Decimal:
    """Check an admin-supplied override rate and return it as a Decimal"""
    if rate is None:
        raise ValidationException(
            "A custom commission rate is required when use_custom is set",
            field="rate",
            error_code=ErrorCode.INVALID_COMMISSION_RATE,
        )
    value = _to_decimal(rate)
    if value < MIN_COMMISSION_RATE or value > MAX_COMMISSION_RATE:
        raise ValidationException(
            f"Commission rate must be between {MIN_COMMISSION_RATE}% and {MAX_COMMISSION_RATE}%",
            field="rate",
            error_code=ErrorCode.INVALID_COMMISSION_RATE,
            details={"rate": str(value)},
        )
    return value.quantize(CENT)
