"""
Settlement Calculation Module

This module holds the two pure building blocks of a settlement:

1. Fee calculation: splits an order amount into the platform fee and the
   amount paid out to the wholesaler.
2. Payout scheduling: derives the scheduled payout timestamp from the moment
   the order was paid.

Both functions are total over their valid domains and never raise for valid
input. Rates coming from outside the service go through ``parse_rate`` first.

Example Usage:
    from app.utils.settlement_calc import calculate_fee, schedule_payout

    fee = calculate_fee(100000, Decimal("0.05"))
    # FeeBreakdown(platform_fee=5000, wholesaler_amount=95000)

    schedule_payout(datetime(2025, 1, 1, tzinfo=timezone.utc), 7)
    # datetime(2025, 1, 8, 0, 0, tzinfo=timezone.utc)
"""

from datetime import datetime, timedelta
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import NamedTuple, Union

DEFAULT_PAYOUT_DELAY_DAYS = 7

# Rates are stored as Numeric(6, 4); a finer rate would not round-trip
RATE_DECIMAL_PLACES = 4
RATE_QUANTUM = Decimal(1).scaleb(-RATE_DECIMAL_PLACES)

Rate = Union[Decimal, float, str]


class FeeBreakdown(NamedTuple):
    platform_fee: int
    wholesaler_amount: int


def to_rate(rate: Rate) -> Decimal:
    """
    Normalize a fee rate to Decimal.

    Floats go through their string form so that 0.05 becomes Decimal("0.05")
    and not the binary approximation 0.05000000000000000277...
    """
    if isinstance(rate, Decimal):
        return rate
    return Decimal(str(rate))


def parse_rate(rate: Rate) -> Decimal:
    """
    Validate a fee rate and return it as Decimal.

    Raises:
        ValueError: the rate is not a number, is NaN or infinite, lies outside
            [0, 1], or has more than RATE_DECIMAL_PLACES decimal places
    """
    try:
        value = to_rate(rate)
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"Platform fee rate is not a number: {rate!r}") from e
    if not value.is_finite():
        raise ValueError(f"Platform fee rate must be finite, got {rate!r}")
    if not (0 <= value <= 1):
        raise ValueError(f"Platform fee rate must be between 0 and 1, got {value}")
    if value != value.quantize(RATE_QUANTUM):
        raise ValueError(f"Platform fee rate allows at most {RATE_DECIMAL_PLACES} decimal places, got {value}")
    return value


def calculate_fee(order_amount: int, rate: Rate) -> FeeBreakdown:
    """
    Split an order amount into platform fee and wholesaler amount.

    The platform fee is floor(order_amount * rate); the wholesaler receives the
    remainder, so the two parts always add up to the order amount exactly.

    Args:
        order_amount: Non-negative integer amount in currency units
        rate: Platform fee rate in [0, 1] (e.g. 0.05 for 5%)

    Returns:
        FeeBreakdown(platform_fee, wholesaler_amount)

    Example:
        >>> calculate_fee(100000, Decimal("0.05"))
        FeeBreakdown(platform_fee=5000, wholesaler_amount=95000)
        >>> calculate_fee(999, "0.05")
        FeeBreakdown(platform_fee=49, wholesaler_amount=950)
    """
    raw_fee = Decimal(order_amount) * to_rate(rate)
    platform_fee = int(raw_fee.to_integral_value(rounding=ROUND_FLOOR))
    return FeeBreakdown(platform_fee=platform_fee, wholesaler_amount=order_amount - platform_fee)


def schedule_payout(paid_at: datetime, delay_days: int = DEFAULT_PAYOUT_DELAY_DAYS) -> datetime:
    """
    Compute the scheduled payout timestamp.

    The result keeps the tzinfo of ``paid_at``; the difference to ``paid_at``
    is exactly ``delay_days`` days.
    """
    return paid_at + timedelta(days=delay_days)

