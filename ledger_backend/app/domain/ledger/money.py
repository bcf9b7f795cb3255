"""
Monetary arithmetic for the ledger.

Every amount is a Decimal quantized to cents with ROUND_HALF_UP.
Floats are rejected outright; they cannot represent cents exactly.
"""

from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP, InvalidOperation
from typing import Iterable, List, Tuple, Union

from ledger_backend.app.core.exceptions import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0.00")
ROUNDING_TOLERANCE = CENT

MoneyLike = Union[Decimal, int, str]


def to_money(value: MoneyLike, field: str = "amount") -> Decimal:
    """Convert a value to a cent-quantized Decimal."""
    if isinstance(value, float):
        raise ValidationError(f"{field} must be a decimal, not a float", {"field": field})
    try:
        amount = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} is not a valid amount", {"field": field, "value": str(value)})
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite amount", {"field": field})
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def truncate_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_DOWN)


def net_amount(original: Decimal, discount: Decimal, interest: Decimal, fine: Decimal) -> Decimal:
    """
    Net amount of a record: original - discount + interest + fine.

    Raises:
        ValidationError: a component is negative or the result would be
    """
    components = {
        "original_amount": original,
        "discount_amount": discount,
        "interest_amount": interest,
        "fine_amount": fine,
    }
    for field, value in components.items():
        if value < ZERO:
            raise ValidationError(f"{field} cannot be negative", {"field": field})

    net = round_money(original - discount + interest + fine)
    if net < ZERO:
        raise ValidationError(
            "Net amount cannot be negative (discount exceeds total)",
            {"net_amount": str(net)}
        )
    return net


def distribute_rounded(exact_values: List[Decimal]) -> List[Decimal]:
    """
    Round each value to cents, letting the last one absorb the remainder.

    The rounded values always sum to the rounded total of the exact values.
    Leading values are truncated so the last one never goes negative.
    """
    if not exact_values:
        return []
    total = round_money(sum(exact_values, ZERO))
    rounded = [truncate_money(v) for v in exact_values[:-1]]
    rounded.append(total - sum(rounded, ZERO))
    return rounded


def split_evenly(total: Decimal, parts: int) -> List[Decimal]:
    """Split total into parts equal shares; the shares sum to total exactly."""
    if parts < 1:
        raise ValidationError("Cannot split an amount into fewer than one part", {"parts": parts})
    share = truncate_money(total / parts)
    shares = [share] * (parts - 1)
    shares.append(total - share * (parts - 1))
    return shares


def compound_interest(principal: Decimal, monthly_rate_percent: Decimal, periods: int) -> Decimal:
    """Exact (unrounded) interest accrued by principal over periods months."""
    rate = monthly_rate_percent / Decimal(100)
    return principal * ((Decimal(1) + rate) ** periods - Decimal(1))


def overdue_charges(
    amount: Decimal,
    due_date: date,
    as_of: date,
    daily_rate: Decimal,
    fine_rate: Decimal,
) -> Tuple[Decimal, Decimal, int]:
    """
    Suggested late-payment interest and fine.

    Returns:
        (interest, fine, days_late); all zero when not late
    """
    days_late = (as_of - due_date).days
    if days_late <= 0:
        return ZERO, ZERO, 0
    interest = round_money(amount * daily_rate * days_late)
    fine = round_money(amount * fine_rate)
    return interest, fine, days_late


def within_tolerance(paid: Decimal, due: Decimal, tolerance: Decimal = ROUNDING_TOLERANCE) -> bool:
    """True when paid does not exceed due by more than the tolerance."""
    return paid - due <= tolerance


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def sum_money(values: Iterable[Decimal]) -> Decimal:
    return round_money(sum(values, ZERO))
