"""
Installment plan generation.

Pure computation: splits a base amount into monthly installments and
computes the compounding interest of each one. Persistence is the
engine's job.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from dateutil.relativedelta import relativedelta

from ledger_backend.app.core.exceptions import ValidationError
from ledger_backend.app.domain.ledger.money import (
    CENT, ZERO, compound_interest, distribute_rounded, split_evenly
)

MIN_INSTALLMENTS = 2
MAX_INSTALLMENTS = 120


@dataclass(frozen=True)
class InstallmentDraft:
    """One installment of a plan, before it is persisted."""
    number: int
    count: int
    original_amount: Decimal
    interest_amount: Decimal
    due_date: date
    invoice_number: Optional[str]


def installment_invoice_number(base_invoice: Optional[str], number: int) -> Optional[str]:
    if not base_invoice:
        return None
    return f"{base_invoice}/{number}"


def schedule_due_dates(first_due: date, count: int) -> List[date]:
    """
    Monthly due dates starting at first_due.

    relativedelta clamps to the last day of shorter months, so a plan due on
    the 31st falls due on Feb 28/29 and then returns to the 31st.
    """
    return [first_due + relativedelta(months=k) for k in range(count)]


def plan_installments(
    total: Decimal,
    count: int,
    first_due: date,
    base_invoice: Optional[str] = None,
    monthly_interest_rate: Optional[Decimal] = None,
) -> List[InstallmentDraft]:
    """
    Build the drafts of an installment plan.

    Args:
        total: Amount to split; the drafts' original amounts sum to it exactly
        count: Number of installments (2-120)
        first_due: Due date of the first installment
        base_invoice: Invoice number of the base record, suffixed per installment
        monthly_interest_rate: Percent per month; installment n accrues n periods

    Returns:
        Drafts ordered by installment number

    Raises:
        ValidationError: count out of range, negative rate or a total too
            small to give every installment at least one cent
    """
    if count < MIN_INSTALLMENTS or count > MAX_INSTALLMENTS:
        raise ValidationError(
            f"Installment count must be between {MIN_INSTALLMENTS} and {MAX_INSTALLMENTS}",
            {"count": count}
        )
    if total < CENT * count:
        raise ValidationError(
            "Amount is too small to split into the requested installments",
            {"total": str(total), "count": count}
        )
    if monthly_interest_rate is not None and monthly_interest_rate < ZERO:
        raise ValidationError("Interest rate cannot be negative", {"interest_rate": str(monthly_interest_rate)})

    principals = split_evenly(total, count)

    if monthly_interest_rate:
        interests = distribute_rounded([
            compound_interest(principal, monthly_interest_rate, number)
            for number, principal in enumerate(principals, start=1)
        ])
    else:
        interests = [ZERO] * count

    due_dates = schedule_due_dates(first_due, count)

    return [
        InstallmentDraft(
            number=number,
            count=count,
            original_amount=principal,
            interest_amount=interest,
            due_date=due,
            invoice_number=installment_invoice_number(base_invoice, number),
        )
        for number, (principal, interest, due) in enumerate(zip(principals, interests, due_dates), start=1)
    ]
