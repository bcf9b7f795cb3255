"""
Status state machine for ledger records.

PAID and CANCELLED are terminal; no transition leaves them.
"""

from decimal import Decimal
from typing import Dict, FrozenSet

from ledger_backend.app.core.exceptions import InvalidStateError
from ledger_backend.app.models.ledger_enums import AccountStatus

TERMINAL_STATUSES: FrozenSet[AccountStatus] = frozenset({AccountStatus.PAID, AccountStatus.CANCELLED})

ALLOWED_TRANSITIONS: Dict[AccountStatus, FrozenSet[AccountStatus]] = {
    AccountStatus.PENDING: frozenset({
        AccountStatus.PARTIALLY_PAID,
        AccountStatus.PAID,
        AccountStatus.OVERDUE,
        AccountStatus.CANCELLED,
    }),
    AccountStatus.PARTIALLY_PAID: frozenset({
        AccountStatus.PAID,
        AccountStatus.OVERDUE,
        AccountStatus.CANCELLED,
    }),
    AccountStatus.OVERDUE: frozenset({
        AccountStatus.PARTIALLY_PAID,
        AccountStatus.PAID,
        AccountStatus.CANCELLED,
    }),
    AccountStatus.PAID: frozenset(),
    AccountStatus.CANCELLED: frozenset(),
}


def is_terminal(status: AccountStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: AccountStatus, target: AccountStatus) -> bool:
    """A self-transition is a no-op and always allowed for non-terminal states."""
    if current == target:
        return not is_terminal(current)
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: AccountStatus, target: AccountStatus) -> None:
    """
    Validate a status change.

    Raises:
        InvalidStateError: if the transition is not in the table
    """
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot change status from {current.value} to {target.value}",
            {"current_status": current.value, "target_status": target.value}
        )


def derive_payment_status(paid_amount: Decimal, effective_due_amount: Decimal) -> AccountStatus:
    """Status produced by a payment event."""
    if paid_amount >= effective_due_amount:
        return AccountStatus.PAID
    return AccountStatus.PARTIALLY_PAID
