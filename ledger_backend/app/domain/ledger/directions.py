"""
Direction adapters for the ledger engine.

Payables and receivables obey the same rules. An adapter carries the only
things that differ between them: tables, counterparty, naming and the
approval threshold.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Optional, Type

from ledger_backend.app.core.config import settings
from ledger_backend.app.models.counterparty import Customer, Supplier
from ledger_backend.app.models.enums import UserRole
from ledger_backend.app.models.ledger_enums import LedgerDirection
from ledger_backend.app.models.ledger_record import AccountPayable, AccountReceivable
from ledger_backend.app.services.audit import AuditAction


@dataclass(frozen=True)
class ActingUser:
    """Identity performing a mutating operation, taken from the access token."""
    user_id: int
    username: Optional[str] = None
    role: Optional[UserRole] = None


@dataclass(frozen=True)
class LedgerDirectionAdapter:
    direction: LedgerDirection
    model: Type
    counterparty_model: Type
    label: str
    counterparty_label: str
    route_prefix: str
    tag: str
    payment_verb: str
    threshold_getter: Callable[[], Optional[Decimal]]

    # Audit action names
    created_action: str
    updated_action: str
    deleted_action: str
    cancelled_action: str
    approved_action: str
    settled_action: str
    installments_action: str

    @property
    def approval_threshold(self) -> Optional[Decimal]:
        """Read at call time so settings overrides apply without a restart."""
        return self.threshold_getter()

    def needs_approval(self, net_amount: Decimal, requested: bool = False) -> bool:
        if requested:
            return True
        threshold = self.approval_threshold
        return threshold is not None and net_amount >= threshold


PAYABLE_ADAPTER = LedgerDirectionAdapter(
    direction=LedgerDirection.PAYABLE,
    model=AccountPayable,
    counterparty_model=Supplier,
    label="Account payable",
    counterparty_label="Supplier",
    route_prefix="/accounts-payable",
    tag="Accounts Payable",
    payment_verb="pay",
    threshold_getter=lambda: settings.payable_approval_threshold,
    created_action=AuditAction.PAYABLE_CREATED,
    updated_action=AuditAction.PAYABLE_UPDATED,
    deleted_action=AuditAction.PAYABLE_DELETED,
    cancelled_action=AuditAction.PAYABLE_CANCELLED,
    approved_action=AuditAction.PAYABLE_APPROVED,
    settled_action=AuditAction.PAYABLE_PAID,
    installments_action=AuditAction.PAYABLE_INSTALLMENTS_GENERATED,
)

RECEIVABLE_ADAPTER = LedgerDirectionAdapter(
    direction=LedgerDirection.RECEIVABLE,
    model=AccountReceivable,
    counterparty_model=Customer,
    label="Account receivable",
    counterparty_label="Customer",
    route_prefix="/accounts-receivable",
    tag="Accounts Receivable",
    payment_verb="receive",
    threshold_getter=lambda: settings.receivable_approval_threshold,
    created_action=AuditAction.RECEIVABLE_CREATED,
    updated_action=AuditAction.RECEIVABLE_UPDATED,
    deleted_action=AuditAction.RECEIVABLE_DELETED,
    cancelled_action=AuditAction.RECEIVABLE_CANCELLED,
    approved_action=AuditAction.RECEIVABLE_APPROVED,
    settled_action=AuditAction.RECEIVABLE_RECEIVED,
    installments_action=AuditAction.RECEIVABLE_INSTALLMENTS_GENERATED,
)

ADAPTERS = {
    LedgerDirection.PAYABLE: PAYABLE_ADAPTER,
    LedgerDirection.RECEIVABLE: RECEIVABLE_ADAPTER,
}
