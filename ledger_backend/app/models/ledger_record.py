"""
Ledger record database models.

Accounts payable and accounts receivable share one table shape, declared
once in LedgerRecordMixin. Each direction gets its own table, counterparty
foreign key and direction-specific synonyms.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Date, DateTime, Boolean, Enum,
    ForeignKey, CheckConstraint
)
from sqlalchemy.orm import declared_attr, synonym
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import AccountStatus, PaymentMethod

MONEY = Numeric(18, 2)
ZERO = Decimal("0.00")


class LedgerRecordMixin:
    """
    Columns and derived amounts common to both ledger directions.

    net_amount is stored so totals can be aggregated in SQL; the engine
    recomputes it whenever one of its components changes. Payment-time
    adjustments accumulate separately and never touch net_amount.
    """

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    invoice_number = Column(String(50), nullable=True, index=True)

    # Amounts fixed at creation
    original_amount = Column(MONEY, nullable=False)
    discount_amount = Column(MONEY, nullable=False, default=ZERO)
    interest_amount = Column(MONEY, nullable=False, default=ZERO)
    fine_amount = Column(MONEY, nullable=False, default=ZERO)
    net_amount = Column(MONEY, nullable=False)

    # Running totals of adjustments applied at payment time
    additional_discount_amount = Column(MONEY, nullable=False, default=ZERO)
    additional_interest_amount = Column(MONEY, nullable=False, default=ZERO)
    additional_fine_amount = Column(MONEY, nullable=False, default=ZERO)

    paid_amount = Column(MONEY, nullable=False, default=ZERO)

    # Dates
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)
    payment_date = Column(Date, nullable=True)

    # Status and payment details
    status = Column(Enum(AccountStatus), default=AccountStatus.PENDING, nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod), default=PaymentMethod.BANK_SLIP, nullable=False)
    bank_slip_number = Column(String(100), nullable=True)
    pix_key = Column(String(100), nullable=True)
    proof_of_payment_ref = Column(String(500), nullable=True)

    # Approval workflow
    requires_approval = Column(Boolean, default=False, nullable=False, index=True)
    approval_requested = Column(Boolean, default=False, nullable=False)  # Set by hand, not by the threshold
    approved_by_user_id = Column(Integer, nullable=True)
    approval_date = Column(DateTime(timezone=True), nullable=True)
    approval_notes = Column(Text, nullable=True)

    # Classification (external reference data)
    category_id = Column(Integer, nullable=True, index=True)
    cost_center_id = Column(Integer, nullable=True, index=True)

    # Installment linkage
    installment_number = Column(Integer, nullable=True)
    installment_count = Column(Integer, nullable=True)

    notes = Column(Text, nullable=True)
    internal_notes = Column(Text, nullable=True)

    # Audit
    created_by_user_id = Column(Integer, nullable=False)
    settled_by_user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    @declared_attr
    def parent_id(cls):
        return Column(Integer, ForeignKey("installment_plans.id"), nullable=True, index=True)

    @declared_attr
    def __table_args__(cls):
        return (
            CheckConstraint("net_amount >= 0", name=f"ck_{cls.__tablename__}_net_non_negative"),
            CheckConstraint("paid_amount >= 0", name=f"ck_{cls.__tablename__}_paid_non_negative"),
        )

    @property
    def adjustments_amount(self) -> Decimal:
        """Signed sum of every payment-time adjustment applied so far."""
        return (
            (self.additional_interest_amount or ZERO)
            + (self.additional_fine_amount or ZERO)
            - (self.additional_discount_amount or ZERO)
        )

    @property
    def effective_due_amount(self) -> Decimal:
        return self.net_amount + self.adjustments_amount

    @property
    def remaining_amount(self) -> Decimal:
        return self.effective_due_amount - (self.paid_amount or ZERO)

    @property
    def is_approved(self) -> bool:
        return self.approved_by_user_id is not None

    @property
    def is_terminal(self) -> bool:
        return self.status in (AccountStatus.PAID, AccountStatus.CANCELLED)

    def days_overdue(self, today: date) -> int:
        if self.status in (AccountStatus.PAID, AccountStatus.CANCELLED) or today <= self.due_date:
            return 0
        return (today - self.due_date).days

    def __repr__(self):
        return (
            f"<{type(self).__name__}(id={self.id}, counterparty={self.counterparty_id}, "
            f"net={self.net_amount}, status='{self.status.value}')>"
        )


class AccountPayable(LedgerRecordMixin, Base):
    """Money owed to a supplier."""
    __tablename__ = "accounts_payable"

    counterparty_id = Column(Integer, ForeignKey("suppliers.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)

    supplier_id = synonym("counterparty_id")
    paid_by_user_id = synonym("settled_by_user_id")

    __mapper_args__ = {"version_id_col": version}


class AccountReceivable(LedgerRecordMixin, Base):
    """Money owed to us by a customer."""
    __tablename__ = "accounts_receivable"

    counterparty_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    version = Column(Integer, nullable=False)

    customer_id = synonym("counterparty_id")
    received_by_user_id = synonym("settled_by_user_id")

    __mapper_args__ = {"version_id_col": version}
