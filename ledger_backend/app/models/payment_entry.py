"""
Payment Entry database model.

Immutable history of every payment applied to a ledger record.
"""

from sqlalchemy import Column, Integer, Numeric, Date, DateTime, Enum, String
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import LedgerDirection, PaymentMethod, AccountStatus


class PaymentEntry(Base):
    """
    Payment Entry model.

    Immutable record of one payment event against a payable or receivable.
    Captures the adjustments of that event and the balance it produced.
    NO updates or deletions allowed.
    """
    __tablename__ = "payment_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Linkage (record_id points into the table of its direction)
    direction = Column(Enum(LedgerDirection), nullable=False, index=True)
    record_id = Column(Integer, nullable=False, index=True)

    # Financials
    amount = Column(Numeric(18, 2), nullable=False)
    additional_discount = Column(Numeric(18, 2), nullable=False)
    additional_interest = Column(Numeric(18, 2), nullable=False)
    additional_fine = Column(Numeric(18, 2), nullable=False)
    effective_due_amount = Column(Numeric(18, 2), nullable=False)
    paid_amount_after = Column(Numeric(18, 2), nullable=False)
    overshoot_amount = Column(Numeric(18, 2), nullable=False, default=0)
    status_after = Column(Enum(AccountStatus), nullable=False)

    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_date = Column(Date, nullable=False)
    proof_of_payment_ref = Column(String(500), nullable=True)

    created_by_user_id = Column(Integer, nullable=False)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentEntry(id={self.id}, record={self.direction.value}:{self.record_id}, amount={self.amount})>"
