"""
Installment Plan database model.

Anchor row shared by every installment generated from one base record.
"""

from sqlalchemy import Column, Integer, Numeric, DateTime, Enum
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base
from ledger_backend.app.models.ledger_enums import LedgerDirection


class InstallmentPlan(Base):
    """
    Installment Plan model.

    Children reference the plan through parent_id; the plan itself is
    never paid. base_record_id points into the table of its direction.
    """
    __tablename__ = "installment_plans"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    direction = Column(Enum(LedgerDirection), nullable=False, index=True)
    base_record_id = Column(Integer, nullable=False, index=True)

    installment_count = Column(Integer, nullable=False)
    monthly_interest_rate = Column(Numeric(9, 4), nullable=True)  # Percent per month
    total_principal = Column(Numeric(18, 2), nullable=False)

    created_by_user_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<InstallmentPlan(id={self.id}, direction='{self.direction.value}', count={self.installment_count})>"
