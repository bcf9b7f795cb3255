"""
Counterparty master data models.

Suppliers back accounts payable, customers back accounts receivable.
Only the fields the ledger needs to resolve a counterparty are kept here.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base


class CounterpartyMixin:
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(200), nullable=False, index=True)
    document = Column(String(50), nullable=True, index=True)  # Tax id
    email = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<{type(self).__name__}(id={self.id}, name='{self.name}')>"


class Supplier(CounterpartyMixin, Base):
    """Supplier we owe money to."""
    __tablename__ = "suppliers"


class Customer(CounterpartyMixin, Base):
    """Customer that owes us money."""
    __tablename__ = "customers"
