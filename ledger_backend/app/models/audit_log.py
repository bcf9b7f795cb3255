"""
Audit Log Database Model.

Tracks every ledger state transition for compliance and reconciliation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from ledger_backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking ledger events.

    Events logged:
    - *_CREATED / *_UPDATED / *_DELETED / *_CANCELLED
    - *_APPROVED / *_PAID / *_RECEIVED
    - *_INSTALLMENTS_GENERATED
    - OVERDUE_SWEEP_COMPLETED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions such as the scheduled sweep)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which record was affected
    direction = Column(String(20), nullable=True, index=True)
    record_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, record={self.record_id})>"
