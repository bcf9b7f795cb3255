"""
Audit logging service for tracking ledger state transitions.

Audit rows are written inside the caller's transaction: a rolled back
payment never leaves an audit entry claiming it happened.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from ledger_backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    PAYABLE_CREATED = "PAYABLE_CREATED"
    PAYABLE_UPDATED = "PAYABLE_UPDATED"
    PAYABLE_DELETED = "PAYABLE_DELETED"
    PAYABLE_CANCELLED = "PAYABLE_CANCELLED"
    PAYABLE_APPROVED = "PAYABLE_APPROVED"
    PAYABLE_PAID = "PAYABLE_PAID"
    PAYABLE_INSTALLMENTS_GENERATED = "PAYABLE_INSTALLMENTS_GENERATED"

    RECEIVABLE_CREATED = "RECEIVABLE_CREATED"
    RECEIVABLE_UPDATED = "RECEIVABLE_UPDATED"
    RECEIVABLE_DELETED = "RECEIVABLE_DELETED"
    RECEIVABLE_CANCELLED = "RECEIVABLE_CANCELLED"
    RECEIVABLE_APPROVED = "RECEIVABLE_APPROVED"
    RECEIVABLE_RECEIVED = "RECEIVABLE_RECEIVED"
    RECEIVABLE_INSTALLMENTS_GENERATED = "RECEIVABLE_INSTALLMENTS_GENERATED"

    OVERDUE_SWEEP_COMPLETED = "OVERDUE_SWEEP_COMPLETED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    direction: Optional[str] = None,
    record_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Log a ledger event to the audit log.

    Args:
        db: Database session (caller commits)
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action, None for system jobs
        actor_username: Username of actor
        direction: Ledger direction of the affected record
        record_id: ID of the affected record
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        direction=direction,
        record_id=record_id,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    direction: Optional[str] = None,
    record_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve audit trail with optional filtering.

    Args:
        db: Database session
        direction: Filter by ledger direction
        record_id: Filter by affected record
        action: Filter by action type
        limit: Maximum number of records to return

    Returns:
        List of AuditLog instances, most recent first
    """
    query = select(AuditLog).order_by(desc(AuditLog.timestamp), desc(AuditLog.id))

    if direction:
        query = query.where(AuditLog.direction == direction)

    if record_id:
        query = query.where(AuditLog.record_id == record_id)

    if action:
        query = query.where(AuditLog.action == action)

    query = query.limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
