"""
Aggregation queries over the ledger.

Read-only projections. They report the stored status as-is; overdue-ness
is owned by the sweeper and never recomputed here.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import ResourceNotFoundError, ValidationError
from ledger_backend.app.domain.ledger.directions import LedgerDirectionAdapter
from ledger_backend.app.domain.ledger.money import ZERO, overdue_charges, round_money, utc_today
from ledger_backend.app.domain.ledger.state_machine import TERMINAL_STATUSES
from ledger_backend.app.models.installment_plan import InstallmentPlan
from ledger_backend.app.models.ledger_enums import AccountStatus
from ledger_backend.app.models.payment_entry import PaymentEntry

OPEN_STATUSES = (AccountStatus.PENDING, AccountStatus.PARTIALLY_PAID, AccountStatus.OVERDUE)


@dataclass
class LedgerSearchFilters:
    counterparty_id: Optional[int] = None
    status: Optional[AccountStatus] = None
    due_date_from: Optional[date] = None
    due_date_to: Optional[date] = None
    category_id: Optional[int] = None
    cost_center_id: Optional[int] = None
    requires_approval: Optional[bool] = None
    pending_approval: Optional[bool] = None
    parent_id: Optional[int] = None
    search: Optional[str] = None


def _money(value) -> Decimal:
    if value is None:
        return ZERO
    return round_money(Decimal(value))


class LedgerQueries:
    """Read-side projections for one ledger direction."""

    def __init__(self, adapter: LedgerDirectionAdapter):
        self.adapter = adapter
        self.model = adapter.model
        self.counterparty_model = adapter.counterparty_model

    def _remaining_expr(self):
        model = self.model
        return (
            model.net_amount
            + model.additional_interest_amount
            + model.additional_fine_amount
            - model.additional_discount_amount
            - model.paid_amount
        )

    def _pending_approval_clause(self):
        return and_(
            self.model.requires_approval.is_(True),
            self.model.approved_by_user_id.is_(None),
            self.model.status.notin_(tuple(TERMINAL_STATUSES)),
        )

    def _sort_columns(self) -> Dict[str, Any]:
        return {
            "due_date": self.model.due_date,
            "issue_date": self.model.issue_date,
            "amount": self.model.net_amount,
            "status": self.model.status,
            "created_at": self.model.created_at,
            "counterparty": self.counterparty_model.name,
            "invoice_number": self.model.invoice_number,
        }

    async def get(self, db: AsyncSession, record_id: int):
        record = await db.get(self.model, record_id, populate_existing=True)
        if record is None:
            raise ResourceNotFoundError(self.adapter.label, record_id)
        return record

    async def search(
        self,
        db: AsyncSession,
        filters: Optional[LedgerSearchFilters] = None,
        page: int = 1,
        page_size: Optional[int] = None,
        sort_by: Optional[str] = None,
        sort_desc: bool = True,
    ) -> Tuple[List, int]:
        """
        Paged, filtered and sorted listing.

        Returns:
            (items of the requested page, total matching count)
        """
        filters = filters or LedgerSearchFilters()
        model = self.model
        page = max(page, 1)
        page_size = min(max(page_size or settings.default_page_size, 1), settings.max_page_size)

        sort_columns = self._sort_columns()
        sort_key = sort_by or "due_date"
        if sort_key not in sort_columns:
            raise ValidationError(
                f"Cannot sort by '{sort_key}'",
                {"allowed": sorted(sort_columns)}
            )

        query = (
            select(model)
            .join(self.counterparty_model, self.counterparty_model.id == model.counterparty_id)
            .execution_options(populate_existing=True)
        )

        if filters.counterparty_id is not None:
            query = query.where(model.counterparty_id == filters.counterparty_id)
        if filters.status is not None:
            query = query.where(model.status == filters.status)
        if filters.due_date_from is not None:
            query = query.where(model.due_date >= filters.due_date_from)
        if filters.due_date_to is not None:
            query = query.where(model.due_date <= filters.due_date_to)
        if filters.category_id is not None:
            query = query.where(model.category_id == filters.category_id)
        if filters.cost_center_id is not None:
            query = query.where(model.cost_center_id == filters.cost_center_id)
        if filters.requires_approval is not None:
            query = query.where(model.requires_approval.is_(filters.requires_approval))
        if filters.pending_approval is True:
            query = query.where(self._pending_approval_clause())
        elif filters.pending_approval is False:
            query = query.where(~self._pending_approval_clause())
        if filters.parent_id is not None:
            query = query.where(model.parent_id == filters.parent_id)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(or_(
                model.invoice_number.ilike(pattern),
                model.notes.ilike(pattern),
                self.counterparty_model.name.ilike(pattern),
            ))

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar_one()

        sort_column = sort_columns[sort_key]
        order = sort_column.desc() if sort_desc else sort_column.asc()
        tiebreak = model.id.desc() if sort_desc else model.id.asc()
        query = query.order_by(order, tiebreak).offset((page - 1) * page_size).limit(page_size)

        result = await db.execute(query)
        return list(result.scalars().all()), total

    async def installments_of(self, db: AsyncSession, record_id: int) -> List:
        """
        Every installment of the plan a record belongs to.

        Accepts either an installment or the base record the plan replaced.
        """
        record = await self.get(db, record_id)
        plan_id = record.parent_id
        if plan_id is None:
            plan_result = await db.execute(
                select(InstallmentPlan.id).where(
                    InstallmentPlan.direction == self.adapter.direction,
                    InstallmentPlan.base_record_id == record.id,
                )
            )
            plan_id = plan_result.scalar_one_or_none()
            if plan_id is None:
                return []

        result = await db.execute(
            select(self.model).execution_options(populate_existing=True)
            .where(self.model.parent_id == plan_id)
            .order_by(self.model.installment_number)
        )
        return list(result.scalars().all())

    async def total_by_status(self, db: AsyncSession, status: AccountStatus) -> Decimal:
        """Sum of net_amount over every record in a status."""
        result = await db.execute(
            select(func.sum(self.model.net_amount)).where(self.model.status == status)
        )
        return _money(result.scalar())

    async def totals_summary(self, db: AsyncSession) -> Dict[str, Any]:
        result = await db.execute(
            select(self.model.status, func.sum(self.model.net_amount)).group_by(self.model.status)
        )
        by_status = {status: _money(total) for status, total in result.all()}

        outstanding_result = await db.execute(
            select(func.sum(self._remaining_expr())).where(self.model.status.in_(OPEN_STATUSES))
        )

        return {
            "totals": [
                {"status": status, "total": by_status.get(status, ZERO)}
                for status in AccountStatus
            ],
            "outstanding_total": _money(outstanding_result.scalar()),
        }

    async def totals_by_counterparty(self, db: AsyncSession, counterparty_id: int) -> Dict[str, Any]:
        """Net, paid and outstanding totals for one counterparty, cancelled records excluded."""
        counterparty = await db.get(self.counterparty_model, counterparty_id)
        if counterparty is None:
            raise ResourceNotFoundError(self.adapter.counterparty_label, counterparty_id)

        result = await db.execute(
            select(
                func.count(self.model.id),
                func.sum(self.model.net_amount),
                func.sum(self.model.paid_amount),
            ).where(
                self.model.counterparty_id == counterparty_id,
                self.model.status != AccountStatus.CANCELLED,
            )
        )
        record_count, net_total, paid_total = result.one()

        outstanding_result = await db.execute(
            select(func.sum(self._remaining_expr())).where(
                self.model.counterparty_id == counterparty_id,
                self.model.status.in_(OPEN_STATUSES),
            )
        )

        return {
            "counterparty_id": counterparty_id,
            "record_count": record_count or 0,
            "net_total": _money(net_total),
            "paid_total": _money(paid_total),
            "outstanding_total": _money(outstanding_result.scalar()),
        }

    async def overdue(self, db: AsyncSession) -> List:
        result = await db.execute(
            select(self.model).execution_options(populate_existing=True)
            .where(self.model.status == AccountStatus.OVERDUE)
            .order_by(self.model.due_date.asc(), self.model.id.asc())
        )
        return list(result.scalars().all())

    async def due_soon(self, db: AsyncSession, days: Optional[int] = None, today: Optional[date] = None) -> List:
        """Open, not yet overdue records falling due within the next `days` days."""
        today = today or utc_today()
        days = settings.due_soon_default_days if days is None else days
        if days < 0:
            raise ValidationError("days cannot be negative", {"days": days})

        result = await db.execute(
            select(self.model).execution_options(populate_existing=True)
            .where(
                self.model.status.in_((AccountStatus.PENDING, AccountStatus.PARTIALLY_PAID)),
                self.model.due_date >= today,
                self.model.due_date <= today + timedelta(days=days),
            )
            .order_by(self.model.due_date.asc(), self.model.id.asc())
        )
        return list(result.scalars().all())

    async def pending_approval(self, db: AsyncSession) -> List:
        result = await db.execute(
            select(self.model).execution_options(populate_existing=True)
            .where(self._pending_approval_clause())
            .order_by(self.model.due_date.asc(), self.model.id.asc())
        )
        return list(result.scalars().all())

    async def payments_of(self, db: AsyncSession, record_id: int) -> List[PaymentEntry]:
        await self.get(db, record_id)
        result = await db.execute(
            select(PaymentEntry)
            .where(
                PaymentEntry.direction == self.adapter.direction,
                PaymentEntry.record_id == record_id,
            )
            .order_by(PaymentEntry.created_at.asc(), PaymentEntry.id.asc())
        )
        return list(result.scalars().all())

    async def suggest_overdue_charges(
        self, db: AsyncSession, record_id: int, as_of: Optional[date] = None
    ) -> Dict[str, Any]:
        """
        Late-payment interest and fine a caller may pass as payment adjustments.

        Nothing is written; settled and cancelled records get no charges.
        """
        record = await self.get(db, record_id)
        as_of = as_of or utc_today()

        base_amount = ZERO if record.is_terminal else max(record.remaining_amount, ZERO)
        interest, fine, days_late = overdue_charges(
            base_amount,
            record.due_date,
            as_of,
            settings.overdue_daily_interest_rate,
            settings.overdue_fine_rate,
        )
        if base_amount == ZERO:
            days_late = 0

        return {
            "record_id": record.id,
            "as_of": as_of,
            "days_late": days_late,
            "base_amount": base_amount,
            "suggested_interest": interest,
            "suggested_fine": fine,
            "total_with_charges": base_amount + interest + fine,
        }
