"""
Ledger API Endpoints.

Accounts payable and accounts receivable expose the same routes under
different prefixes. Both routers are built by one factory over the shared
engine; only the payment verb (pay / receive) differs.

Static paths are registered before /{record_id} so they are never parsed
as record ids.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Path, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.dependencies import acting_user, get_current_user
from ledger_backend.app.core.guards import LEDGER_APPROVERS, LEDGER_WRITERS, require_role
from ledger_backend.app.db.session import get_db
from ledger_backend.app.domain.ledger.directions import (
    LedgerDirectionAdapter, PAYABLE_ADAPTER, RECEIVABLE_ADAPTER
)
from ledger_backend.app.domain.ledger.engine import LedgerEngine
from ledger_backend.app.domain.ledger.queries import LedgerQueries, LedgerSearchFilters
from ledger_backend.app.models.ledger_enums import AccountStatus
from ledger_backend.app.schemas.ledger import (
    ApprovalRequest,
    CancelRequest,
    CounterpartyTotalsResponse,
    InstallmentPlanResponse,
    InstallmentRequest,
    LedgerRecordCreate,
    LedgerRecordListResponse,
    LedgerRecordResponse,
    LedgerRecordUpdate,
    OverdueChargesResponse,
    PaymentCommand,
    PaymentEntryResponse,
    StatusTotalResponse,
    SweepResponse,
    TotalsSummaryResponse,
)


def _records(records) -> List[LedgerRecordResponse]:
    return [LedgerRecordResponse.model_validate(record) for record in records]


def build_ledger_router(adapter: LedgerDirectionAdapter) -> APIRouter:
    """Create the router of one ledger direction."""
    router = APIRouter(prefix=adapter.route_prefix, tags=[adapter.tag])
    engine = LedgerEngine(adapter)
    queries = LedgerQueries(adapter)

    # Listings and aggregates

    @router.get("", response_model=LedgerRecordListResponse)
    async def search_records(
        page: int = Query(1, ge=1, description="Page number"),
        page_size: Optional[int] = Query(None, ge=1, description="Items per page (capped by configuration)"),
        counterparty_id: Optional[int] = Query(None),
        status_filter: Optional[AccountStatus] = Query(None, alias="status"),
        due_date_from: Optional[date] = Query(None),
        due_date_to: Optional[date] = Query(None),
        category_id: Optional[int] = Query(None),
        cost_center_id: Optional[int] = Query(None),
        requires_approval: Optional[bool] = Query(None),
        pending_approval: Optional[bool] = Query(None),
        search: Optional[str] = Query(None, max_length=100, description="Invoice, notes or counterparty name"),
        sort_by: str = Query("due_date"),
        sort_desc: bool = Query(True),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        """Paged, filtered search."""
        filters = LedgerSearchFilters(
            counterparty_id=counterparty_id,
            status=status_filter,
            due_date_from=due_date_from,
            due_date_to=due_date_to,
            category_id=category_id,
            cost_center_id=cost_center_id,
            requires_approval=requires_approval,
            pending_approval=pending_approval,
            search=search,
        )
        effective_page_size = min(page_size or settings.default_page_size, settings.max_page_size)
        items, total = await queries.search(db, filters, page, effective_page_size, sort_by, sort_desc)
        return LedgerRecordListResponse(
            items=_records(items), total=total, page=page, page_size=effective_page_size
        )

    @router.get("/overdue", response_model=List[LedgerRecordResponse])
    async def list_overdue(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return _records(await queries.overdue(db))

    @router.get("/due-soon", response_model=List[LedgerRecordResponse])
    async def list_due_soon(
        days: Optional[int] = Query(None, ge=0, le=365, description="Look-ahead window in days"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return _records(await queries.due_soon(db, days))

    @router.get("/pending-approval", response_model=List[LedgerRecordResponse])
    async def list_pending_approval(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return _records(await queries.pending_approval(db))

    @router.get("/totals/summary", response_model=TotalsSummaryResponse)
    async def totals_summary(
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return await queries.totals_summary(db)

    @router.get("/totals/by-status/{status_value}", response_model=StatusTotalResponse)
    async def total_by_status(
        status_value: AccountStatus = Path(..., description="Record status"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        total = await queries.total_by_status(db, status_value)
        return StatusTotalResponse(status=status_value, total=total)

    @router.get("/totals/by-counterparty/{counterparty_id}", response_model=CounterpartyTotalsResponse)
    async def totals_by_counterparty(
        counterparty_id: int = Path(..., description=f"{adapter.counterparty_label} ID"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return await queries.totals_by_counterparty(db, counterparty_id)

    @router.post("/update-overdue-status", response_model=SweepResponse)
    async def update_overdue_status(
        as_of: Optional[date] = Query(None, description="Reference date, defaults to today"),
        include_partially_paid: Optional[bool] = Query(None),
        current_user: dict = Depends(require_role(LEDGER_APPROVERS)),
        db: AsyncSession = Depends(get_db)
    ):
        """Run the overdue sweep for this direction on demand."""
        transitioned = await engine.sweep_overdue(
            db, now=as_of, include_partially_paid=include_partially_paid, actor=acting_user(current_user)
        )
        return SweepResponse(transitioned=transitioned)

    # Record lifecycle

    @router.post("", response_model=LedgerRecordResponse, status_code=status.HTTP_201_CREATED)
    async def create_record(
        payload: LedgerRecordCreate,
        response: Response,
        current_user: dict = Depends(require_role(LEDGER_WRITERS)),
        db: AsyncSession = Depends(get_db)
    ):
        record = await engine.create(db, payload, acting_user(current_user))
        response.headers["Location"] = f"/{settings.api_version}{adapter.route_prefix}/{record.id}"
        return LedgerRecordResponse.model_validate(record)

    @router.get("/{record_id}", response_model=LedgerRecordResponse)
    async def get_record(
        record_id: int = Path(..., description="Record ID"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return LedgerRecordResponse.model_validate(await queries.get(db, record_id))

    @router.put("/{record_id}", response_model=LedgerRecordResponse)
    async def update_record(
        payload: LedgerRecordUpdate,
        record_id: int = Path(..., description="Record ID"),
        current_user: dict = Depends(require_role(LEDGER_WRITERS)),
        db: AsyncSession = Depends(get_db)
    ):
        """Edit a record before any payment. The due date cannot be changed."""
        record = await engine.update(db, record_id, payload, acting_user(current_user))
        return LedgerRecordResponse.model_validate(record)

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_record(
        record_id: int = Path(..., description="Record ID"),
        current_user: dict = Depends(require_role(LEDGER_APPROVERS)),
        db: AsyncSession = Depends(get_db)
    ):
        await engine.delete(db, record_id, acting_user(current_user))
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @router.post("/{record_id}/cancel", response_model=LedgerRecordResponse)
    async def cancel_record(
        record_id: int = Path(..., description="Record ID"),
        body: Optional[CancelRequest] = None,
        current_user: dict = Depends(require_role(LEDGER_APPROVERS)),
        db: AsyncSession = Depends(get_db)
    ):
        reason = body.reason if body else None
        record = await engine.cancel(db, record_id, acting_user(current_user), reason)
        return LedgerRecordResponse.model_validate(record)

    @router.post("/{record_id}/approve", response_model=LedgerRecordResponse)
    async def approve_record(
        record_id: int = Path(..., description="Record ID"),
        body: Optional[ApprovalRequest] = None,
        current_user: dict = Depends(require_role(LEDGER_APPROVERS)),
        db: AsyncSession = Depends(get_db)
    ):
        notes = body.notes if body else None
        record = await engine.approve(db, record_id, acting_user(current_user), notes)
        return LedgerRecordResponse.model_validate(record)

    async def settle_record(
        payload: PaymentCommand,
        record_id: int = Path(..., description="Record ID"),
        current_user: dict = Depends(require_role(LEDGER_WRITERS)),
        db: AsyncSession = Depends(get_db)
    ):
        """Apply a full or partial payment with optional adjustments."""
        record = await engine.apply_payment(db, record_id, payload, acting_user(current_user))
        return LedgerRecordResponse.model_validate(record)

    router.add_api_route(
        f"/{{record_id}}/{adapter.payment_verb}",
        settle_record,
        methods=["POST"],
        response_model=LedgerRecordResponse,
        name=f"{adapter.payment_verb}_record",
    )

    # Installments and history

    @router.post(
        "/{record_id}/installments",
        response_model=InstallmentPlanResponse,
        status_code=status.HTTP_201_CREATED
    )
    async def generate_installments(
        payload: InstallmentRequest,
        record_id: int = Path(..., description="Base record ID"),
        current_user: dict = Depends(require_role(LEDGER_WRITERS)),
        db: AsyncSession = Depends(get_db)
    ):
        """Replace a pending record with `count` monthly installments."""
        plan, children = await engine.generate_installments(
            db, record_id, payload.count, acting_user(current_user), payload.interest_rate
        )
        return InstallmentPlanResponse(
            plan_id=plan.id,
            base_record_id=plan.base_record_id,
            installment_count=plan.installment_count,
            monthly_interest_rate=plan.monthly_interest_rate,
            installments=_records(children),
        )

    @router.get("/{record_id}/installments", response_model=List[LedgerRecordResponse])
    async def list_installments(
        record_id: int = Path(..., description="Installment or base record ID"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        return _records(await queries.installments_of(db, record_id))

    @router.get("/{record_id}/payments", response_model=List[PaymentEntryResponse])
    async def list_payments(
        record_id: int = Path(..., description="Record ID"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        entries = await queries.payments_of(db, record_id)
        return [PaymentEntryResponse.model_validate(entry) for entry in entries]

    @router.get("/{record_id}/overdue-charges", response_model=OverdueChargesResponse)
    async def suggest_overdue_charges(
        record_id: int = Path(..., description="Record ID"),
        as_of: Optional[date] = Query(None, description="Payment date to price, defaults to today"),
        current_user: dict = Depends(get_current_user),
        db: AsyncSession = Depends(get_db)
    ):
        """Suggested late interest and fine to pass as payment adjustments."""
        return await queries.suggest_overdue_charges(db, record_id, as_of)

    return router


payable_router = build_ledger_router(PAYABLE_ADAPTER)
receivable_router = build_ledger_router(RECEIVABLE_ADAPTER)
