"""
Ledger Pydantic schemas.

Request and response models shared by accounts payable and accounts
receivable. Amounts are Decimals end to end and serialize as strings.
"""

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from ledger_backend.app.models.ledger_enums import AccountStatus, PaymentMethod


class LedgerRecordCreate(BaseModel):
    """Schema for creating a payable or receivable."""
    counterparty_id: int = Field(
        ...,
        validation_alias=AliasChoices("counterparty_id", "supplier_id", "customer_id"),
        description="Supplier (payable) or customer (receivable) id"
    )
    invoice_number: Optional[str] = Field(None, max_length=50)
    original_amount: Decimal
    discount_amount: Decimal = Decimal("0.00")
    interest_amount: Decimal = Decimal("0.00")
    fine_amount: Decimal = Decimal("0.00")
    issue_date: Optional[date] = Field(None, description="Defaults to today")
    due_date: date
    payment_method: PaymentMethod = PaymentMethod.BANK_SLIP
    bank_slip_number: Optional[str] = Field(None, max_length=100)
    pix_key: Optional[str] = Field(None, max_length=100)
    requires_approval: bool = False
    category_id: Optional[int] = None
    cost_center_id: Optional[int] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None


class LedgerRecordUpdate(BaseModel):
    """
    Schema for updating a record before any payment.

    due_date is deliberately absent: the schedule is fixed at creation.
    """
    counterparty_id: Optional[int] = Field(
        None,
        validation_alias=AliasChoices("counterparty_id", "supplier_id", "customer_id")
    )
    invoice_number: Optional[str] = Field(None, max_length=50)
    original_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    interest_amount: Optional[Decimal] = None
    fine_amount: Optional[Decimal] = None
    issue_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    bank_slip_number: Optional[str] = Field(None, max_length=100)
    pix_key: Optional[str] = Field(None, max_length=100)
    requires_approval: Optional[bool] = None
    category_id: Optional[int] = None
    cost_center_id: Optional[int] = None
    notes: Optional[str] = None
    internal_notes: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class PaymentCommand(BaseModel):
    """A single payment (or receipt) applied to a record."""
    amount: Decimal = Field(..., description="Amount paid in this event")
    payment_method: PaymentMethod
    payment_date: Optional[date] = Field(None, description="Defaults to today")
    proof_of_payment_ref: Optional[str] = Field(None, max_length=500)
    bank_slip_number: Optional[str] = Field(None, max_length=100)
    pix_key: Optional[str] = Field(None, max_length=100)
    additional_discount: Decimal = Decimal("0.00")
    additional_interest: Decimal = Decimal("0.00")
    additional_fine: Decimal = Decimal("0.00")


class ApprovalRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class InstallmentRequest(BaseModel):
    """Schema for splitting a record into an installment plan."""
    count: int = Field(..., description="Number of installments (2-120)")
    interest_rate: Optional[Decimal] = Field(None, description="Monthly interest rate in percent")


class LedgerRecordResponse(BaseModel):
    """Schema for ledger record response."""
    id: int
    counterparty_id: int
    invoice_number: Optional[str]
    original_amount: Decimal
    discount_amount: Decimal
    interest_amount: Decimal
    fine_amount: Decimal
    net_amount: Decimal
    additional_discount_amount: Decimal
    additional_interest_amount: Decimal
    additional_fine_amount: Decimal
    effective_due_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    issue_date: date
    due_date: date
    payment_date: Optional[date]
    status: AccountStatus
    payment_method: PaymentMethod
    bank_slip_number: Optional[str]
    pix_key: Optional[str]
    proof_of_payment_ref: Optional[str]
    requires_approval: bool
    approval_requested: bool
    is_approved: bool
    approved_by_user_id: Optional[int]
    approval_date: Optional[datetime]
    approval_notes: Optional[str]
    category_id: Optional[int]
    cost_center_id: Optional[int]
    parent_id: Optional[int]
    installment_number: Optional[int]
    installment_count: Optional[int]
    notes: Optional[str]
    internal_notes: Optional[str]
    created_by_user_id: int
    settled_by_user_id: Optional[int]
    version: int
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def days_overdue(self) -> int:
        if self.status in (AccountStatus.PAID, AccountStatus.CANCELLED):
            return 0
        return max((date.today() - self.due_date).days, 0)

    model_config = ConfigDict(from_attributes=True)


class LedgerRecordListResponse(BaseModel):
    """Schema for paginated record list."""
    items: List[LedgerRecordResponse]
    total: int
    page: int
    page_size: int


class InstallmentPlanResponse(BaseModel):
    """Result of splitting a record into installments."""
    plan_id: int
    base_record_id: int
    installment_count: int
    monthly_interest_rate: Optional[Decimal]
    installments: List[LedgerRecordResponse]


class PaymentEntryResponse(BaseModel):
    """Schema for one entry of a record's payment history."""
    id: int
    record_id: int
    amount: Decimal
    additional_discount: Decimal
    additional_interest: Decimal
    additional_fine: Decimal
    effective_due_amount: Decimal
    paid_amount_after: Decimal
    overshoot_amount: Decimal
    status_after: AccountStatus
    payment_method: PaymentMethod
    payment_date: date
    proof_of_payment_ref: Optional[str]
    created_by_user_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class StatusTotalResponse(BaseModel):
    status: AccountStatus
    total: Decimal


class TotalsSummaryResponse(BaseModel):
    """Net totals for every status."""
    totals: List[StatusTotalResponse]
    outstanding_total: Decimal


class CounterpartyTotalsResponse(BaseModel):
    """Aggregates for one supplier or customer, cancelled records excluded."""
    counterparty_id: int
    record_count: int
    net_total: Decimal
    paid_total: Decimal
    outstanding_total: Decimal


class OverdueChargesResponse(BaseModel):
    """Suggested late-payment adjustments; nothing is persisted."""
    record_id: int
    as_of: date
    days_late: int
    base_amount: Decimal
    suggested_interest: Decimal
    suggested_fine: Decimal
    total_with_charges: Decimal


class SweepResponse(BaseModel):
    transitioned: int
