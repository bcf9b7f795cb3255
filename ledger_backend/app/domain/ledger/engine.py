"""
Ledger Engine (Domain Logic).

One engine holds every rule of the payable/receivable lifecycle; a
direction adapter supplies the tables and names. All writes run inside an
explicit unit of work and are retried on optimistic-lock conflicts.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple, Union

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from ledger_backend.app.core.config import settings
from ledger_backend.app.core.exceptions import (
    ApprovalRequiredError,
    InvalidStateError,
    ResourceNotFoundError,
    ValidationError,
)
from ledger_backend.app.core.reliability import retry_on_conflict
from ledger_backend.app.db.session import unit_of_work
from ledger_backend.app.domain.ledger.directions import ActingUser, LedgerDirectionAdapter
from ledger_backend.app.domain.ledger.installments import plan_installments
from ledger_backend.app.domain.ledger.money import ZERO, net_amount, to_money, utc_today, within_tolerance
from ledger_backend.app.domain.ledger.state_machine import derive_payment_status, ensure_transition
from ledger_backend.app.models.installment_plan import InstallmentPlan
from ledger_backend.app.models.ledger_enums import AccountStatus, PaymentMethod
from ledger_backend.app.models.payment_entry import PaymentEntry
from ledger_backend.app.schemas.ledger import LedgerRecordCreate, LedgerRecordUpdate, PaymentCommand
from ledger_backend.app.services.audit import AuditAction, log_event

logger = logging.getLogger(__name__)

MONETARY_FIELDS = ("original_amount", "discount_amount", "interest_amount", "fine_amount")
EDITABLE_STATUSES = (AccountStatus.PENDING, AccountStatus.OVERDUE)


def validate_method_fields(
    method: PaymentMethod,
    bank_slip_number: Optional[str],
    pix_key: Optional[str],
) -> None:
    """Method-specific fields are only accepted alongside their method."""
    if bank_slip_number and method != PaymentMethod.BANK_SLIP:
        raise ValidationError(
            "bank_slip_number is only valid for BANK_SLIP payments",
            {"payment_method": method.value}
        )
    if pix_key and method != PaymentMethod.PIX:
        raise ValidationError(
            "pix_key is only valid for PIX payments",
            {"payment_method": method.value}
        )


def validated_amounts(
    original, discount, interest, fine
) -> Tuple[Decimal, Decimal, Decimal, Decimal, Decimal]:
    """Quantize the amount components and derive the net amount."""
    original = to_money(original, "original_amount")
    discount = to_money(discount, "discount_amount")
    interest = to_money(interest, "interest_amount")
    fine = to_money(fine, "fine_amount")
    if original <= ZERO:
        raise ValidationError("original_amount must be greater than zero", {"original_amount": str(original)})
    return original, discount, interest, fine, net_amount(original, discount, interest, fine)


def as_of_date(now: Union[date, datetime, None]) -> date:
    if now is None:
        return utc_today()
    if isinstance(now, datetime):
        return now.date()
    return now


def append_note(existing: Optional[str], note: str) -> str:
    if not existing:
        return note
    return f"{existing}\n{note}"


class LedgerEngine:
    """
    Lifecycle operations for one ledger direction.

    Every mutating operation takes the acting user explicitly and writes its
    audit row in the same transaction as the change.
    """

    def __init__(self, adapter: LedgerDirectionAdapter):
        self.adapter = adapter
        self.model = adapter.model

    # Helpers

    async def _get_record(self, db: AsyncSession, record_id: int):
        record = await db.get(self.model, record_id, populate_existing=True)
        if record is None:
            raise ResourceNotFoundError(self.adapter.label, record_id)
        return record

    async def _ensure_counterparty(self, db: AsyncSession, counterparty_id: Optional[int]) -> None:
        if counterparty_id is None:
            raise ValidationError(f"{self.adapter.counterparty_label} is required", {"field": "counterparty_id"})
        counterparty = await db.get(self.adapter.counterparty_model, counterparty_id)
        if counterparty is None:
            raise ResourceNotFoundError(self.adapter.counterparty_label, counterparty_id)
        if not counterparty.is_active:
            raise ValidationError(
                f"{self.adapter.counterparty_label} {counterparty_id} is inactive",
                {"counterparty_id": counterparty_id}
            )

    async def _audit(self, db: AsyncSession, action: str, actor: Optional[ActingUser], record_id=None, metadata=None):
        await log_event(
            db,
            action=action,
            actor_id=actor.user_id if actor else None,
            actor_username=actor.username if actor else None,
            direction=self.adapter.direction.value,
            record_id=record_id,
            metadata=metadata,
        )

    def _log_transition(self, record_id: int, old: AccountStatus, new: AccountStatus, actor: Optional[ActingUser]):
        logger.info(
            "%s %s: %s -> %s by %s",
            self.adapter.direction.value, record_id, old.value, new.value,
            actor.user_id if actor else "system"
        )

    # Record store operations

    async def create(self, db: AsyncSession, data: LedgerRecordCreate, actor: ActingUser):
        """
        Create a record in PENDING status.

        Raises:
            ResourceNotFoundError: counterparty does not exist
            ValidationError: inactive counterparty, invalid amounts or method fields
        """
        original, discount, interest, fine, net = validated_amounts(
            data.original_amount, data.discount_amount, data.interest_amount, data.fine_amount
        )
        validate_method_fields(data.payment_method, data.bank_slip_number, data.pix_key)

        async with unit_of_work(db):
            await self._ensure_counterparty(db, data.counterparty_id)

            record = self.model(
                counterparty_id=data.counterparty_id,
                invoice_number=data.invoice_number,
                original_amount=original,
                discount_amount=discount,
                interest_amount=interest,
                fine_amount=fine,
                net_amount=net,
                additional_discount_amount=ZERO,
                additional_interest_amount=ZERO,
                additional_fine_amount=ZERO,
                paid_amount=ZERO,
                issue_date=data.issue_date or utc_today(),
                due_date=data.due_date,
                status=AccountStatus.PENDING,
                payment_method=data.payment_method,
                bank_slip_number=data.bank_slip_number,
                pix_key=data.pix_key,
                requires_approval=self.adapter.needs_approval(net, data.requires_approval),
                approval_requested=data.requires_approval,
                category_id=data.category_id,
                cost_center_id=data.cost_center_id,
                notes=data.notes,
                internal_notes=data.internal_notes,
                created_by_user_id=actor.user_id,
            )
            db.add(record)
            await db.flush()

            await self._audit(db, self.adapter.created_action, actor, record.id, {
                "net_amount": str(net),
                "due_date": data.due_date.isoformat(),
                "requires_approval": record.requires_approval,
            })

        await db.refresh(record)
        logger.info(
            "%s %s created (net=%s, approval=%s) by %s",
            self.adapter.direction.value, record.id, net, record.requires_approval, actor.user_id
        )
        return record

    async def update(self, db: AsyncSession, record_id: int, data: LedgerRecordUpdate, actor: ActingUser):
        """
        Update a record that has not received any payment.

        Changing a monetary field clears an existing approval, and the
        approval threshold is applied again to the new net amount.

        Raises:
            ResourceNotFoundError: unknown record or counterparty
            InvalidStateError: record is not PENDING/OVERDUE or already has payments
            ValidationError: invalid amounts or method fields
        """
        changes = data.model_dump(exclude_unset=True)

        async def operation():
            async with unit_of_work(db):
                record = await self._get_record(db, record_id)
                if record.status not in EDITABLE_STATUSES or record.paid_amount > ZERO:
                    raise InvalidStateError(
                        f"{self.adapter.label} can only be edited while pending or overdue and unpaid",
                        {"status": record.status.value, "paid_amount": str(record.paid_amount)}
                    )

                if "counterparty_id" in changes:
                    await self._ensure_counterparty(db, changes["counterparty_id"])
                    record.counterparty_id = changes["counterparty_id"]

                original, discount, interest, fine, net = validated_amounts(
                    *(changes.get(field, getattr(record, field)) for field in MONETARY_FIELDS)
                )
                monetary_changed = (original, discount, interest, fine) != (
                    record.original_amount, record.discount_amount, record.interest_amount, record.fine_amount
                )

                method = changes.get("payment_method", record.payment_method)
                if method is None:
                    raise ValidationError("payment_method cannot be null", {"field": "payment_method"})
                bank_slip_number = changes.get("bank_slip_number", record.bank_slip_number)
                pix_key = changes.get("pix_key", record.pix_key)
                if "bank_slip_number" not in changes and method != PaymentMethod.BANK_SLIP:
                    bank_slip_number = None
                if "pix_key" not in changes and method != PaymentMethod.PIX:
                    pix_key = None
                validate_method_fields(method, bank_slip_number, pix_key)

                if "issue_date" in changes:
                    if changes["issue_date"] is None:
                        raise ValidationError("issue_date cannot be null", {"field": "issue_date"})
                    record.issue_date = changes["issue_date"]
                for field in ("invoice_number", "category_id", "cost_center_id", "notes", "internal_notes"):
                    if field in changes:
                        setattr(record, field, changes[field])

                record.original_amount = original
                record.discount_amount = discount
                record.interest_amount = interest
                record.fine_amount = fine
                record.net_amount = net
                record.payment_method = method
                record.bank_slip_number = bank_slip_number
                record.pix_key = pix_key

                if changes.get("requires_approval") is not None:
                    requires_approval = self.adapter.needs_approval(net, changes["requires_approval"])
                    record.approval_requested = changes["requires_approval"]
                else:
                    requires_approval = record.requires_approval or self.adapter.needs_approval(net)

                approval_cleared = record.is_approved and (monetary_changed or not requires_approval)
                if approval_cleared:
                    record.approved_by_user_id = None
                    record.approval_date = None
                    record.approval_notes = None
                record.requires_approval = requires_approval

                await db.flush()
                await self._audit(db, self.adapter.updated_action, actor, record.id, {
                    "changed_fields": sorted(changes),
                    "net_amount": str(net),
                    "approval_cleared": approval_cleared,
                })
            return record

        record = await retry_on_conflict(operation, session=db)
        await db.refresh(record)
        logger.info("%s %s updated by %s", self.adapter.direction.value, record.id, actor.user_id)
        return record

    async def delete(self, db: AsyncSession, record_id: int, actor: ActingUser) -> None:
        """
        Hard-delete a record.

        Only unpaid PENDING records that are not installments can be deleted.
        """
        async def operation():
            async with unit_of_work(db):
                record = await self._get_record(db, record_id)
                if record.status != AccountStatus.PENDING or record.paid_amount > ZERO:
                    raise InvalidStateError(
                        f"Only pending, unpaid {self.adapter.label.lower()} records can be deleted",
                        {"status": record.status.value, "paid_amount": str(record.paid_amount)}
                    )
                if record.parent_id is not None:
                    raise InvalidStateError(
                        "Installments cannot be deleted individually; cancel them instead",
                        {"parent_id": record.parent_id}
                    )
                snapshot = {
                    "net_amount": str(record.net_amount),
                    "counterparty_id": record.counterparty_id,
                    "invoice_number": record.invoice_number,
                }
                await db.delete(record)
                await db.flush()
                await self._audit(db, self.adapter.deleted_action, actor, record_id, snapshot)

        await retry_on_conflict(operation, session=db)
        logger.info("%s %s deleted by %s", self.adapter.direction.value, record_id, actor.user_id)

    async def cancel(self, db: AsyncSession, record_id: int, actor: ActingUser, reason: Optional[str] = None):
        """
        Administratively cancel a record.

        Raises:
            InvalidStateError: record is terminal or already received a payment
        """
        async def operation():
            async with unit_of_work(db):
                record = await self._get_record(db, record_id)
                ensure_transition(record.status, AccountStatus.CANCELLED)
                if record.paid_amount > ZERO:
                    raise InvalidStateError(
                        f"{self.adapter.label} with payments cannot be cancelled",
                        {"paid_amount": str(record.paid_amount)}
                    )

                old_status = record.status
                record.status = AccountStatus.CANCELLED
                record.internal_notes = append_note(
                    record.internal_notes, f"Cancelled by user {actor.user_id}: {reason or 'no reason given'}"
                )
                await db.flush()
                await self._audit(db, self.adapter.cancelled_action, actor, record.id, {
                    "previous_status": old_status.value,
                    "reason": reason,
                })
            return record, old_status

        record, old_status = await retry_on_conflict(operation, session=db)
        await db.refresh(record)
        self._log_transition(record.id, old_status, record.status, actor)
        return record

    # Approval workflow

    async def approve(self, db: AsyncSession, record_id: int, actor: ActingUser, notes: Optional[str] = None):
        """
        Sign off a gated record so it can be paid. Status is unchanged.

        Raises:
            ResourceNotFoundError: unknown record
            InvalidStateError: record does not need approval, is already
                approved, or is terminal
        """
        async def operation():
            async with unit_of_work(db):
                record = await self._get_record(db, record_id)
                if not record.requires_approval:
                    raise InvalidStateError(
                        f"{self.adapter.label} {record_id} does not require approval",
                        {"requires_approval": False}
                    )
                if record.is_approved:
                    raise InvalidStateError(
                        f"{self.adapter.label} {record_id} is already approved",
                        {"approved_by_user_id": record.approved_by_user_id}
                    )
                if record.is_terminal:
                    raise InvalidStateError(
                        f"Cannot approve a {record.status.value} record",
                        {"status": record.status.value}
                    )

                record.approved_by_user_id = actor.user_id
                record.approval_date = datetime.now(timezone.utc)
                record.approval_notes = notes
                await db.flush()
                await self._audit(db, self.adapter.approved_action, actor, record.id, {"notes": notes})
            return record

        record = await retry_on_conflict(operation, session=db)
        await db.refresh(record)
        logger.info("%s %s approved by %s", self.adapter.direction.value, record.id, actor.user_id)
        return record

    # Payment processor

    async def apply_payment(self, db: AsyncSession, record_id: int, command: PaymentCommand, actor: ActingUser):
        """
        Apply a full or partial payment, folding in payment-time adjustments.

        Adjustments accumulate on the record; net_amount is never changed.
        The whole check-and-write is retried if another writer touched the
        record in between, so two racing payments can never both push the
        balance past the amount due.

        Raises:
            ResourceNotFoundError: unknown record
            InvalidStateError: record is PAID or CANCELLED
            ApprovalRequiredError: record is gated and not approved
            ValidationError: non-positive amount, negative adjustment,
                method field mismatch or over-payment
        """
        async def operation():
            async with unit_of_work(db):
                record = await self._get_record(db, record_id)
                if record.is_terminal:
                    raise InvalidStateError(
                        f"Cannot register payment on a {record.status.value} record",
                        {"status": record.status.value}
                    )
                if record.requires_approval and not record.is_approved:
                    raise ApprovalRequiredError(self.adapter.label, record.id)

                amount = to_money(command.amount, "amount")
                if amount <= ZERO:
                    raise ValidationError("Payment amount must be greater than zero", {"amount": str(amount)})
                adjustments = {
                    "additional_discount": to_money(command.additional_discount, "additional_discount"),
                    "additional_interest": to_money(command.additional_interest, "additional_interest"),
                    "additional_fine": to_money(command.additional_fine, "additional_fine"),
                }
                for field, value in adjustments.items():
                    if value < ZERO:
                        raise ValidationError(f"{field} cannot be negative", {"field": field})
                validate_method_fields(command.payment_method, command.bank_slip_number, command.pix_key)

                total_discount = record.additional_discount_amount + adjustments["additional_discount"]
                total_interest = record.additional_interest_amount + adjustments["additional_interest"]
                total_fine = record.additional_fine_amount + adjustments["additional_fine"]
                effective_due = record.net_amount + total_interest + total_fine - total_discount
                if effective_due < ZERO:
                    raise ValidationError(
                        "Adjustments would make the amount due negative",
                        {"effective_due_amount": str(effective_due)}
                    )

                new_paid = record.paid_amount + amount
                if not within_tolerance(new_paid, effective_due, settings.money_rounding_tolerance):
                    raise ValidationError(
                        "Payment exceeds the amount due",
                        {
                            "amount": str(amount),
                            "remaining_amount": str(effective_due - record.paid_amount),
                        }
                    )

                old_status = record.status
                new_status = derive_payment_status(new_paid, effective_due)
                ensure_transition(old_status, new_status)
                # A settling overshoot within tolerance is kept on the payment entry only
                overshoot = max(new_paid - effective_due, ZERO)
                new_paid -= overshoot

                payment_date = command.payment_date or utc_today()
                record.additional_discount_amount = total_discount
                record.additional_interest_amount = total_interest
                record.additional_fine_amount = total_fine
                record.paid_amount = new_paid
                record.status = new_status
                record.payment_date = payment_date
                record.payment_method = command.payment_method
                if command.payment_method == PaymentMethod.BANK_SLIP:
                    record.bank_slip_number = command.bank_slip_number or record.bank_slip_number
                else:
                    record.bank_slip_number = None
                if command.payment_method == PaymentMethod.PIX:
                    record.pix_key = command.pix_key or record.pix_key
                else:
                    record.pix_key = None
                if command.proof_of_payment_ref:
                    record.proof_of_payment_ref = command.proof_of_payment_ref
                record.settled_by_user_id = actor.user_id

                db.add(PaymentEntry(
                    direction=self.adapter.direction,
                    record_id=record.id,
                    amount=amount,
                    additional_discount=adjustments["additional_discount"],
                    additional_interest=adjustments["additional_interest"],
                    additional_fine=adjustments["additional_fine"],
                    effective_due_amount=effective_due,
                    paid_amount_after=new_paid,
                    overshoot_amount=overshoot,
                    status_after=new_status,
                    payment_method=command.payment_method,
                    payment_date=payment_date,
                    proof_of_payment_ref=command.proof_of_payment_ref,
                    created_by_user_id=actor.user_id,
                ))
                await db.flush()

                await self._audit(db, self.adapter.settled_action, actor, record.id, {
                    "amount": str(amount),
                    "paid_amount": str(new_paid),
                    "effective_due_amount": str(effective_due),
                    "overshoot_amount": str(overshoot),
                    "previous_status": old_status.value,
                    "status": new_status.value,
                })
            return record, old_status

        record, old_status = await retry_on_conflict(operation, session=db)
        await db.refresh(record)
        self._log_transition(record.id, old_status, record.status, actor)
        return record

    # Installment generator

    async def generate_installments(
        self,
        db: AsyncSession,
        record_id: int,
        count: int,
        actor: ActingUser,
        interest_rate: Optional[Decimal] = None,
    ) -> Tuple[InstallmentPlan, List]:
        """
        Replace a pending record with an installment plan.

        Creates the plan anchor and `count` children in one transaction and
        cancels the base record, so totals never count the same debt twice.

        Raises:
            ResourceNotFoundError: unknown record
            InvalidStateError: base is not pending and unpaid, or is itself an installment
            ValidationError: count out of range or amount too small to split
        """
        if isinstance(interest_rate, float):
            raise ValidationError("interest_rate must be a decimal, not a float", {"field": "interest_rate"})

        async def operation():
            async with unit_of_work(db):
                base = await self._get_record(db, record_id)
                if base.parent_id is not None:
                    raise InvalidStateError(
                        "An installment cannot be split again",
                        {"parent_id": base.parent_id}
                    )
                if base.status != AccountStatus.PENDING or base.paid_amount > ZERO:
                    raise InvalidStateError(
                        "Installments can only be generated from a pending, unpaid record",
                        {"status": base.status.value, "paid_amount": str(base.paid_amount)}
                    )

                drafts = plan_installments(
                    base.original_amount, count, base.due_date, base.invoice_number, interest_rate
                )

                plan = InstallmentPlan(
                    direction=self.adapter.direction,
                    base_record_id=base.id,
                    installment_count=count,
                    monthly_interest_rate=interest_rate,
                    total_principal=base.original_amount,
                    created_by_user_id=actor.user_id,
                )
                db.add(plan)
                await db.flush()

                # An unapproved manual gate carries over to every child
                inherited_gate = base.approval_requested and not base.is_approved
                children = []
                for draft in drafts:
                    net = net_amount(draft.original_amount, ZERO, draft.interest_amount, ZERO)
                    child = self.model(
                        counterparty_id=base.counterparty_id,
                        invoice_number=draft.invoice_number,
                        original_amount=draft.original_amount,
                        discount_amount=ZERO,
                        interest_amount=draft.interest_amount,
                        fine_amount=ZERO,
                        net_amount=net,
                        additional_discount_amount=ZERO,
                        additional_interest_amount=ZERO,
                        additional_fine_amount=ZERO,
                        paid_amount=ZERO,
                        issue_date=base.issue_date,
                        due_date=draft.due_date,
                        status=AccountStatus.PENDING,
                        payment_method=base.payment_method,
                        pix_key=base.pix_key if base.payment_method == PaymentMethod.PIX else None,
                        requires_approval=self.adapter.needs_approval(net, inherited_gate),
                        approval_requested=inherited_gate,
                        category_id=base.category_id,
                        cost_center_id=base.cost_center_id,
                        parent_id=plan.id,
                        installment_number=draft.number,
                        installment_count=draft.count,
                        notes=base.notes,
                        created_by_user_id=actor.user_id,
                    )
                    db.add(child)
                    children.append(child)

                ensure_transition(base.status, AccountStatus.CANCELLED)
                base.status = AccountStatus.CANCELLED
                base.internal_notes = append_note(
                    base.internal_notes, f"Replaced by installment plan {plan.id} ({count} installments)"
                )
                await db.flush()

                await self._audit(db, self.adapter.installments_action, actor, base.id, {
                    "plan_id": plan.id,
                    "count": count,
                    "interest_rate": str(interest_rate) if interest_rate is not None else None,
                    "installment_ids": [child.id for child in children],
                })
            return plan, children

        plan, children = await retry_on_conflict(operation, session=db)
        for child in children:
            await db.refresh(child)
        logger.info(
            "%s %s split into %d installments (plan %s) by %s",
            self.adapter.direction.value, record_id, count, plan.id, actor.user_id
        )
        return plan, children

    # Overdue sweeper

    async def sweep_overdue(
        self,
        db: AsyncSession,
        now: Union[date, datetime, None] = None,
        include_partially_paid: Optional[bool] = None,
        actor: Optional[ActingUser] = None,
    ) -> int:
        """
        Mark records whose due date has passed as OVERDUE.

        A single conditional UPDATE: already-overdue and terminal records
        never match, so re-running is a no-op. The version column is bumped
        so a payment racing the sweep fails its compare-and-set and retries.

        Returns:
            Number of records transitioned
        """
        today = as_of_date(now)
        if include_partially_paid is None:
            include_partially_paid = settings.overdue_sweep_include_partially_paid

        statuses = [AccountStatus.PENDING]
        if include_partially_paid:
            statuses.append(AccountStatus.PARTIALLY_PAID)

        async with unit_of_work(db):
            stmt = (
                update(self.model)
                .where(self.model.status.in_(statuses), self.model.due_date < today)
                .values(status=AccountStatus.OVERDUE, version=self.model.version + 1)
                .execution_options(synchronize_session=False)
            )
            result = await db.execute(stmt)
            transitioned = result.rowcount

            await self._audit(db, AuditAction.OVERDUE_SWEEP_COMPLETED, actor, None, {
                "as_of": today.isoformat(),
                "transitioned": transitioned,
                "include_partially_paid": include_partially_paid,
            })

        logger.info(
            "Overdue sweep for %s as of %s transitioned %d records",
            self.adapter.direction.value, today.isoformat(), transitioned
        )
        return transitioned
