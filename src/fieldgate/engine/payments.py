"""Payment operations - admin edits with an audit trail on the ledger."""

import logging
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.config import settings
from fieldgate.db.repositories import PaymentRepository, TaskRepository
from fieldgate.engine.checkin import validate_files
from fieldgate.engine.errors import Conflict, Forbidden, NotFound, ValidationError
from fieldgate.engine.ledger import EventLedger
from fieldgate.engine.revenue import is_whole_minor_units
from fieldgate.integrations.storage import Storage
from fieldgate.models import Actor, EventAction, Payment, Task, UploadedFile, task_topic
from fieldgate.models.event import (
    ExpectedRevenueUpdatedPayload,
    FieldChange,
    PaymentUpdatedPayload,
)
from fieldgate.models.payment import PaymentSummary, TaskPayments
from fieldgate.observability.metrics import metrics
from fieldgate.utils.time import utc_now

logger = logging.getLogger(__name__)

_UNSET: Any = object()


def _require_admin(actor: Actor, what: str) -> None:
    if not actor.is_admin:
        raise Forbidden(f"Only admins can {what}", "INSUFFICIENT_PERMISSIONS")


def _validate_amount(amount: Decimal, field_name: str = "amount") -> None:
    if amount < 0:
        raise ValidationError(f"{field_name} must not be negative", "INVALID_AMOUNT")
    if amount > settings.max_payment_amount:
        raise ValidationError(f"{field_name} is too large", "INVALID_AMOUNT")
    if not is_whole_minor_units(amount):
        raise ValidationError(
            f"{field_name} must be a multiple of {settings.revenue_minor_unit}",
            "INVALID_AMOUNT",
        )


def _changed_fields(payment: Payment, requested: dict[str, Any]) -> dict[str, Any]:
    """Requested values that differ from what ``payment`` holds now."""
    return {
        name: value for name, value in requested.items() if getattr(payment, name) != value
    }


class PaymentEngine:
    """Payment reads and admin edits."""

    def __init__(self, session: AsyncSession, storage: Optional[Storage] = None):
        self.session = session
        self.storage = storage
        self.tasks = TaskRepository(session)
        self.payments = PaymentRepository(session)
        self.ledger = EventLedger(session)

    async def get_task_payments(self, task_id: int) -> TaskPayments:
        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        payments = await self.payments.list_for_task(task_id)
        total = sum((p.amount for p in payments), Decimal("0"))
        return TaskPayments(
            payments=payments,
            summary=PaymentSummary(
                expected_revenue=task.expected_revenue,
                total_collected=total,
                has_payment=bool(payments),
            ),
        )

    async def update_payment(
        self,
        payment_id: UUID,
        actor: Actor,
        edit_reason: str,
        amount: Optional[Decimal] = _UNSET,
        notes: Optional[str] = _UNSET,
        invoice: Optional[UploadedFile] = None,
    ) -> Payment:
        """
        Edit a collected payment.

        Admin only. Every call appends a PAYMENT_UPDATED event with the old and
        new value of each changed field and the mandatory edit reason. Old
        values are read inside the writing transaction, so an edit committed
        while the invoice was uploading is diffed against, not overwritten.
        """
        _require_admin(actor, "edit payments")

        reason = (edit_reason or "").strip()
        if not (
            settings.payment_edit_reason_min_length
            <= len(reason)
            <= settings.payment_edit_reason_max_length
        ):
            raise ValidationError(
                f"Edit reason must be between {settings.payment_edit_reason_min_length} and "
                f"{settings.payment_edit_reason_max_length} characters",
                "INVALID_EDIT_REASON",
            )

        requested: dict[str, Any] = {}
        if amount is not _UNSET:
            if amount is None or amount <= 0:
                raise ValidationError("amount must be positive", "INVALID_AMOUNT")
            _validate_amount(amount)
            requested["amount"] = amount
        if notes is not _UNSET:
            if notes and len(notes) > settings.max_payment_notes_length:
                raise ValidationError("Payment notes are too long", "NOTES_TOO_LONG")
            requested["notes"] = notes
        if invoice is not None:
            validate_files([invoice], 1, 1, label="invoice files")

        current = await self.payments.get(payment_id)
        if current is None:
            raise NotFound("Payment", payment_id)
        if not _changed_fields(current, requested) and invoice is None:
            raise ValidationError("Nothing to update", "NO_CHANGES")

        # Upload outside the transaction
        await self.session.commit()
        if invoice is not None:
            if self.storage is None:
                raise ValidationError("Invoice upload is not available", "STORAGE_UNAVAILABLE")
            (invoice_ref,) = await self.storage.upload([invoice])
            requested["invoice_attachment_ref"] = invoice_ref.ref_id

        now = utc_now()
        async with self.session.begin():
            fresh = await self.payments.get(payment_id, for_update=True)
            if fresh is None:
                raise NotFound("Payment", payment_id)
            changes = _changed_fields(fresh, requested)
            if not changes:
                raise ValidationError("Nothing to update", "NO_CHANGES")

            updated = await self.payments.update(payment_id, fresh.updated_at, now, **changes)
            if updated is None:
                metrics.inc_counter("payment.update.conflict")
                logger.warning("Lost edit race on payment %s (admin %s)", payment_id, actor.id)
                raise Conflict(f"Payment {payment_id} changed concurrently", "PAYMENT_CHANGED")

            diff = {
                name: FieldChange(old=getattr(fresh, name), new=getattr(updated, name))
                for name in changes
            }
            await self.ledger.append(
                task_topic(updated.task_id),
                EventAction.PAYMENT_UPDATED,
                actor.id,
                PaymentUpdatedPayload(
                    payment_id=payment_id, edit_reason=reason, changes=diff
                ),
                created_at=now,
            )

        metrics.inc_counter("payment.updated.count")
        logger.info(
            "Payment %s updated by %s (fields=%s)", payment_id, actor.id, sorted(changes)
        )
        return updated

    async def set_expected_revenue(
        self,
        task_id: int,
        actor: Actor,
        expected_revenue: Optional[Decimal],
    ) -> Task:
        """Set or clear a task's expected revenue (admin only)."""
        _require_admin(actor, "set expected revenue")
        if expected_revenue is not None:
            _validate_amount(expected_revenue, "expected_revenue")
            expected_revenue = expected_revenue.quantize(settings.revenue_minor_unit)

        # Runs in the caller's transaction
        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task", task_id)

        now = utc_now()
        await self.tasks.set_expected_revenue(task_id, expected_revenue, now)
        await self.ledger.append(
            task.topic,
            EventAction.EXPECTED_REVENUE_UPDATED,
            actor.id,
            ExpectedRevenueUpdatedPayload(
                old_expected_revenue=task.expected_revenue,
                new_expected_revenue=expected_revenue,
            ),
            created_at=now,
        )

        logger.info(
            "Expected revenue of task %s: %s -> %s (by %s)",
            task_id,
            task.expected_revenue,
            expected_revenue,
            actor.id,
        )
        return task.model_copy(update={"expected_revenue": expected_revenue, "updated_at": now})
