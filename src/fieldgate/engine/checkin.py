"""Check-in / check-out state machine.

A task moves READY -> IN_PROGRESS on check-in and IN_PROGRESS -> COMPLETED on
check-out. Each transition is gated on capturing its event: attachments are
uploaded first (outside any database transaction), then the status
compare-and-set and the event append commit together or not at all.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.config import settings
from fieldgate.db.repositories import EventRepository, PaymentRepository, TaskRepository
from fieldgate.engine.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from fieldgate.engine.gps import verify_location
from fieldgate.engine.ledger import EventLedger
from fieldgate.engine.revenue import is_whole_minor_units
from fieldgate.integrations.storage import Storage
from fieldgate.models import (
    AttachmentRef,
    CapturedLocation,
    Event,
    EventAction,
    Payment,
    PaymentRequest,
    Task,
    TaskStatus,
    UploadedFile,
)
from fieldgate.models.event import (
    CheckedInPayload,
    CheckedOutPayload,
    PaymentCollectedPayload,
)
from fieldgate.observability.metrics import metrics
from fieldgate.utils.time import utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    """Static description of one lifecycle step."""

    name: str
    action: EventAction
    from_status: TaskStatus
    to_status: TaskStatus
    requires_check_in: bool = False


CHECK_IN = Transition(
    name="check_in",
    action=EventAction.CHECKED_IN,
    from_status=TaskStatus.READY,
    to_status=TaskStatus.IN_PROGRESS,
)

CHECK_OUT = Transition(
    name="check_out",
    action=EventAction.CHECKED_OUT,
    from_status=TaskStatus.IN_PROGRESS,
    to_status=TaskStatus.COMPLETED,
    requires_check_in=True,
)


@dataclass
class TransitionResult:
    task: Task
    event: Event
    warnings: list[str] = field(default_factory=list)
    payment: Optional[Payment] = None
    payment_event: Optional[Event] = None


def validate_files(
    files: Sequence[UploadedFile],
    minimum: int,
    maximum: int,
    label: str = "attachments",
) -> None:
    """Check count, size and type of submitted files."""
    if not minimum <= len(files) <= maximum:
        raise ValidationError(
            f"Expected between {minimum} and {maximum} {label}, got {len(files)}",
            "INVALID_ATTACHMENT_COUNT",
        )
    for f in files:
        if f.size == 0:
            raise ValidationError(f"File {f.filename!r} is empty", "EMPTY_FILE")
        if f.size > settings.max_upload_file_bytes:
            raise ValidationError(f"File {f.filename!r} is too large", "FILE_TOO_LARGE")
        if f.content_type not in settings.allowed_upload_mime_types:
            raise ValidationError(
                f"File type {f.content_type!r} is not allowed", "UNSUPPORTED_FILE_TYPE"
            )


class CheckinEngine:
    """Records check-in and check-out for assigned workers."""

    def __init__(self, session: AsyncSession, storage: Storage):
        self.session = session
        self.storage = storage
        self.tasks = TaskRepository(session)
        self.events = EventRepository(session)
        self.payments = PaymentRepository(session)
        self.ledger = EventLedger(session)

    async def check_in(
        self,
        task_id: int,
        worker_id: str,
        location: Optional[CapturedLocation],
        attachments: Sequence[UploadedFile],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Start work on a task (READY -> IN_PROGRESS)."""
        return await self._transition(CHECK_IN, task_id, worker_id, location, attachments, notes)

    async def check_out(
        self,
        task_id: int,
        worker_id: str,
        location: Optional[CapturedLocation],
        attachments: Sequence[UploadedFile],
        notes: Optional[str] = None,
        payment: Optional[PaymentRequest] = None,
        invoice: Optional[UploadedFile] = None,
    ) -> TransitionResult:
        """Finish work on a task (IN_PROGRESS -> COMPLETED), optionally recording a payment."""
        return await self._transition(
            CHECK_OUT, task_id, worker_id, location, attachments, notes, payment, invoice
        )

    async def _transition(
        self,
        transition: Transition,
        task_id: int,
        worker_id: str,
        location: Optional[CapturedLocation],
        attachments: Sequence[UploadedFile],
        notes: Optional[str],
        payment: Optional[PaymentRequest] = None,
        invoice: Optional[UploadedFile] = None,
    ) -> TransitionResult:
        # 1. Task, assignment and status
        task = await self.tasks.get(task_id)
        if task is None:
            raise NotFound("Task", task_id)
        if not task.is_assigned(worker_id):
            raise Forbidden(
                f"Worker {worker_id} is not assigned to task {task_id}", "NOT_ASSIGNED"
            )
        if not task.can_transition_to(transition.to_status):
            raise InvalidTransition(task.status.value, transition.to_status.value)

        # 2. Input
        validate_files(
            attachments, settings.min_event_attachments, settings.max_event_attachments
        )
        if location is None:
            raise ValidationError("A GPS location is required", "MISSING_LOCATION")
        if notes and len(notes) > settings.max_event_notes_length:
            raise ValidationError(
                f"Notes exceed {settings.max_event_notes_length} characters", "NOTES_TOO_LONG"
            )
        collecting = self._validate_payment(payment, invoice)

        if transition.requires_check_in and not await self.events.has_event(
            task.topic, EventAction.CHECKED_IN, worker_id
        ):
            raise InvalidTransition(
                task.status.value,
                transition.to_status.value,
                message="Worker must check in before checking out",
                code="CHECK_IN_REQUIRED",
            )

        # 3. No transaction may stay open across the upload
        await self.session.commit()
        refs: list[AttachmentRef] = await self.storage.upload(list(attachments))
        invoice_ref: Optional[AttachmentRef] = None
        if collecting and invoice is not None:
            (invoice_ref,) = await self.storage.upload([invoice])

        # 4. GPS
        check = verify_location(location, task.geo_location)

        # 5. Status swap and ledger writes commit together
        now = utc_now()
        payment_row: Optional[Payment] = None
        payment_event: Optional[Event] = None
        async with self.session.begin():
            swapped = await self.tasks.compare_and_set_status(
                task_id, transition.from_status, transition.to_status, now
            )
            if not swapped:
                metrics.inc_counter(f"{transition.name}.conflict")
                logger.warning(
                    "Lost %s race on task %s (worker %s)", transition.name, task_id, worker_id
                )
                raise Conflict(
                    f"Task {task_id} changed status concurrently", "STATUS_CHANGED"
                )

            base = {
                "location": location,
                "distance_meters": check.distance_meters,
                "warnings": check.warnings,
                "attachments": refs,
                "notes": notes,
            }
            if transition.action == EventAction.CHECKED_OUT:
                payload = CheckedOutPayload(**base, payment_collected=collecting)
            else:
                payload = CheckedInPayload(**base)
            event = await self.ledger.append(
                task.topic, transition.action, worker_id, payload, created_at=now
            )

            if collecting:
                payment_row, payment_event = await self._record_payment(
                    task, worker_id, payment, invoice_ref, now
                )

        metrics.inc_counter(f"{transition.name}.count")
        logger.info(
            "Task %s %s -> %s by %s (warnings=%s)",
            task_id,
            transition.from_status.value,
            transition.to_status.value,
            worker_id,
            check.warnings,
        )

        updates = {"status": transition.to_status, "updated_at": now}
        if transition.to_status == TaskStatus.IN_PROGRESS:
            updates["started_at"] = now
        else:
            updates["completed_at"] = now
        return TransitionResult(
            task=task.model_copy(update=updates),
            event=event,
            warnings=check.warnings,
            payment=payment_row,
            payment_event=payment_event,
        )

    def _validate_payment(
        self, payment: Optional[PaymentRequest], invoice: Optional[UploadedFile]
    ) -> bool:
        """Return True when a payment must be recorded."""
        if payment is None or not payment.collected:
            return False
        if payment.amount is None or payment.amount <= 0:
            raise ValidationError(
                "A positive amount is required when payment is collected",
                "PAYMENT_AMOUNT_REQUIRED",
            )
        if payment.amount > settings.max_payment_amount:
            raise ValidationError("Payment amount is too large", "PAYMENT_AMOUNT_TOO_LARGE")
        if not is_whole_minor_units(payment.amount):
            raise ValidationError(
                f"Payment amount must be a multiple of {settings.revenue_minor_unit}",
                "INVALID_AMOUNT",
            )
        if payment.notes and len(payment.notes) > settings.max_payment_notes_length:
            raise ValidationError("Payment notes are too long", "NOTES_TOO_LONG")
        if invoice is not None:
            validate_files([invoice], 1, 1, label="invoice files")
        return True

    async def _record_payment(
        self,
        task: Task,
        worker_id: str,
        payment: PaymentRequest,
        invoice_ref: Optional[AttachmentRef],
        now,
    ) -> tuple[Payment, Event]:
        amount: Decimal = payment.amount
        row = await self.payments.create(
            task_id=task.task_id,
            amount=amount,
            currency=settings.currency,
            collected_by=worker_id,
            collected_at=now,
            invoice_attachment_ref=invoice_ref.ref_id if invoice_ref else None,
            notes=payment.notes,
        )
        event = await self.ledger.append(
            task.topic,
            EventAction.PAYMENT_COLLECTED,
            worker_id,
            PaymentCollectedPayload(
                payment_id=row.payment_id,
                amount=row.amount,
                currency=row.currency,
                has_invoice=invoice_ref is not None,
                invoice_attachment_ref=row.invoice_attachment_ref,
                notes=row.notes,
            ),
            created_at=now,
        )
        metrics.inc_counter("payment.collected.count")
        return row, event
