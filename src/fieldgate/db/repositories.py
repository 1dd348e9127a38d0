"""Database repositories for FieldGate entities."""

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import exists, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.db.tables import (
    EventTable,
    PaymentTable,
    TaskAssigneeTable,
    TaskTable,
)
from fieldgate.models import (
    CompletedTaskRow,
    Event,
    EventAction,
    GeoLocation,
    Payment,
    Task,
    TaskStatus,
)
from fieldgate.utils.time import utc_now


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        title: str,
        assignee_ids: Iterable[str],
        expected_revenue: Decimal | None = None,
        geo_location: GeoLocation | None = None,
        status: TaskStatus = TaskStatus.READY,
        completed_at: datetime | None = None,
    ) -> Task:
        """
        Create a task.

        Task CRUD belongs to the dispatch side of the product; this exists so
        operators and tests can seed the ledger core.
        """
        now = utc_now()
        row = TaskTable(
            title=title,
            status=status,
            expected_revenue=expected_revenue,
            geo_lat=geo_location.lat if geo_location else None,
            geo_lng=geo_location.lng if geo_location else None,
            geo_address=geo_location.address if geo_location else None,
            geo_name=geo_location.name if geo_location else None,
            created_at=now,
            updated_at=now,
            started_at=now if status != TaskStatus.READY else None,
            completed_at=completed_at if status == TaskStatus.COMPLETED else None,
            assignees=[TaskAssigneeTable(worker_id=w) for w in sorted(set(assignee_ids))],
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, task_id: int) -> Task | None:
        """Get a task by ID, always reading current column values."""
        result = await self.session.execute(
            select(TaskTable)
            .where(TaskTable.task_id == task_id)
            .execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def compare_and_set_status(
        self,
        task_id: int,
        expected: TaskStatus,
        new_status: TaskStatus,
        now: datetime,
    ) -> bool:
        """
        Move a task from ``expected`` to ``new_status``.

        Single conditional UPDATE; returns False when another writer moved the
        task first (zero rows affected).
        """
        values: dict[str, Any] = {"status": new_status, "updated_at": now}
        if new_status == TaskStatus.IN_PROGRESS:
            values["started_at"] = now
        elif new_status == TaskStatus.COMPLETED:
            values["completed_at"] = now

        result = await self.session.execute(
            update(TaskTable)
            .where(TaskTable.task_id == task_id, TaskTable.status == expected)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def set_expected_revenue(
        self, task_id: int, expected_revenue: Decimal | None, now: datetime
    ) -> None:
        await self.session.execute(
            update(TaskTable)
            .where(TaskTable.task_id == task_id)
            .values(expected_revenue=expected_revenue, updated_at=now)
            .execution_options(synchronize_session=False)
        )

    async def list_completed_for_workers(
        self,
        worker_ids: Sequence[str],
        lower: datetime,
        upper: datetime,
    ) -> list[CompletedTaskRow]:
        """
        Completed tasks in ``[lower, upper)`` with any assignee in ``worker_ids``.

        One statement: tasks joined to their full assignee list, restricted to
        tasks that have at least one matching assignee. Every assignee is
        returned (not only the requested ones) so revenue can be split across
        the whole crew.
        """
        if not worker_ids:
            return []

        matching = select(TaskAssigneeTable.task_id).where(
            TaskAssigneeTable.worker_id.in_(list(worker_ids))
        )
        stmt = (
            select(
                TaskTable.task_id,
                TaskTable.expected_revenue,
                TaskTable.title,
                TaskTable.completed_at,
                TaskAssigneeTable.worker_id,
            )
            .join(TaskAssigneeTable, TaskAssigneeTable.task_id == TaskTable.task_id)
            .where(
                TaskTable.status == TaskStatus.COMPLETED,
                TaskTable.completed_at >= lower,
                TaskTable.completed_at < upper,
                TaskTable.task_id.in_(matching),
            )
            .order_by(TaskTable.task_id, TaskAssigneeTable.worker_id)
        )
        result = await self.session.execute(stmt)

        grouped: dict[int, dict[str, Any]] = {}
        for task_id, revenue, title, completed_at, worker_id in result.all():
            entry = grouped.setdefault(
                task_id,
                {
                    "task_id": task_id,
                    "expected_revenue": revenue,
                    "title": title,
                    "completed_at": completed_at,
                    "assignee_ids": [],
                },
            )
            entry["assignee_ids"].append(worker_id)

        return [
            CompletedTaskRow(**{**entry, "assignee_ids": tuple(entry["assignee_ids"])})
            for entry in grouped.values()
        ]

    def _row_to_model(self, row: TaskTable) -> Task:
        geo = None
        if row.geo_lat is not None and row.geo_lng is not None:
            geo = GeoLocation(
                lat=row.geo_lat,
                lng=row.geo_lng,
                address=row.geo_address,
                name=row.geo_name,
            )
        return Task(
            task_id=row.task_id,
            title=row.title,
            status=row.status,
            assignee_ids=sorted(a.worker_id for a in row.assignees),
            expected_revenue=row.expected_revenue,
            geo_location=geo,
            created_at=row.created_at,
            updated_at=row.updated_at,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )


class EventRepository:
    """
    Repository for the event ledger.

    Append and read only; the mapping refuses UPDATE/DELETE flushes on the
    events table.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def append(
        self,
        topic: str,
        action: EventAction | str,
        actor_id: str | None,
        payload: dict[str, Any],
        created_at: datetime | None = None,
    ) -> Event:
        """Append an event and return it with its assigned sequence number."""
        row = EventTable(
            event_id=uuid4(),
            topic=topic,
            action=action.value if isinstance(action, EventAction) else action,
            actor_id=actor_id,
            payload=payload,
            created_at=created_at or utc_now(),
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def query(
        self,
        topic: str | None = None,
        action: EventAction | str | None = None,
        actor_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        after_seq: int | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Events matching every given filter, oldest first."""
        stmt = select(EventTable)
        if topic is not None:
            stmt = stmt.where(EventTable.topic == topic)
        if action is not None:
            value = action.value if isinstance(action, EventAction) else action
            stmt = stmt.where(EventTable.action == value)
        if actor_id is not None:
            stmt = stmt.where(EventTable.actor_id == actor_id)
        if since is not None:
            stmt = stmt.where(EventTable.created_at >= since)
        if until is not None:
            stmt = stmt.where(EventTable.created_at < until)
        if after_seq is not None:
            stmt = stmt.where(EventTable.seq > after_seq)

        stmt = stmt.order_by(EventTable.created_at.asc(), EventTable.seq.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await self.session.execute(stmt)
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def list_check_ins(
        self,
        actor_ids: Sequence[str],
        lower: datetime,
        upper: datetime,
    ) -> list[tuple[str, datetime]]:
        """(actor_id, created_at) of check-ins by ``actor_ids`` in ``[lower, upper)``."""
        if not actor_ids:
            return []
        result = await self.session.execute(
            select(EventTable.actor_id, EventTable.created_at)
            .where(
                EventTable.action == EventAction.CHECKED_IN.value,
                EventTable.actor_id.in_(list(actor_ids)),
                EventTable.created_at >= lower,
                EventTable.created_at < upper,
            )
            .order_by(EventTable.created_at, EventTable.seq)
        )
        return [(actor_id, created_at) for actor_id, created_at in result.all()]

    async def has_event(self, topic: str, action: EventAction, actor_id: str) -> bool:
        result = await self.session.execute(
            select(
                exists().where(
                    EventTable.topic == topic,
                    EventTable.action == action.value,
                    EventTable.actor_id == actor_id,
                )
            )
        )
        return bool(result.scalar())

    def _row_to_model(self, row: EventTable) -> Event:
        return Event(
            event_id=row.event_id,
            seq=row.seq,
            topic=row.topic,
            action=row.action,
            actor_id=row.actor_id,
            payload=row.payload or {},
            created_at=row.created_at,
        )


class PaymentRepository:
    """Repository for payments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        task_id: int,
        amount: Decimal,
        currency: str,
        collected_by: str,
        collected_at: datetime,
        invoice_attachment_ref: str | None = None,
        notes: str | None = None,
    ) -> Payment:
        row = PaymentTable(
            payment_id=uuid4(),
            task_id=task_id,
            amount=amount,
            currency=currency,
            collected_by=collected_by,
            collected_at=collected_at,
            invoice_attachment_ref=invoice_attachment_ref,
            notes=notes,
            updated_at=collected_at,
        )
        self.session.add(row)
        await self.session.flush()
        return self._row_to_model(row)

    async def get(self, payment_id: UUID, for_update: bool = False) -> Payment | None:
        """
        Load one payment.

        ``for_update`` locks the row until the surrounding transaction ends
        (PostgreSQL; ignored by SQLite, which serializes writers anyway).
        """
        stmt = (
            select(PaymentTable)
            .where(PaymentTable.payment_id == payment_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def list_for_task(self, task_id: int) -> list[Payment]:
        result = await self.session.execute(
            select(PaymentTable)
            .where(PaymentTable.task_id == task_id)
            .order_by(PaymentTable.collected_at.desc())
        )
        return [self._row_to_model(row) for row in result.scalars().all()]

    async def update(
        self,
        payment_id: UUID,
        expected_updated_at: datetime,
        now: datetime,
        **changes: Any,
    ) -> Payment | None:
        """
        Apply column changes if the payment is still at ``expected_updated_at``.

        Returns None when another writer touched the row first.
        """
        result = await self.session.execute(
            update(PaymentTable)
            .where(
                PaymentTable.payment_id == payment_id,
                PaymentTable.updated_at == expected_updated_at,
            )
            .values(**changes, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None
        return await self.get(payment_id)

    def _row_to_model(self, row: PaymentTable) -> Payment:
        return Payment(
            payment_id=row.payment_id,
            task_id=row.task_id,
            amount=row.amount,
            currency=row.currency,
            collected_by=row.collected_by,
            collected_at=row.collected_at,
            invoice_attachment_ref=row.invoice_attachment_ref,
            notes=row.notes,
            updated_at=row.updated_at,
        )
