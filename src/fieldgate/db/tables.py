"""SQLAlchemy table definitions."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    Enum,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.orm import Mapped, Session, mapped_column, relationship

from fieldgate.config import MONEY_SCALE
from fieldgate.db.base import Base
from fieldgate.db.types import JSONPayload, SequenceKey, UTCDateTime
from fieldgate.models.enums import TaskStatus

Money = Numeric(14, MONEY_SCALE)


class LedgerImmutableError(RuntimeError):
    """Raised when something tries to rewrite or remove a ledger row."""


class TaskTable(Base):
    """Tasks table - field work units."""

    __tablename__ = "tasks"

    task_id: Mapped[int] = mapped_column(SequenceKey, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    # Status (mutated only by compare-and-set)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus, name="task_status"), nullable=False, default=TaskStatus.READY
    )

    expected_revenue: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # Reference location
    geo_lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    geo_lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    geo_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    geo_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    assignees: Mapped[list["TaskAssigneeTable"]] = relationship(
        "TaskAssigneeTable",
        back_populates="task",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        # Report scans: completed tasks by completion time
        Index("idx_tasks_status_completed", "status", "completed_at"),
    )


class TaskAssigneeTable(Base):
    """Task assignees - one row per (task, worker)."""

    __tablename__ = "task_assignees"

    task_id: Mapped[int] = mapped_column(
        SequenceKey, ForeignKey("tasks.task_id", ondelete="CASCADE"), primary_key=True
    )
    worker_id: Mapped[str] = mapped_column(String(255), primary_key=True)

    task: Mapped[TaskTable] = relationship("TaskTable", back_populates="assignees")

    __table_args__ = (Index("idx_task_assignees_worker", "worker_id", "task_id"),)


class EventTable(Base):
    """Events table - append-only ledger."""

    __tablename__ = "events"

    seq: Mapped[int] = mapped_column(SequenceKey, primary_key=True, autoincrement=True)
    event_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, unique=True)

    topic: Mapped[str] = mapped_column(String(255), nullable=False)
    # Free text so rows with unknown actions stay readable
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    actor_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONPayload, nullable=False, default=dict)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("idx_events_topic_created", "topic", "created_at", "seq"),
        Index("idx_events_action_actor_created", "action", "actor_id", "created_at"),
    )


class PaymentTable(Base):
    """Payments table - money collected at check-out."""

    __tablename__ = "payments"

    payment_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True)
    task_id: Mapped[int] = mapped_column(
        SequenceKey, ForeignKey("tasks.task_id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    currency: Mapped[str] = mapped_column(String(10), nullable=False)
    collected_by: Mapped[str] = mapped_column(String(255), nullable=False)
    collected_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    invoice_attachment_ref: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (Index("idx_payments_task", "task_id", "collected_at"),)


# Ledger rows are immutable once flushed


@event.listens_for(EventTable, "before_update")
def _refuse_event_update(mapper, connection, target: EventTable) -> None:
    raise LedgerImmutableError(f"event {target.event_id} is immutable")


@event.listens_for(EventTable, "before_delete")
def _refuse_event_delete(mapper, connection, target: EventTable) -> None:
    raise LedgerImmutableError(f"event {target.event_id} cannot be deleted")


@event.listens_for(Session, "do_orm_execute")
def _refuse_bulk_event_writes(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is EventTable:
        raise LedgerImmutableError("bulk UPDATE/DELETE on events is not allowed")
