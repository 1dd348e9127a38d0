"""FieldGate database layer."""

from fieldgate.db.base import Base, create_engine, init_db
from fieldgate.db.tables import (
    EventTable,
    LedgerImmutableError,
    PaymentTable,
    TaskAssigneeTable,
    TaskTable,
)

__all__ = [
    "Base",
    "EventTable",
    "LedgerImmutableError",
    "PaymentTable",
    "TaskAssigneeTable",
    "TaskTable",
    "create_engine",
    "init_db",
]
