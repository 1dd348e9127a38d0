"""FieldGate enumerations."""

from enum import Enum


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    READY = "READY"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"

    def next_status(self) -> "TaskStatus | None":
        """Return the only status this one may move to, if any."""
        order = [TaskStatus.READY, TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED]
        index = order.index(self)
        return order[index + 1] if index + 1 < len(order) else None


class EventAction(str, Enum):
    """Kinds of ledger events."""

    # Worker arrived on site (Task READY -> IN_PROGRESS)
    CHECKED_IN = "TASK_CHECKED_IN"
    # Worker finished on site (Task IN_PROGRESS -> COMPLETED)
    CHECKED_OUT = "TASK_CHECKED_OUT"
    # Free-text comment on a task
    COMMENTED = "TASK_COMMENTED"
    # Payment collected at check-out
    PAYMENT_COLLECTED = "PAYMENT_COLLECTED"
    # Admin edit of a payment (old/new diff + reason)
    PAYMENT_UPDATED = "PAYMENT_UPDATED"
    # Admin change of the task's expected revenue
    EXPECTED_REVENUE_UPDATED = "TASK_EXPECTED_REVENUE_UPDATED"
    # Attachment removed from a task
    ATTACHMENT_DELETED = "TASK_ATTACHMENT_DELETED"


class SortBy(str, Enum):
    """Report sort keys."""

    REVENUE = "revenue"
    TASKS = "tasks"
    NAME = "name"


class SortOrder(str, Enum):
    """Report sort direction."""

    ASC = "asc"
    DESC = "desc"
