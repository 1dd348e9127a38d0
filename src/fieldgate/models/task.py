"""Task model - a unit of field work."""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from fieldgate.models.enums import TaskStatus


class GeoLocation(BaseModel):
    """Immutable reference point of a task."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    address: Optional[str] = None
    name: Optional[str] = None

    model_config = {"frozen": True}


class Task(BaseModel):
    """Field task as seen by the ledger core."""

    task_id: int
    title: str = ""
    status: TaskStatus = TaskStatus.READY
    assignee_ids: list[str] = Field(default_factory=list)
    expected_revenue: Optional[Decimal] = None
    geo_location: Optional[GeoLocation] = None

    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def topic(self) -> str:
        return task_topic(self.task_id)

    def is_assigned(self, worker_id: str) -> bool:
        return worker_id in self.assignee_ids

    def can_transition_to(self, new_status: TaskStatus) -> bool:
        """Check if transition to new status is valid (linear, no skipping)."""
        return self.status.next_status() == new_status


class CompletedTaskRow(BaseModel):
    """Projection of a completed task used by reports."""

    task_id: int
    expected_revenue: Optional[Decimal] = None
    assignee_ids: tuple[str, ...] = ()
    title: Optional[str] = None
    completed_at: Optional[datetime] = None


def task_topic(task_id: int) -> str:
    """Ledger partition key for a task."""
    return f"TASK_{task_id}"
