"""API request/response schemas."""

from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from fieldgate.engine.activity import TimelineEntry
from fieldgate.models import Event, Payment, Task


# ============================================================================
# Check-in / check-out
# ============================================================================


class TransitionResponse(BaseModel):
    """Result of a check-in or check-out."""

    task: Task
    event: Event
    warnings: list[str] = Field(default_factory=list)
    payment: Optional[Payment] = None


# ============================================================================
# Ledger
# ============================================================================


class EventListResponse(BaseModel):
    events: list[Event]
    next_after_seq: Optional[int] = Field(
        None, description="Pass as after_seq to fetch the next page"
    )


class CommentResponse(BaseModel):
    event: Event


class TimelineResponse(BaseModel):
    task_id: int
    entries: list[TimelineEntry]


# ============================================================================
# Payments
# ============================================================================


class ExpectedRevenueRequest(BaseModel):
    """Set (or clear with null) a task's expected revenue."""

    expected_revenue: Optional[Decimal] = Field(None, ge=0)


class ExpectedRevenueResponse(BaseModel):
    task: Task


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    status: str
    version: str


class MetricsResponse(BaseModel):
    counters: dict[str, float]
    timings: dict[str, dict[str, Any]]
