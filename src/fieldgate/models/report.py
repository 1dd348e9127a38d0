"""Report models - per-worker performance summaries."""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class Period(BaseModel):
    start_date: date
    end_date: date
    timezone: str


class EmployeeMetrics(BaseModel):
    days_worked: int = 0
    tasks_completed: int = 0
    total_revenue: Decimal = Decimal("0")


class EmployeeSummary(BaseModel):
    """One row of the ranked summary."""

    worker_id: str
    full_name: str
    metrics: EmployeeMetrics
    rank: int
    has_activity: bool


class SummaryTotals(BaseModel):
    total_employees: int
    active_employees: int
    total_revenue: Decimal
    total_tasks: int


class SummaryResponse(BaseModel):
    period: Period
    employees: list[EmployeeSummary] = Field(default_factory=list)
    summary: SummaryTotals


class TaskRevenueLine(BaseModel):
    """Revenue credited to one worker for one completed task."""

    task_id: int
    title: Optional[str] = None
    completed_at: Optional[str] = None
    expected_revenue: Optional[Decimal] = None
    assignee_count: int
    share: Decimal


class EmployeeReport(BaseModel):
    worker_id: str
    full_name: str
    period: Period
    metrics: EmployeeMetrics
    tasks: list[TaskRevenueLine] = Field(default_factory=list)
    worked_dates: list[date] = Field(default_factory=list)
