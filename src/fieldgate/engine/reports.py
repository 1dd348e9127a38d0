"""Aggregation engine - ranked per-worker summaries over date ranges.

Everything a summary needs is fetched with two statements (completed tasks
with their assignees, then check-in timestamps) no matter how many workers
are in scope; grouping, revenue splitting and ranking happen in memory.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable, Union
from zoneinfo import ZoneInfo

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate.config import settings
from fieldgate.db.repositories import EventRepository, TaskRepository
from fieldgate.engine.errors import NotFound, UpstreamFailure, ValidationError
from fieldgate.engine.revenue import revenue_split
from fieldgate.integrations.identity import Identity
from fieldgate.models import (
    CompletedTaskRow,
    EmployeeMetrics,
    EmployeeReport,
    EmployeeSummary,
    Period,
    SortBy,
    SortOrder,
    SummaryResponse,
    SummaryTotals,
    Worker,
)
from fieldgate.models.report import TaskRevenueLine
from fieldgate.observability.metrics import metrics
from fieldgate.utils.time import local_date, local_day_bounds, resolve_timezone

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DateInput = Union[str, date]


@dataclass(frozen=True)
class ReportRange:
    start: date
    end: date
    timezone: str
    tz: ZoneInfo

    @property
    def period(self) -> Period:
        return Period(start_date=self.start, end_date=self.end, timezone=self.timezone)

    def utc_bounds(self) -> tuple[datetime, datetime]:
        return local_day_bounds(self.start, self.end, self.tz)


def _parse_date(value: DateInput, field_name: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_PATTERN.match(value):
        raise ValidationError(f"{field_name} must use the YYYY-MM-DD format", "INVALID_DATE")
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError(f"{field_name} is not a valid date", "INVALID_DATE") from e


def parse_report_range(
    start_date: DateInput,
    end_date: DateInput,
    timezone: str | None = None,
) -> ReportRange:
    """Validate report inputs and resolve the timezone."""
    start = _parse_date(start_date, "start_date")
    end = _parse_date(end_date, "end_date")
    if end < start:
        raise ValidationError("end_date must not be before start_date", "INVALID_RANGE")
    if (end - start).days > settings.max_report_range_days:
        raise ValidationError(
            f"Date range must not exceed {settings.max_report_range_days} days", "RANGE_TOO_LONG"
        )

    name = timezone or settings.default_timezone
    try:
        tz = resolve_timezone(name)
    except ValueError as e:
        raise ValidationError(str(e), "INVALID_TIMEZONE") from e
    return ReportRange(start=start, end=end, timezone=name, tz=tz)


def assign_ranks(sort_keys: list[Any]) -> list[int]:
    """
    Competition ranks for an already-sorted key list.

    Equal neighbours share a rank and the next distinct key skips ahead,
    e.g. ``[10, 10, 8] -> [1, 1, 3]``.
    """
    ranks: list[int] = []
    for index, key in enumerate(sort_keys):
        if index > 0 and key == sort_keys[index - 1]:
            ranks.append(ranks[-1])
        else:
            ranks.append(index + 1)
    return ranks


@dataclass
class _Accumulator:
    tasks_completed: int = 0
    total_revenue: Decimal = Decimal("0")


class ReportEngine:
    """Read-only reporting over tasks and the event ledger."""

    def __init__(self, session: AsyncSession, identity: Identity):
        self.session = session
        self.identity = identity
        self.tasks = TaskRepository(session)
        self.events = EventRepository(session)

    async def get_summary(
        self,
        start_date: DateInput,
        end_date: DateInput,
        timezone: str | None = None,
        sort_by: SortBy = SortBy.REVENUE,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> SummaryResponse:
        """Ranked metrics for every active worker."""
        report_range = parse_report_range(start_date, end_date, timezone)
        sort_by = SortBy(sort_by)
        sort_order = SortOrder(sort_order)

        with metrics.timed("report.summary.duration_ms"):
            workers = await self.identity.list_active_workers()
            worker_ids = sorted({w.id for w in workers})
            completed, check_ins = await self._load(worker_ids, report_range)

            per_worker: dict[str, _Accumulator] = {w: _Accumulator() for w in worker_ids}
            for row in completed:
                shares = revenue_split(row).shares
                for assignee in row.assignee_ids:
                    if assignee in per_worker:
                        acc = per_worker[assignee]
                        acc.tasks_completed += 1
                        acc.total_revenue += shares.get(assignee, Decimal("0"))

            days = self._days_by_worker(check_ins, report_range.tz)

            names = {w.id: w.full_name for w in workers}
            entries = []
            for worker_id in worker_ids:
                acc = per_worker[worker_id]
                worker_metrics = EmployeeMetrics(
                    days_worked=len(days.get(worker_id, ())),
                    tasks_completed=acc.tasks_completed,
                    total_revenue=self._money(acc.total_revenue),
                )
                entries.append((worker_id, names.get(worker_id, ""), worker_metrics))

            employees = self._rank(entries, sort_by, sort_order)

        totals = SummaryTotals(
            total_employees=len(employees),
            active_employees=sum(1 for e in employees if e.has_activity),
            total_revenue=self._money(
                sum((e.metrics.total_revenue for e in employees), Decimal("0"))
            ),
            total_tasks=len(completed),
        )
        metrics.inc_counter("report.summary.count")
        logger.info(
            "Summary %s..%s (%s): %d workers, %d active, %d tasks, revenue %s",
            report_range.start,
            report_range.end,
            report_range.timezone,
            totals.total_employees,
            totals.active_employees,
            totals.total_tasks,
            totals.total_revenue,
        )
        return SummaryResponse(period=report_range.period, employees=employees, summary=totals)

    async def get_employee_report(
        self,
        worker_id: str,
        start_date: DateInput,
        end_date: DateInput,
        timezone: str | None = None,
    ) -> EmployeeReport:
        """Metrics and per-task revenue breakdown for one active worker."""
        report_range = parse_report_range(start_date, end_date, timezone)

        workers = await self.identity.list_active_workers()
        worker = next((w for w in workers if w.id == worker_id), None)
        if worker is None:
            raise NotFound("Worker", worker_id)

        with metrics.timed("report.employee.duration_ms"):
            completed, check_ins = await self._load([worker_id], report_range)

        lines = []
        total = Decimal("0")
        ordered = sorted(
            completed,
            key=lambda r: (r.completed_at.timestamp() if r.completed_at else 0.0, r.task_id),
            reverse=True,
        )
        for row in ordered:
            share = revenue_split(row).shares.get(worker_id, Decimal("0"))
            total += share
            lines.append(
                TaskRevenueLine(
                    task_id=row.task_id,
                    title=row.title,
                    completed_at=row.completed_at.isoformat() if row.completed_at else None,
                    expected_revenue=row.expected_revenue,
                    assignee_count=len(row.assignee_ids),
                    share=self._money(share),
                )
            )

        worked = sorted(self._days_by_worker(check_ins, report_range.tz).get(worker_id, set()))
        logger.info(
            "Employee report for %s %s..%s: %d tasks, %d days",
            worker_id,
            report_range.start,
            report_range.end,
            len(lines),
            len(worked),
        )
        return EmployeeReport(
            worker_id=worker.id,
            full_name=worker.full_name,
            period=report_range.period,
            metrics=EmployeeMetrics(
                days_worked=len(worked),
                tasks_completed=len(lines),
                total_revenue=self._money(total),
            ),
            tasks=lines,
            worked_dates=worked,
        )

    async def _load(
        self, worker_ids: list[str], report_range: ReportRange
    ) -> tuple[list[CompletedTaskRow], list[tuple[str, datetime]]]:
        """The two reads behind every report; none when nobody is in scope."""
        if not worker_ids:
            return [], []
        lower, upper = report_range.utc_bounds()
        try:
            completed = await self.tasks.list_completed_for_workers(worker_ids, lower, upper)
            check_ins = await self.events.list_check_ins(worker_ids, lower, upper)
        except SQLAlchemyError as e:
            logger.error("Report query failed for %d workers: %s", len(worker_ids), e)
            raise UpstreamFailure("Failed to load report data", "REPORT_QUERY_FAILED") from e
        return completed, check_ins

    @staticmethod
    def _days_by_worker(
        check_ins: Iterable[tuple[str, datetime]], tz: ZoneInfo
    ) -> dict[str, set[date]]:
        days: dict[str, set[date]] = defaultdict(set)
        for actor_id, created_at in check_ins:
            days[actor_id].add(local_date(created_at, tz))
        return days

    @staticmethod
    def _money(amount: Decimal) -> Decimal:
        return amount.quantize(settings.revenue_minor_unit)

    @staticmethod
    def _rank(
        entries: list[tuple[str, str, EmployeeMetrics]],
        sort_by: SortBy,
        sort_order: SortOrder,
    ) -> list[EmployeeSummary]:
        def primary(entry: tuple[str, str, EmployeeMetrics]) -> Any:
            _, name, m = entry
            if sort_by == SortBy.TASKS:
                return m.tasks_completed
            if sort_by == SortBy.NAME:
                return name.casefold()
            return m.total_revenue

        # Tie-break first (stable sorts), always ascending
        ordered = sorted(entries, key=lambda e: (e[1].casefold(), e[0]))
        ordered.sort(key=primary, reverse=sort_order == SortOrder.DESC)
        ranks = assign_ranks([primary(e) for e in ordered])

        return [
            EmployeeSummary(
                worker_id=worker_id,
                full_name=name,
                metrics=m,
                rank=rank,
                has_activity=m.tasks_completed > 0 or m.days_worked > 0,
            )
            for (worker_id, name, m), rank in zip(ordered, ranks)
        ]
