"""
Report aggregation tests: query shape, local-day ranges, ranking and splits.
"""

from datetime import date, datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import FakeIdentity
from fieldgate.engine.errors import NotFound, UpstreamFailure, ValidationError
from fieldgate.engine.reports import ReportEngine, assign_ranks, parse_report_range
from fieldgate.models import SortBy, SortOrder, TaskStatus, Worker
from fieldgate.observability.metrics import metrics

OCT_START, OCT_END = "2025-10-01", "2025-10-31"
TZ = "Asia/Ho_Chi_Minh"


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def complete(make_task):
    """Create a completed task in one call."""

    async def _complete(assignee_ids, revenue=None, at=None, title="Job"):
        return await make_task(
            assignee_ids=assignee_ids,
            expected_revenue=None if revenue is None else Decimal(revenue),
            status=TaskStatus.COMPLETED,
            completed_at=at or _utc(2025, 10, 15, 3, 0),
            title=title,
        )

    return _complete


def _by_worker(summary):
    return {e.worker_id: e for e in summary.employees}


@pytest.mark.parametrize("count", [10, 500])
@pytest.mark.asyncio
async def test_summary_issues_two_queries_regardless_of_worker_count(
    session: AsyncSession, complete, record_check_in, count
):
    workers = [Worker(id=f"w{i:03d}", first_name="Worker", last_name=str(i)) for i in range(count)]
    for i in range(0, count, max(1, count // 5)):
        task = await complete([workers[i].id], revenue="100")
        await record_check_in(task.task_id, workers[i].id, _utc(2025, 10, 15, 2, 0))

    before = metrics.counter_value("db.query.count")
    summary = await ReportEngine(session, FakeIdentity(workers)).get_summary(
        OCT_START, OCT_END, TZ
    )
    issued = metrics.counter_value("db.query.count") - before

    assert issued == 2
    assert len(summary.employees) == count
    assert summary.summary.total_tasks == 5


@pytest.mark.asyncio
async def test_no_active_workers_issues_no_queries(session: AsyncSession, complete):
    await complete(["w1"], revenue="100")

    before = metrics.counter_value("db.query.count")
    summary = await ReportEngine(session, FakeIdentity([])).get_summary(OCT_START, OCT_END, TZ)

    assert metrics.counter_value("db.query.count") == before
    assert summary.employees == []
    assert summary.summary.total_employees == 0
    assert summary.summary.total_revenue == 0


@pytest.mark.asyncio
async def test_summary_is_deterministic(
    session: AsyncSession, identity, complete, record_check_in
):
    task = await complete(["w1", "w2"], revenue="100.01")
    await complete(["w3"], revenue="250")
    await record_check_in(task.task_id, "w1", _utc(2025, 10, 15, 1, 0))

    engine = ReportEngine(session, identity)
    first = await engine.get_summary(OCT_START, OCT_END, TZ)
    second = await engine.get_summary(OCT_START, OCT_END, TZ)

    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.asyncio
async def test_equal_revenue_shares_rank(session: AsyncSession, identity, complete):
    await complete(["w1"], revenue="10")
    await complete(["w2"], revenue="10")
    await complete(["w3"], revenue="8")

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)

    assert [(e.worker_id, e.rank) for e in summary.employees] == [
        ("w1", 1),
        ("w2", 1),
        ("w3", 3),
    ]
    assert summary.summary.total_revenue == Decimal("28.00")
    assert summary.summary.active_employees == 3


def test_assign_ranks():
    assert assign_ranks([10, 10, 8]) == [1, 1, 3]
    assert assign_ranks([5, 4, 4, 4, 1]) == [1, 2, 2, 2, 5]
    assert assign_ranks([]) == []


@pytest.mark.asyncio
async def test_shared_task_splits_revenue(session: AsyncSession, identity, complete):
    await complete(["w1", "w2"], revenue="1000000")

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)

    by_worker = _by_worker(summary)
    assert by_worker["w1"].metrics.total_revenue == Decimal("500000")
    assert by_worker["w2"].metrics.total_revenue == Decimal("500000")
    assert by_worker["w1"].metrics.tasks_completed == 1
    assert by_worker["w2"].metrics.tasks_completed == 1
    assert summary.summary.total_tasks == 1
    assert summary.summary.total_revenue == Decimal("1000000")


@pytest.mark.asyncio
async def test_task_without_revenue_counts_but_earns_nothing(
    session: AsyncSession, identity, complete
):
    await complete(["w1"])

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)

    w1 = _by_worker(summary)["w1"]
    assert w1.metrics.tasks_completed == 1
    assert w1.metrics.total_revenue == 0
    assert w1.has_activity is True


@pytest.mark.asyncio
async def test_inactive_assignee_still_takes_a_share(session: AsyncSession, identity, complete):
    # "gone" is not in the active worker list but remains on the crew
    await complete(["w1", "gone"], revenue="100")

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)

    assert _by_worker(summary)["w1"].metrics.total_revenue == Decimal("50.00")
    assert "gone" not in _by_worker(summary)


@pytest.mark.asyncio
async def test_check_in_counts_on_local_date(
    session: AsyncSession, identity, make_task, record_check_in
):
    task = await make_task(assignee_ids=["w1", "w2"])
    # 23:30 on Oct 31 in Ho Chi Minh City
    await record_check_in(task.task_id, "w1", _utc(2025, 10, 31, 16, 30))
    # 00:30 on Nov 1 in Ho Chi Minh City
    await record_check_in(task.task_id, "w2", _utc(2025, 10, 31, 17, 30))

    engine = ReportEngine(session, identity)
    october = _by_worker(await engine.get_summary(OCT_START, OCT_END, TZ))
    november = _by_worker(await engine.get_summary("2025-11-01", "2025-11-30", TZ))

    assert october["w1"].metrics.days_worked == 1
    assert october["w2"].metrics.days_worked == 0
    assert november["w1"].metrics.days_worked == 0
    assert november["w2"].metrics.days_worked == 1


@pytest.mark.asyncio
async def test_several_check_ins_on_one_day_count_once(
    session: AsyncSession, identity, make_task, record_check_in
):
    first = await make_task()
    second = await make_task()
    await record_check_in(first.task_id, "w1", _utc(2025, 10, 10, 1, 0))
    await record_check_in(second.task_id, "w1", _utc(2025, 10, 10, 9, 0))
    await record_check_in(second.task_id, "w1", _utc(2025, 10, 11, 1, 0))

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)
    assert _by_worker(summary)["w1"].metrics.days_worked == 2


@pytest.mark.asyncio
async def test_completion_range_is_half_open(session: AsyncSession, identity, complete):
    # Local midnight Nov 1 is 17:00 UTC on Oct 31
    await complete(["w1"], revenue="1", at=_utc(2025, 10, 31, 16, 59, 59))
    await complete(["w2"], revenue="1", at=_utc(2025, 10, 31, 17, 0))

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)

    assert _by_worker(summary)["w1"].metrics.tasks_completed == 1
    assert _by_worker(summary)["w2"].metrics.tasks_completed == 0


@pytest.mark.asyncio
async def test_future_range_is_empty(session: AsyncSession, identity, complete):
    await complete(["w1"], revenue="100")

    summary = await ReportEngine(session, identity).get_summary("2030-01-01", "2030-01-31", TZ)

    assert len(summary.employees) == 3
    assert all(not e.has_activity for e in summary.employees)
    assert all(e.rank == 1 for e in summary.employees)
    assert summary.summary.active_employees == 0
    assert summary.summary.total_tasks == 0


@pytest.mark.asyncio
async def test_unfinished_tasks_are_ignored(session: AsyncSession, identity, make_task):
    await make_task(assignee_ids=["w1"], expected_revenue=Decimal("100"))
    await make_task(assignee_ids=["w1"], status=TaskStatus.IN_PROGRESS)

    summary = await ReportEngine(session, identity).get_summary(OCT_START, OCT_END, TZ)
    assert _by_worker(summary)["w1"].metrics.tasks_completed == 0


@pytest.mark.asyncio
async def test_sort_by_name_ascending(session: AsyncSession, identity):
    summary = await ReportEngine(session, identity).get_summary(
        OCT_START, OCT_END, TZ, sort_by=SortBy.NAME, sort_order=SortOrder.ASC
    )
    assert [e.full_name for e in summary.employees] == ["An Nguyen", "Binh Tran", "Chi Le"]
    assert [e.rank for e in summary.employees] == [1, 2, 3]


@pytest.mark.asyncio
async def test_sort_by_tasks(session: AsyncSession, identity, complete):
    await complete(["w3"])
    await complete(["w3"])
    await complete(["w1"])

    engine = ReportEngine(session, identity)
    desc = await engine.get_summary(OCT_START, OCT_END, TZ, sort_by="tasks", sort_order="desc")
    asc = await engine.get_summary(OCT_START, OCT_END, TZ, sort_by="tasks", sort_order="asc")

    assert [e.worker_id for e in desc.employees] == ["w3", "w1", "w2"]
    assert [e.worker_id for e in asc.employees] == ["w2", "w1", "w3"]
    assert [e.rank for e in asc.employees] == [1, 2, 3]


@pytest.mark.parametrize(
    ("start", "end", "tz", "code"),
    [
        ("2025/10/01", OCT_END, TZ, "INVALID_DATE"),
        ("2025-02-30", "2025-03-01", TZ, "INVALID_DATE"),
        ("2025-10-31", "2025-10-01", TZ, "INVALID_RANGE"),
        ("2024-01-01", "2025-01-02", TZ, "RANGE_TOO_LONG"),
        (OCT_START, OCT_END, "Mars/Olympus_Mons", "INVALID_TIMEZONE"),
    ],
)
def test_invalid_report_ranges(start, end, tz, code):
    with pytest.raises(ValidationError) as exc:
        parse_report_range(start, end, tz)
    assert exc.value.code == code


def test_range_defaults_timezone():
    report_range = parse_report_range(date(2025, 10, 1), date(2025, 10, 1))
    assert report_range.timezone == "Asia/Ho_Chi_Minh"
    lower, upper = report_range.utc_bounds()
    assert lower == _utc(2025, 9, 30, 17, 0)
    assert upper == _utc(2025, 10, 1, 17, 0)


@pytest.mark.asyncio
async def test_query_failure_is_upstream_failure(session: AsyncSession, identity):
    engine = ReportEngine(session, identity)

    async def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("connection reset"))

    engine.tasks.list_completed_for_workers = broken

    with pytest.raises(UpstreamFailure) as exc:
        await engine.get_summary(OCT_START, OCT_END, TZ)
    assert exc.value.code == "REPORT_QUERY_FAILED"


@pytest.mark.asyncio
async def test_employee_report_lists_tasks_newest_first(
    session: AsyncSession, identity, complete, record_check_in
):
    older = await complete(["w1", "w2"], revenue="1000000", at=_utc(2025, 10, 5, 3, 0), title="Old")
    newer = await complete(["w1"], revenue="300", at=_utc(2025, 10, 20, 3, 0), title="New")
    await complete(["w2"], revenue="999", title="Not mine")
    await record_check_in(older.task_id, "w1", _utc(2025, 10, 5, 1, 0))
    await record_check_in(newer.task_id, "w1", _utc(2025, 10, 20, 1, 0))

    report = await ReportEngine(session, identity).get_employee_report(
        "w1", OCT_START, OCT_END, TZ
    )

    assert report.full_name == "An Nguyen"
    assert [line.title for line in report.tasks] == ["New", "Old"]
    assert [line.share for line in report.tasks] == [Decimal("300"), Decimal("500000")]
    assert report.tasks[1].assignee_count == 2
    assert report.metrics.tasks_completed == 2
    assert report.metrics.total_revenue == Decimal("500300")
    assert report.worked_dates == [date(2025, 10, 5), date(2025, 10, 20)]
    assert report.metrics.days_worked == 2


@pytest.mark.asyncio
async def test_employee_report_unknown_worker(session: AsyncSession, identity):
    with pytest.raises(NotFound):
        await ReportEngine(session, identity).get_employee_report("ghost", OCT_START, OCT_END, TZ)
