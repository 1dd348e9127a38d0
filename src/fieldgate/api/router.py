"""REST API router."""

from datetime import datetime
from decimal import Decimal
from typing import NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from fieldgate import __version__
from fieldgate.api.deps import (
    get_db_session,
    get_identity,
    get_storage,
    require_admin,
    verify_api_key,
)
from fieldgate.api.schemas import (
    CommentResponse,
    EventListResponse,
    ExpectedRevenueRequest,
    ExpectedRevenueResponse,
    HealthResponse,
    MetricsResponse,
    TimelineResponse,
    TransitionResponse,
)
from fieldgate.auth.context import AuthContext
from fieldgate.engine import (
    Conflict,
    FieldGateError,
    Forbidden,
    InvalidTransition,
    NotFound,
    UpstreamFailure,
    ValidationError,
)
from fieldgate.engine.activity import ActivityEngine
from fieldgate.engine.checkin import CheckinEngine, TransitionResult
from fieldgate.engine.ledger import EventLedger
from fieldgate.engine.payments import PaymentEngine
from fieldgate.engine.reports import ReportEngine
from fieldgate.integrations.identity import Identity
from fieldgate.integrations.storage import Storage
from fieldgate.models import (
    CapturedLocation,
    EmployeeReport,
    Payment,
    PaymentRequest,
    SortBy,
    SortOrder,
    SummaryResponse,
    TaskPayments,
    UploadedFile,
)
from fieldgate.observability.metrics import metrics

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])
public_router = APIRouter(prefix="/v1")

_STATUS_BY_KIND: dict[type[FieldGateError], int] = {
    ValidationError: 400,
    Forbidden: 403,
    NotFound: 404,
    Conflict: 409,
    InvalidTransition: 409,
    UpstreamFailure: 502,
}


def raise_http(error: FieldGateError) -> NoReturn:
    """Translate a domain error into an HTTP error."""
    status = next(
        (code for kind, code in _STATUS_BY_KIND.items() if isinstance(error, kind)), 500
    )
    raise HTTPException(status_code=status, detail=error.to_detail()) from error


async def _read_files(files: list[UploadFile]) -> list[UploadedFile]:
    return [
        UploadedFile(
            filename=f.filename or "upload",
            content_type=f.content_type or "application/octet-stream",
            data=await f.read(),
        )
        for f in files
    ]


def _location(
    latitude: Optional[float], longitude: Optional[float], accuracy: Optional[float]
) -> Optional[CapturedLocation]:
    if latitude is None or longitude is None:
        return None
    if not (-90 <= latitude <= 90 and -180 <= longitude <= 180):
        raise_http(ValidationError("Coordinates out of range", "INVALID_LOCATION"))
    if accuracy is not None and accuracy < 0:
        raise_http(ValidationError("accuracy_meters must not be negative", "INVALID_LOCATION"))
    return CapturedLocation(lat=latitude, lng=longitude, accuracy_meters=accuracy)


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        task=result.task,
        event=result.event,
        warnings=result.warnings,
        payment=result.payment,
    )


# ============================================================================
# Health & Metrics
# ============================================================================


@public_router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics():
    """Snapshot of in-process counters and timings."""
    return MetricsResponse(**metrics.snapshot())


# ============================================================================
# Check-in / Check-out
# ============================================================================


@router.post("/tasks/{task_id}/check-in", response_model=TransitionResponse)
async def check_in(
    task_id: int,
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    accuracy_meters: Optional[float] = Form(None),
    notes: Optional[str] = Form(None),
    files: list[UploadFile] = File(default=[]),
    auth: AuthContext = Depends(verify_api_key),
    session: AsyncSession = Depends(get_db_session),
    storage: Storage = Depends(get_storage),
):
    """Worker arrives on site: READY -> IN_PROGRESS."""
    engine = CheckinEngine(session, storage)
    try:
        result = await engine.check_in(
            task_id=task_id,
            worker_id=auth.actor.id,
            location=_location(latitude, longitude, accuracy_meters),
            attachments=await _read_files(files),
            notes=notes,
        )
    except FieldGateError as e:
        raise_http(e)
    return _transition_response(result)


@router.post("/tasks/{task_id}/check-out", response_model=TransitionResponse)
async def check_out(
    task_id: int,
    latitude: Optional[float] = Form(None),
    longitude: Optional[float] = Form(None),
    accuracy_meters: Optional[float] = Form(None),
    notes: Optional[str] = Form(None),
    payment_collected: bool = Form(False),
    payment_amount: Optional[Decimal] = Form(None),
    payment_notes: Optional[str] = Form(None),
    files: list[UploadFile] = File(default=[]),
    invoice_file: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(verify_api_key),
    session: AsyncSession = Depends(get_db_session),
    storage: Storage = Depends(get_storage),
):
    """Worker finishes on site: IN_PROGRESS -> COMPLETED, optionally with a payment."""
    engine = CheckinEngine(session, storage)
    invoice = (await _read_files([invoice_file]))[0] if invoice_file else None
    try:
        result = await engine.check_out(
            task_id=task_id,
            worker_id=auth.actor.id,
            location=_location(latitude, longitude, accuracy_meters),
            attachments=await _read_files(files),
            notes=notes,
            payment=PaymentRequest(
                collected=payment_collected, amount=payment_amount, notes=payment_notes
            ),
            invoice=invoice,
        )
    except FieldGateError as e:
        raise_http(e)
    return _transition_response(result)


# ============================================================================
# Activity & Ledger
# ============================================================================


@router.post("/tasks/{task_id}/comments", response_model=CommentResponse)
async def add_comment(
    task_id: int,
    comment: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    auth: AuthContext = Depends(verify_api_key),
    session: AsyncSession = Depends(get_db_session),
    storage: Storage = Depends(get_storage),
):
    """Comment on a task, with up to five photos."""
    engine = ActivityEngine(session, storage)
    try:
        event = await engine.add_comment(
            task_id, auth.actor, comment, await _read_files(files)
        )
    except FieldGateError as e:
        raise_http(e)
    return CommentResponse(event=event)


@router.get("/tasks/{task_id}/activity", response_model=TimelineResponse)
async def task_activity(
    task_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Decoded history of one task."""
    engine = ActivityEngine(session)
    try:
        entries = await engine.task_timeline(task_id)
    except FieldGateError as e:
        raise_http(e)
    return TimelineResponse(task_id=task_id, entries=entries)


@router.get("/events", response_model=EventListResponse)
async def list_events(
    topic: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    actor_id: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    after_seq: Optional[int] = Query(None, ge=0),
    limit: Optional[int] = Query(None, ge=1, le=200),
    auth: AuthContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
):
    """Query the ledger (admin only)."""
    for name, value in (("since", since), ("until", until)):
        if value is not None and value.tzinfo is None:
            raise_http(ValidationError(f"{name} must include a UTC offset", "NAIVE_TIMESTAMP"))

    ledger = EventLedger(session)
    try:
        events = await ledger.query(
            topic=topic,
            action=action,
            actor_id=actor_id,
            since=since,
            until=until,
            after_seq=after_seq,
            limit=limit,
        )
    except FieldGateError as e:
        raise_http(e)
    next_after_seq = events[-1].seq if events else None
    return EventListResponse(events=events, next_after_seq=next_after_seq)


# ============================================================================
# Reports
# ============================================================================


@router.get("/reports/summary", response_model=SummaryResponse)
async def reports_summary(
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    timezone: Optional[str] = Query(None),
    sort_by: SortBy = Query(SortBy.REVENUE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    auth: AuthContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(get_identity),
):
    """Ranked per-worker summary for a date range."""
    engine = ReportEngine(session, identity)
    try:
        return await engine.get_summary(start_date, end_date, timezone, sort_by, sort_order)
    except FieldGateError as e:
        raise_http(e)


@router.get("/reports/employees/{worker_id}", response_model=EmployeeReport)
async def reports_employee(
    worker_id: str,
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    timezone: Optional[str] = Query(None),
    auth: AuthContext = Depends(require_admin),
    session: AsyncSession = Depends(get_db_session),
    identity: Identity = Depends(get_identity),
):
    """Metrics and per-task revenue for one worker."""
    engine = ReportEngine(session, identity)
    try:
        return await engine.get_employee_report(worker_id, start_date, end_date, timezone)
    except FieldGateError as e:
        raise_http(e)


# ============================================================================
# Payments
# ============================================================================


@router.get("/tasks/{task_id}/payments", response_model=TaskPayments)
async def task_payments(
    task_id: int,
    session: AsyncSession = Depends(get_db_session),
):
    """Payments of a task and how they compare to the expected revenue."""
    engine = PaymentEngine(session)
    try:
        return await engine.get_task_payments(task_id)
    except FieldGateError as e:
        raise_http(e)


@router.patch("/payments/{payment_id}", response_model=Payment)
async def update_payment(
    payment_id: UUID,
    edit_reason: str = Form(...),
    amount: Optional[Decimal] = Form(None),
    notes: Optional[str] = Form(None),
    invoice_file: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(verify_api_key),
    session: AsyncSession = Depends(get_db_session),
    storage: Storage = Depends(get_storage),
):
    """Edit a payment (admin only); the change is recorded on the ledger."""
    engine = PaymentEngine(session, storage)
    fields = {}
    if amount is not None:
        fields["amount"] = amount
    if notes is not None:
        fields["notes"] = notes
    invoice = (await _read_files([invoice_file]))[0] if invoice_file else None
    try:
        return await engine.update_payment(
            payment_id, auth.actor, edit_reason, invoice=invoice, **fields
        )
    except FieldGateError as e:
        raise_http(e)


@router.put("/tasks/{task_id}/expected-revenue", response_model=ExpectedRevenueResponse)
async def set_expected_revenue(
    task_id: int,
    request: ExpectedRevenueRequest,
    auth: AuthContext = Depends(verify_api_key),
    session: AsyncSession = Depends(get_db_session),
):
    """Set or clear a task's expected revenue (admin only)."""
    engine = PaymentEngine(session)
    try:
        task = await engine.set_expected_revenue(task_id, auth.actor, request.expected_revenue)
    except FieldGateError as e:
        raise_http(e)
    return ExpectedRevenueResponse(task=task)
