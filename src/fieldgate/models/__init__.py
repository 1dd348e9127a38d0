"""FieldGate data models."""

from fieldgate.models.enums import EventAction, SortBy, SortOrder, TaskStatus
from fieldgate.models.attachment import AttachmentRef, UploadedFile
from fieldgate.models.event import PAYLOAD_TYPES, CapturedLocation, Event
from fieldgate.models.payment import Payment, PaymentRequest, TaskPayments
from fieldgate.models.report import (
    EmployeeMetrics,
    EmployeeReport,
    EmployeeSummary,
    Period,
    SummaryResponse,
    SummaryTotals,
)
from fieldgate.models.task import CompletedTaskRow, GeoLocation, Task, task_topic
from fieldgate.models.worker import Actor, Worker

__all__ = [
    "Actor",
    "AttachmentRef",
    "CapturedLocation",
    "CompletedTaskRow",
    "EmployeeMetrics",
    "EmployeeReport",
    "EmployeeSummary",
    "Event",
    "EventAction",
    "GeoLocation",
    "PAYLOAD_TYPES",
    "Payment",
    "PaymentRequest",
    "Period",
    "SortBy",
    "SortOrder",
    "SummaryResponse",
    "SummaryTotals",
    "Task",
    "TaskPayments",
    "TaskStatus",
    "UploadedFile",
    "Worker",
    "task_topic",
]
