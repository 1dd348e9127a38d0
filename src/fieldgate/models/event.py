"""Event model - immutable ledger records and their payload variants."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fieldgate.models.attachment import AttachmentRef
from fieldgate.models.enums import EventAction


class Event(BaseModel):
    """Immutable record of one domain occurrence."""

    event_id: UUID
    seq: int
    topic: str
    # Raw action string; may name an action this build does not know.
    action: str
    actor_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = {"frozen": True}

    @property
    def known_action(self) -> Optional[EventAction]:
        try:
            return EventAction(self.action)
        except ValueError:
            return None


class CapturedLocation(BaseModel):
    """GPS fix submitted by a worker."""

    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy_meters: Optional[float] = Field(None, ge=0)


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CheckedInPayload(_Payload):
    location: CapturedLocation
    distance_meters: Optional[float] = None
    warnings: list[str] = Field(default_factory=list)
    attachments: list[AttachmentRef] = Field(default_factory=list)
    notes: Optional[str] = None


class CheckedOutPayload(CheckedInPayload):
    payment_collected: bool = False


class CommentedPayload(_Payload):
    comment: str
    attachments: list[AttachmentRef] = Field(default_factory=list)


class PaymentCollectedPayload(_Payload):
    payment_id: UUID
    amount: Decimal
    currency: str
    has_invoice: bool = False
    invoice_attachment_ref: Optional[str] = None
    notes: Optional[str] = None


class FieldChange(_Payload):
    old: Any = None
    new: Any = None


class PaymentUpdatedPayload(_Payload):
    payment_id: UUID
    edit_reason: str
    changes: dict[str, FieldChange]


class ExpectedRevenueUpdatedPayload(_Payload):
    old_expected_revenue: Optional[Decimal] = None
    new_expected_revenue: Optional[Decimal] = None


class AttachmentDeletedPayload(_Payload):
    ref_id: str
    filename: Optional[str] = None
    reason: Optional[str] = None


# One payload shape per action
PAYLOAD_TYPES: dict[EventAction, type[_Payload]] = {
    EventAction.CHECKED_IN: CheckedInPayload,
    EventAction.CHECKED_OUT: CheckedOutPayload,
    EventAction.COMMENTED: CommentedPayload,
    EventAction.PAYMENT_COLLECTED: PaymentCollectedPayload,
    EventAction.PAYMENT_UPDATED: PaymentUpdatedPayload,
    EventAction.EXPECTED_REVENUE_UPDATED: ExpectedRevenueUpdatedPayload,
    EventAction.ATTACHMENT_DELETED: AttachmentDeletedPayload,
}
