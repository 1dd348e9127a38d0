"""Payment model - money collected on site."""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Payment(BaseModel):
    """Payment collected by a worker at check-out."""

    payment_id: UUID
    task_id: int
    amount: Decimal
    currency: str
    collected_by: str
    collected_at: datetime
    invoice_attachment_ref: Optional[str] = None
    notes: Optional[str] = None
    updated_at: datetime


class PaymentRequest(BaseModel):
    """Payment details submitted with a check-out."""

    collected: bool = False
    # Checked by the engine so a bad amount surfaces as a domain error
    amount: Optional[Decimal] = None
    notes: Optional[str] = None


class PaymentSummary(BaseModel):
    expected_revenue: Optional[Decimal] = None
    total_collected: Decimal = Decimal("0")
    has_payment: bool = False


class TaskPayments(BaseModel):
    payments: list[Payment]
    summary: PaymentSummary
