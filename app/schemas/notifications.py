"""Notification schemas."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict


class NotificationCategory(str, Enum):
    """Kinds of transactional email.

    Values are snake_case on the wire and in the log table, so a failed
    payment notice is filtered as ``category=payment_failed``.
    """

    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    RECEIPT = "receipt"
    PAYMENT_FAILED = "payment_failed"
    CANCELLATION = "cancellation"


class NotificationStatus(str, Enum):
    """Delivery outcome recorded in the notification log."""

    SENT = "sent"
    FAILED = "failed"
    BOUNCED = "bounced"


class EmailSendResult(BaseModel):
    """Outcome of a single outbound email."""

    success: bool
    message_id: str | None = None
    error: str | None = None


class NotificationLogResponse(BaseModel):
    """Notification log entry."""

    id: int
    appointment_id: int | None = None
    user_id: int | None = None
    recipient_email: str
    category: NotificationCategory
    subject: str
    status: NotificationStatus
    provider_message_id: str | None = None
    error_message: str | None = None
    sent_at: datetime

    model_config = ConfigDict(from_attributes=True)
