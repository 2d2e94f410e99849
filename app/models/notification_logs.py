"""Notification log table tracking every outbound email attempt."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
    text,
)

metadata = MetaData()

# Rows are written once per send attempt and never updated
notification_logs = Table(
    "notification_logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appointment_id", Integer, nullable=True),
    Column("user_id", Integer, nullable=True),
    Column("recipient_email", String(320), nullable=False),
    Column("category", String(30), nullable=False),
    Column("subject", String(255), nullable=False),
    Column("status", String(20), nullable=False, server_default=text("'sent'")),
    Column("provider_message_id", String(255), nullable=True),
    Column("error_message", Text, nullable=True),
    Column("sent_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "category IN ('confirmation', 'reminder', 'receipt', 'payment_failed', 'cancellation')",
        name="notification_logs_category_check",
    ),
    CheckConstraint(
        "status IN ('sent', 'failed', 'bounced')",
        name="notification_logs_status_check",
    ),
    Index("idx_notification_logs_appointment_id", "appointment_id"),
    Index("idx_notification_logs_status", "status"),
    Index("idx_notification_logs_sent_at", "sent_at"),
)
