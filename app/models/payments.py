"""Payment record tables for card and mobile money providers."""

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    func,
    text,
)

metadata = MetaData()

# One row per Stripe payment intent
stripe_payments = Table(
    "stripe_payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appointment_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    # Major currency units (dollars), converted from cents by the adapter
    Column("amount", Numeric(10, 2), nullable=False),
    Column("currency", String(3), nullable=False, server_default=text("'USD'")),
    Column("stripe_payment_intent_id", String(255), nullable=False, unique=True),
    Column("status", String(20), nullable=False, server_default=text("'pending'")),
    Column("payment_method", String(50), nullable=True),
    Column("receipt_url", Text, nullable=True),
    Column("failure_reason", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'succeeded', 'failed', 'canceled')",
        name="stripe_payments_status_check",
    ),
    Index("idx_stripe_payments_appointment_id", "appointment_id"),
    Index("idx_stripe_payments_status", "status"),
)

# One row per M-Pesa STK push
mpesa_payments = Table(
    "mpesa_payments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("appointment_id", Integer, nullable=False),
    Column("user_id", Integer, nullable=False),
    Column("amount", Numeric(10, 2), nullable=False),
    Column("currency", String(3), nullable=False, server_default=text("'KES'")),
    Column("phone_number", String(20), nullable=False),
    Column("checkout_request_id", String(255), nullable=False, unique=True),
    Column("merchant_request_id", String(255), nullable=True),
    Column("result_code", String(10), nullable=True),
    Column("result_desc", Text, nullable=True),
    Column("mpesa_receipt_number", String(50), nullable=True),
    Column("transaction_date", String(20), nullable=True),
    Column("status", String(20), nullable=False, server_default=text("'pending'")),
    Column("failure_reason", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    CheckConstraint(
        "status IN ('pending', 'succeeded', 'failed', 'timeout', 'canceled')",
        name="mpesa_payments_status_check",
    ),
    Index("idx_mpesa_payments_appointment_id", "appointment_id"),
    Index("idx_mpesa_payments_status", "status"),
)
