"""Appointments table model using SQLAlchemy Core."""

from sqlalchemy import (
    Boolean,
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
    false,
    func,
    text,
)

metadata = MetaData()

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    # Ownership
    Column("user_id", Integer, nullable=False),
    # Free text snapshot, not foreign keys
    Column("doctor_name", String(255), nullable=False),
    Column("department", String(255), nullable=False),
    # Requested slot, stored as entered
    Column("appointment_date", String(50), nullable=False),
    Column("appointment_time", String(20), nullable=False),
    # Patient contact
    Column("patient_first_name", String(255), nullable=False),
    Column("patient_last_name", String(255), nullable=False),
    Column("patient_email", String(320), nullable=False),
    Column("patient_phone", String(20), nullable=False),
    Column("reason_for_visit", Text, nullable=True),
    Column("insurance_provider", String(255), nullable=True),
    # Status management
    Column("status", String(20), nullable=False, server_default=text("'pending'")),
    Column("consultation_fee", Numeric(10, 2), nullable=False, server_default=text("0")),
    Column("payment_status", String(20), nullable=False, server_default=text("'pending'")),
    Column("payment_method", String(20), nullable=False, server_default=text("'none'")),
    # Provider tracking tokens
    Column("stripe_payment_intent_id", String(255), nullable=True),
    Column("mpesa_checkout_request_id", String(255), nullable=True),
    # Notification flags
    Column("email_sent", Boolean, nullable=False, server_default=false()),
    Column("confirmation_email_sent", Boolean, nullable=False, server_default=false()),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Column("updated_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    # Constraints
    CheckConstraint(
        "status IN ('pending', 'confirmed', 'completed', 'cancelled')",
        name="appointments_status_check",
    ),
    CheckConstraint(
        "payment_status IN ('pending', 'paid', 'failed')",
        name="appointments_payment_status_check",
    ),
    CheckConstraint(
        "payment_method IN ('stripe', 'mpesa', 'none')",
        name="appointments_payment_method_check",
    ),
    Index("idx_appointments_user_id", "user_id"),
    Index("idx_appointments_status", "status"),
    Index("idx_appointments_created_at", "created_at"),
)
