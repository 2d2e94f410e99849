"""Row-level access to appointments shared by the booking and payment services.

Rows leave the store only as ``AppointmentResponse`` entities. None of these
helpers commit; the calling service owns the transaction.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.schemas.appointments import (
    AppointmentResponse,
    AppointmentStatus,
    PaymentMethod,
    PaymentStatus,
)

TRACKING_TOKEN_COLUMNS = {
    PaymentMethod.STRIPE: "stripe_payment_intent_id",
    PaymentMethod.MPESA: "mpesa_checkout_request_id",
}


def to_appointment(row: Row) -> AppointmentResponse:
    """Map a raw appointments row onto the domain entity."""
    return AppointmentResponse.model_validate(dict(row._mapping))


def settled_status(current: AppointmentStatus) -> AppointmentStatus:
    """Status an appointment moves to once paid; cancelled stays cancelled."""
    if current == AppointmentStatus.CANCELLED:
        return current
    return AppointmentStatus.CONFIRMED


async def fetch_appointment(db: AsyncSession, appointment_id: int) -> AppointmentResponse | None:
    """Load one appointment by id."""
    result = await db.execute(select(appointments).where(appointments.c.id == appointment_id))
    row = result.fetchone()
    return to_appointment(row) if row else None


async def update_appointment(
    db: AsyncSession,
    appointment_id: int,
    **values: Any,
) -> AppointmentResponse | None:
    """Overwrite columns of one appointment and return the new state."""
    for key, value in values.items():
        if isinstance(value, Enum):
            values[key] = value.value
    values["updated_at"] = datetime.now(UTC)

    stmt = (
        update(appointments)
        .where(appointments.c.id == appointment_id)
        .values(**values)
        .returning(appointments)
    )
    result = await db.execute(stmt)
    row = result.fetchone()
    return to_appointment(row) if row else None


async def mark_paid(
    db: AsyncSession,
    appointment: AppointmentResponse,
    method: PaymentMethod,
    tracking_token: str,
) -> AppointmentResponse | None:
    """Record a successful payment against an appointment."""
    values: dict[str, Any] = {
        "payment_status": PaymentStatus.PAID,
        "payment_method": method,
        "status": settled_status(appointment.status),
    }
    column = TRACKING_TOKEN_COLUMNS.get(method)
    if column:
        values[column] = tracking_token
    return await update_appointment(db, appointment.id, **values)


async def mark_payment_failed(
    db: AsyncSession,
    appointment: AppointmentResponse,
) -> AppointmentResponse | None:
    """Record a failed payment; the appointment status itself is left alone."""
    return await update_appointment(db, appointment.id, payment_status=PaymentStatus.FAILED)
