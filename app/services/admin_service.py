"""Admin query service: dashboard reads and status overrides across all appointments."""

import math
from collections import Counter
from collections.abc import Iterator
from contextlib import contextmanager
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import Table, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AppException,
    ForbiddenException,
    NotFoundException,
    PersistenceException,
)
from app.models.appointments import appointments
from app.models.notification_logs import notification_logs
from app.models.payments import mpesa_payments, stripe_payments
from app.schemas.admin import (
    AdminAppointmentListResponse,
    AdminPaymentListResponse,
    AppointmentStatsResponse,
    DashboardOverviewResponse,
    NotificationLogListResponse,
    NotificationStatsResponse,
    PaymentStatsResponse,
)
from app.schemas.appointments import AppointmentResponse, AppointmentStatus, PaymentStatus
from app.schemas.notifications import (
    EmailSendResult,
    NotificationCategory,
    NotificationLogResponse,
    NotificationStatus,
)
from app.schemas.payments import (
    MpesaPaymentResponse,
    PaymentProvider,
    PaymentRecordStatus,
    StripePaymentResponse,
)
from app.services.appointment_records import fetch_appointment, to_appointment, update_appointment
from app.services.email_service import EmailService

logger = structlog.get_logger(__name__)

SEARCH_LIMIT = 20

PAYMENT_TABLES: dict[PaymentProvider, tuple[Table, type]] = {
    PaymentProvider.STRIPE: (stripe_payments, StripePaymentResponse),
    PaymentProvider.MPESA: (mpesa_payments, MpesaPaymentResponse),
}


def ensure_admin(user: dict) -> dict:
    """
    Check that the acting user has the admin role.

    Raises:
        ForbiddenException: If the user is not an admin
    """
    if user.get("role") != "admin":
        raise ForbiddenException("Admin access required")
    return user


def total_pages(total: int, limit: int) -> int:
    """Number of pages needed to show ``total`` rows at ``limit`` per page."""
    return math.ceil(total / limit) if total else 0


@contextmanager
def _read_errors(action: str) -> Iterator[None]:
    """Turn store failures during a read into a generic internal error."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("admin_read_failed", action=action, error=str(e))
        raise AppException(f"Failed to fetch {action}", status_code=500) from e


class AdminService:
    """Service backing the admin dashboard.

    Role checks happen at the API boundary; every method here assumes an admin caller.
    """

    def __init__(self, db: AsyncSession, email_service: EmailService):
        """Initialize service with database session and email service."""
        self.db = db
        self.email = email_service

    async def _paginate(
        self,
        table: Table,
        conditions: list[Any],
        page: int,
        limit: int,
        order_column: str,
    ) -> tuple[list[Any], int]:
        """Run a filtered, newest-first page query and its count."""
        count_query = select(func.count()).select_from(table)
        query = select(table)
        if conditions:
            count_query = count_query.where(*conditions)
            query = query.where(*conditions)

        total = (await self.db.execute(count_query)).scalar_one()

        offset = (page - 1) * limit
        query = (
            query.order_by(table.c[order_column].desc(), table.c.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(query)
        return result.fetchall(), total

    async def list_appointments(
        self,
        page: int = 1,
        limit: int = 20,
        status: AppointmentStatus | None = None,
        payment_status: PaymentStatus | None = None,
        department: str | None = None,
    ) -> AdminAppointmentListResponse:
        """
        List all appointments with filtering and pagination.

        Args:
            page: Page number, starting at 1
            limit: Items per page
            status: Filter by appointment status
            payment_status: Filter by payment status
            department: Filter by department name

        Returns:
            Paginated appointments, newest first
        """
        conditions = []
        if status:
            conditions.append(appointments.c.status == status.value)
        if payment_status:
            conditions.append(appointments.c.payment_status == payment_status.value)
        if department:
            conditions.append(appointments.c.department == department)

        with _read_errors("appointments"):
            rows, total = await self._paginate(
                appointments, conditions, page, limit, "created_at"
            )

        return AdminAppointmentListResponse(
            appointments=[to_appointment(row) for row in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages(total, limit),
        )

    async def appointment_stats(self) -> AppointmentStatsResponse:
        """Count appointments by status."""
        with _read_errors("appointment statistics"):
            result = await self.db.execute(select(appointments.c.status))
            counts = Counter(row.status for row in result.fetchall())

        return AppointmentStatsResponse(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in AppointmentStatus},
        )

    async def search_appointments(self, query: str) -> list[AppointmentResponse]:
        """
        Find appointments by patient name, email or phone.

        Args:
            query: Substring to look for

        Returns:
            Up to 20 matches, newest first
        """
        term = query.strip()
        # Wildcards in the query are matched literally
        stmt = (
            select(appointments)
            .where(
                or_(
                    *(
                        column.icontains(term, autoescape=True)
                        for column in (
                            appointments.c.patient_first_name,
                            appointments.c.patient_last_name,
                            appointments.c.patient_email,
                            appointments.c.patient_phone,
                        )
                    )
                )
            )
            .order_by(appointments.c.created_at.desc(), appointments.c.id.desc())
            .limit(SEARCH_LIMIT)
        )
        with _read_errors("appointments"):
            result = await self.db.execute(stmt)
            rows = result.fetchall()

        return [to_appointment(row) for row in rows]

    async def _get_appointment(self, appointment_id: int) -> AppointmentResponse:
        with _read_errors("appointment"):
            appointment = await fetch_appointment(self.db, appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found")
        return appointment

    async def update_appointment_status(
        self,
        appointment_id: int,
        status: AppointmentStatus,
    ) -> AppointmentResponse:
        """
        Set any status on any appointment.

        Raises:
            NotFoundException: If appointment not found
            PersistenceException: If the update cannot be stored
        """
        await self._get_appointment(appointment_id)
        try:
            appointment = await update_appointment(self.db, appointment_id, status=status)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "admin_status_update_failed", appointment_id=appointment_id, error=str(e)
            )
            raise PersistenceException("Failed to update appointment status") from e

        logger.info("admin_status_updated", appointment_id=appointment_id, status=status.value)
        return appointment

    async def cancel_appointment(self, appointment_id: int) -> AppointmentResponse:
        """
        Cancel any appointment and notify the patient.

        Raises:
            NotFoundException: If appointment not found
            PersistenceException: If the update cannot be stored
        """
        appointment = await self.update_appointment_status(
            appointment_id, AppointmentStatus.CANCELLED
        )
        await self.email.send_cancellation(appointment)
        return appointment

    async def send_reminder(self, appointment_id: int) -> EmailSendResult:
        """
        Email the patient a reminder for an appointment.

        Raises:
            NotFoundException: If appointment not found
        """
        appointment = await self._get_appointment(appointment_id)
        return await self.email.send_appointment_reminder(appointment)

    async def list_payments(
        self,
        provider: PaymentProvider,
        page: int = 1,
        limit: int = 20,
        status: PaymentRecordStatus | None = None,
    ) -> AdminPaymentListResponse:
        """
        List payment records for one provider.

        Args:
            provider: Which provider's records to list
            page: Page number, starting at 1
            limit: Items per page
            status: Filter by record status

        Returns:
            Paginated payment records, newest first
        """
        table, schema = PAYMENT_TABLES[provider]
        conditions = []
        if status:
            conditions.append(table.c.status == status.value)

        with _read_errors("payments"):
            rows, total = await self._paginate(table, conditions, page, limit, "created_at")

        return AdminPaymentListResponse(
            provider=provider,
            payments=[schema.model_validate(dict(row._mapping)) for row in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages(total, limit),
        )

    async def payment_stats(self) -> PaymentStatsResponse:
        """
        Summarize payments across both providers.

        ``total_revenue`` adds succeeded amounts from every provider without
        currency conversion; ``revenue_by_currency`` keeps them apart.
        """
        total_revenue = Decimal("0")
        by_currency: dict[str, Decimal] = {}
        per_provider: dict[str, int] = {}
        pending = 0

        with _read_errors("payment statistics"):
            for provider, (table, _) in PAYMENT_TABLES.items():
                result = await self.db.execute(
                    select(table.c.amount, table.c.currency, table.c.status)
                )
                rows = result.fetchall()
                per_provider[provider.value] = len(rows)

                for row in rows:
                    if row.status == PaymentRecordStatus.PENDING.value:
                        pending += 1
                    elif row.status == PaymentRecordStatus.SUCCEEDED.value:
                        amount = Decimal(str(row.amount))
                        total_revenue += amount
                        currency = row.currency.upper()
                        by_currency[currency] = by_currency.get(currency, Decimal("0")) + amount

        return PaymentStatsResponse(
            total_revenue=float(total_revenue),
            revenue_by_currency={code: float(amount) for code, amount in by_currency.items()},
            per_provider_counts=per_provider,
            pending_count=pending,
        )

    async def list_notification_logs(
        self,
        page: int = 1,
        limit: int = 20,
        category: NotificationCategory | None = None,
        status: NotificationStatus | None = None,
        appointment_id: int | None = None,
    ) -> NotificationLogListResponse:
        """
        List notification log entries.

        Args:
            page: Page number, starting at 1
            limit: Items per page
            category: Filter by notification category
            status: Filter by delivery status
            appointment_id: Filter by linked appointment

        Returns:
            Paginated log entries, newest first
        """
        conditions = []
        if category:
            conditions.append(notification_logs.c.category == category.value)
        if status:
            conditions.append(notification_logs.c.status == status.value)
        if appointment_id is not None:
            conditions.append(notification_logs.c.appointment_id == appointment_id)

        with _read_errors("notification logs"):
            rows, total = await self._paginate(
                notification_logs, conditions, page, limit, "sent_at"
            )

        return NotificationLogListResponse(
            logs=[NotificationLogResponse.model_validate(dict(row._mapping)) for row in rows],
            total=total,
            page=page,
            limit=limit,
            total_pages=total_pages(total, limit),
        )

    async def notification_stats(self) -> NotificationStatsResponse:
        """Count notification log entries by delivery status."""
        with _read_errors("notification statistics"):
            result = await self.db.execute(
                select(notification_logs.c.status, func.count())
                .group_by(notification_logs.c.status)
            )
            counts = {row[0]: row[1] for row in result.fetchall()}

        return NotificationStatsResponse(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in NotificationStatus},
        )

    async def overview(self) -> DashboardOverviewResponse:
        """Appointment, payment and notification statistics in one response."""
        return DashboardOverviewResponse(
            appointments=await self.appointment_stats(),
            payments=await self.payment_stats(),
            notifications=await self.notification_stats(),
        )
