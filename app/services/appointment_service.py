"""Booking service: creates appointments and coordinates payment and email side effects."""

from decimal import Decimal
from enum import Enum
from typing import Any, NoReturn

import structlog
from sqlalchemy import insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    PaymentInitiationException,
    PersistenceException,
    ProviderConfigurationException,
    ValidationException,
)
from app.core.mpesa_client import normalize_phone_number
from app.models.appointments import appointments
from app.schemas.appointments import (
    AppointmentBase,
    AppointmentBookRequest,
    AppointmentBookWithPaymentRequest,
    AppointmentResponse,
    AppointmentStatus,
    BookingResponse,
    BookingWithPaymentResponse,
    ConfirmPaymentResponse,
    PaymentMethod,
    PaymentStatus,
)
from app.schemas.payments import PaymentIntentResponse, PaymentIntentResult, ProviderResult
from app.services.appointment_records import (
    TRACKING_TOKEN_COLUMNS,
    fetch_appointment,
    settled_status,
    to_appointment,
    update_appointment,
)
from app.services.email_service import EmailService, currency_for
from app.services.mpesa_service import MpesaService
from app.services.stripe_service import StripeService, to_minor_units

logger = structlog.get_logger(__name__)


def ensure_can_modify(appointment: AppointmentResponse, user: dict) -> None:
    """
    Check that a user may act on an appointment.

    Raises:
        ForbiddenException: Unless the user owns the appointment or is an admin
    """
    if appointment.user_id != user["id"] and user.get("role") != "admin":
        raise ForbiddenException("Access denied to this appointment")


def raise_initiation_error(result: ProviderResult) -> NoReturn:
    """Surface a failed provider call as the matching payment error."""
    if result.configuration_error:
        raise ProviderConfigurationException()
    raise PaymentInitiationException("Failed to initiate payment. Please try again.")


class AppointmentService:
    """Service for booking and managing appointments."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: EmailService,
        stripe_service: StripeService,
        mpesa_service: MpesaService,
    ):
        """Initialize service with database session and collaborating services."""
        self.db = db
        self.email = email_service
        self.stripe = stripe_service
        self.mpesa = mpesa_service

    async def _create(
        self,
        data: AppointmentBase,
        user_id: int,
        **values: Any,
    ) -> AppointmentResponse:
        """Insert an appointment row and commit it."""
        row_values = data.model_dump(include=set(AppointmentBase.model_fields))
        row_values["user_id"] = user_id
        for key, value in values.items():
            row_values[key] = value.value if isinstance(value, Enum) else value

        try:
            result = await self.db.execute(
                insert(appointments).values(**row_values).returning(appointments)
            )
            row = result.fetchone()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("appointment_create_failed", user_id=user_id, error=str(e))
            raise PersistenceException("Failed to create appointment") from e

        return to_appointment(row)

    async def _load_for(self, appointment_id: int, user: dict) -> AppointmentResponse:
        try:
            appointment = await fetch_appointment(self.db, appointment_id)
        except SQLAlchemyError as e:
            logger.error("appointment_fetch_failed", appointment_id=appointment_id, error=str(e))
            raise PersistenceException() from e

        if appointment is None:
            raise NotFoundException("Appointment not found")
        ensure_can_modify(appointment, user)
        return appointment

    async def _update(self, appointment_id: int, action: str, **values: Any) -> AppointmentResponse:
        try:
            appointment = await update_appointment(self.db, appointment_id, **values)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "appointment_update_failed",
                appointment_id=appointment_id,
                action=action,
                error=str(e),
            )
            raise PersistenceException(f"Failed to {action} appointment") from e

        if appointment is None:
            raise NotFoundException("Appointment not found")
        return appointment

    async def book(self, data: AppointmentBookRequest, user: dict) -> BookingResponse:
        """
        Book an appointment that needs no payment.

        The appointment is confirmed and paid immediately and a confirmation
        email is sent.

        Args:
            data: Booking details
            user: Acting user, becomes the owner

        Returns:
            New appointment id and entity

        Raises:
            PersistenceException: If the appointment cannot be stored
        """
        appointment = await self._create(
            data,
            user["id"],
            status=AppointmentStatus.CONFIRMED,
            payment_status=PaymentStatus.PAID,
            payment_method=PaymentMethod.NONE,
            consultation_fee=data.consultation_fee or Decimal("0"),
        )
        logger.info("appointment_booked", appointment_id=appointment.id, user_id=user["id"])

        await self.email.send_appointment_confirmation(appointment)

        refreshed = await self.get_by_id(appointment.id)
        appointment = refreshed or appointment
        return BookingResponse(appointment_id=appointment.id, appointment=appointment)

    async def book_with_payment(
        self,
        data: AppointmentBookWithPaymentRequest,
        user: dict,
    ) -> BookingWithPaymentResponse:
        """
        Book an appointment and start its payment.

        Args:
            data: Booking details with payment method and fee
            user: Acting user, becomes the owner

        Returns:
            Appointment id and the provider tracking token

        Raises:
            ValidationException: If the method is none or the phone number is invalid
            PersistenceException: If the appointment cannot be stored
            ProviderConfigurationException: If the provider has no credentials
            PaymentInitiationException: If the provider rejected the payment
        """
        if data.payment_method == PaymentMethod.NONE:
            raise ValidationException("A payment method is required")
        if data.payment_method == PaymentMethod.MPESA:
            # Raises before anything is written
            normalize_phone_number(data.patient_phone)

        appointment = await self._create(
            data,
            user["id"],
            status=AppointmentStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
            payment_method=data.payment_method,
            consultation_fee=data.consultation_fee,
        )

        client_secret = None
        result: ProviderResult
        if data.payment_method == PaymentMethod.STRIPE:
            result = await self._start_card_payment(appointment)
            token = result.payment_intent_id
            client_secret = result.client_secret
            message = "Complete the card payment to confirm your appointment"
        else:
            result = await self.mpesa.initiate_payment(
                appointment, data.patient_phone, data.consultation_fee
            )
            token = result.checkout_request_id
            message = result.customer_message or "Check your phone to complete the payment"

        if not result.success or not token:
            await self._abandon(appointment, result)

        column = TRACKING_TOKEN_COLUMNS[data.payment_method]
        await self._update(appointment.id, "update", **{column: token})

        logger.info(
            "appointment_payment_initiated",
            appointment_id=appointment.id,
            payment_method=data.payment_method.value,
        )
        return BookingWithPaymentResponse(
            appointment_id=appointment.id,
            payment_method=data.payment_method,
            tracking_token=token,
            client_secret=client_secret,
            message=message,
        )

    async def _start_card_payment(self, appointment: AppointmentResponse) -> PaymentIntentResult:
        return await self.stripe.create_payment_intent(
            appointment_id=appointment.id,
            user_id=appointment.user_id,
            amount_minor=to_minor_units(appointment.consultation_fee),
            description=(
                f"Consultation with {appointment.doctor_name} on {appointment.appointment_date}"
            ),
        )

    async def _abandon(self, appointment: AppointmentResponse, result: ProviderResult) -> NoReturn:
        """Cancel an appointment whose payment could not start, then raise."""
        logger.warning(
            "appointment_payment_initiation_failed",
            appointment_id=appointment.id,
            payment_method=appointment.payment_method.value,
            error=result.error,
        )
        try:
            await update_appointment(self.db, appointment.id, status=AppointmentStatus.CANCELLED)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("appointment_abandon_failed", appointment_id=appointment.id, error=str(e))

        raise_initiation_error(result)

    async def create_card_payment(self, appointment_id: int, user: dict) -> PaymentIntentResponse:
        """
        Start a card payment for an existing appointment.

        Args:
            appointment_id: Appointment ID
            user: Acting user

        Returns:
            Intent id and client secret for the payment form

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
            ValidationException: If the appointment cannot be paid for
            PaymentInitiationException: If the provider rejected the payment
        """
        appointment = await self._load_for(appointment_id, user)
        if appointment.status == AppointmentStatus.CANCELLED:
            raise ValidationException("Cancelled appointments cannot be paid for")
        if appointment.payment_status == PaymentStatus.PAID:
            raise ValidationException("Appointment is already paid")
        if appointment.consultation_fee <= 0:
            raise ValidationException("Appointment has no consultation fee")

        result = await self._start_card_payment(appointment)
        if not result.success or not result.payment_intent_id:
            logger.warning(
                "card_payment_initiation_failed",
                appointment_id=appointment_id,
                error=result.error,
            )
            raise_initiation_error(result)

        await self._update(
            appointment_id,
            "update",
            payment_method=PaymentMethod.STRIPE,
            stripe_payment_intent_id=result.payment_intent_id,
        )
        return PaymentIntentResponse(
            appointment_id=appointment_id,
            payment_intent_id=result.payment_intent_id,
            client_secret=result.client_secret or "",
        )

    async def confirm_payment(
        self,
        appointment_id: int,
        tracking_token: str,
        user: dict,
    ) -> ConfirmPaymentResponse:
        """
        Mark an appointment paid and send the receipt.

        Args:
            appointment_id: Appointment ID
            tracking_token: Provider token for the payment
            user: Acting user

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
        """
        appointment = await self._load_for(appointment_id, user)

        values: dict[str, Any] = {
            "status": settled_status(appointment.status),
            "payment_status": PaymentStatus.PAID,
        }
        column = TRACKING_TOKEN_COLUMNS.get(appointment.payment_method)
        if column and not getattr(appointment, column):
            values[column] = tracking_token

        appointment = await self._update(appointment_id, "confirm", **values)
        logger.info("appointment_payment_confirmed", appointment_id=appointment_id)

        await self.email.send_payment_receipt(
            appointment,
            amount=appointment.consultation_fee,
            currency=currency_for(appointment.payment_method),
            payment_method=appointment.payment_method.value,
            transaction_id=tracking_token,
        )
        return ConfirmPaymentResponse(
            message="Payment confirmed successfully", appointment=appointment
        )

    async def cancel(self, appointment_id: int, user: dict) -> None:
        """
        Cancel an appointment and notify the patient.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
        """
        await self._load_for(appointment_id, user)
        appointment = await self._update(
            appointment_id, "cancel", status=AppointmentStatus.CANCELLED
        )
        logger.info("appointment_cancelled", appointment_id=appointment_id, user_id=user["id"])

        await self.email.send_cancellation(appointment)

    async def reschedule(
        self,
        appointment_id: int,
        new_date: str,
        new_time: str,
        user: dict,
    ) -> None:
        """
        Move an appointment to a new date and time.

        No availability check is made and the status is left as it is.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
        """
        await self._load_for(appointment_id, user)
        await self._update(
            appointment_id,
            "reschedule",
            appointment_date=new_date,
            appointment_time=new_time,
        )
        logger.info("appointment_rescheduled", appointment_id=appointment_id, user_id=user["id"])

    async def get_user_appointments(self, user_id: int) -> list[AppointmentResponse]:
        """List a user's appointments, newest first; empty if the store is unavailable."""
        stmt = (
            select(appointments)
            .where(appointments.c.user_id == user_id)
            .order_by(appointments.c.created_at.desc(), appointments.c.id.desc())
        )
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            logger.error("user_appointments_fetch_failed", user_id=user_id, error=str(e))
            return []
        return [to_appointment(row) for row in result.fetchall()]

    async def get_by_id(self, appointment_id: int) -> AppointmentResponse | None:
        """Get an appointment by id; None if missing or the store is unavailable."""
        try:
            return await fetch_appointment(self.db, appointment_id)
        except SQLAlchemyError as e:
            logger.error("appointment_fetch_failed", appointment_id=appointment_id, error=str(e))
            return None

    async def get_for_user(self, appointment_id: int, user: dict) -> AppointmentResponse:
        """
        Get an appointment the user may see.

        Raises:
            NotFoundException: If appointment not found
            ForbiddenException: If user doesn't have access
        """
        appointment = await self.get_by_id(appointment_id)
        if appointment is None:
            raise NotFoundException("Appointment not found")
        ensure_can_modify(appointment, user)
        return appointment

