"""Card payment service: payment intent records, confirmation and webhooks."""

from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenException, NotFoundException
from app.core.stripe_client import StripeClient
from app.models.payments import stripe_payments
from app.schemas.appointments import PaymentMethod
from app.schemas.payments import (
    TERMINAL_PAYMENT_STATUSES,
    PaymentIntentResult,
    PaymentRecordStatus,
    StripeEvent,
    StripeEventObject,
)
from app.services.appointment_records import fetch_appointment, mark_paid, mark_payment_failed
from app.services.email_service import EmailService

logger = structlog.get_logger(__name__)

CENTS = Decimal("100")


def to_minor_units(amount: Decimal | float | int) -> int:
    """Convert a major-unit amount (dollars) to minor units (cents)."""
    return int((Decimal(str(amount)) * CENTS).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_major_units(amount_minor: int) -> Decimal:
    """Convert minor units (cents) back to a two-decimal major-unit amount."""
    return (Decimal(amount_minor) / CENTS).quantize(Decimal("0.01"))


class StripeService:
    """Service for card payments through Stripe."""

    def __init__(self, db: AsyncSession, client: StripeClient, email_service: EmailService):
        """Initialize service with database session, Stripe client and email service."""
        self.db = db
        self.client = client
        self.email = email_service

    async def _get_record(self, payment_intent_id: str) -> Row | None:
        result = await self.db.execute(
            select(stripe_payments).where(
                stripe_payments.c.stripe_payment_intent_id == payment_intent_id
            )
        )
        return result.fetchone()

    async def create_payment_intent(
        self,
        appointment_id: int,
        user_id: int,
        amount_minor: int,
        description: str,
        currency: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create a payment intent and store a pending payment record.

        Args:
            appointment_id: Appointment being paid for
            user_id: Owner of the appointment
            amount_minor: Amount in minor currency units
            description: Description shown on the payment
            currency: ISO currency code, defaults to the configured one

        Returns:
            Result with intent id and client secret; failures are returned, not raised
        """
        currency = (currency or settings.stripe_currency).lower()

        result = await self.client.create_payment_intent(
            amount_minor=amount_minor,
            currency=currency,
            description=description,
            metadata={"appointment_id": str(appointment_id), "user_id": str(user_id)},
        )
        if not result.success:
            return result

        try:
            await self.db.execute(
                insert(stripe_payments).values(
                    appointment_id=appointment_id,
                    user_id=user_id,
                    amount=to_major_units(amount_minor),
                    currency=currency.upper(),
                    stripe_payment_intent_id=result.payment_intent_id,
                    status=PaymentRecordStatus.PENDING.value,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "stripe_payment_record_failed",
                appointment_id=appointment_id,
                payment_intent_id=result.payment_intent_id,
                error=str(e),
            )
            return PaymentIntentResult(success=False, error="Failed to record payment")

        return result

    async def ensure_can_confirm(self, payment_intent_id: str, user: dict) -> None:
        """
        Check that a user may settle a card payment.

        Raises:
            NotFoundException: If no payment exists for the intent
            ForbiddenException: If the user neither owns the payment nor is an admin
        """
        record = await self._get_record(payment_intent_id)
        if record is None:
            raise NotFoundException("Payment not found")
        if record.user_id != user["id"] and user.get("role") != "admin":
            raise ForbiddenException("Access denied to this payment")

    async def confirm_payment(self, payment_intent_id: str) -> bool:
        """
        Re-check an intent with Stripe and settle it if it succeeded.

        Args:
            payment_intent_id: Stripe intent id

        Returns:
            True once the payment has succeeded; False means poll again
        """
        intent = await self.client.retrieve_payment_intent(payment_intent_id)
        if not intent.success:
            return False

        if intent.status != "succeeded":
            logger.info(
                "stripe_payment_not_succeeded",
                payment_intent_id=payment_intent_id,
                status=intent.status,
            )
            return False

        try:
            record = await self._get_record(payment_intent_id)
            if record is not None and record.status in TERMINAL_PAYMENT_STATUSES:
                logger.info(
                    "stripe_payment_already_settled",
                    payment_intent_id=payment_intent_id,
                    status=record.status,
                )
                return record.status == PaymentRecordStatus.SUCCEEDED.value

            appointment_id = self._appointment_id(record, intent.metadata)
            if record is not None:
                await self.db.execute(
                    update(stripe_payments)
                    .where(stripe_payments.c.id == record.id)
                    .values(
                        status=PaymentRecordStatus.SUCCEEDED.value,
                        payment_method=intent.payment_method_type or "card",
                        receipt_url=intent.receipt_url,
                        updated_at=datetime.now(UTC),
                    )
                )

            appointment = None
            if appointment_id is not None:
                current = await fetch_appointment(self.db, appointment_id)
                if current is not None:
                    appointment = await mark_paid(
                        self.db, current, PaymentMethod.STRIPE, payment_intent_id
                    )

            # Payment record and appointment change commit together
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "stripe_confirm_persist_failed", payment_intent_id=payment_intent_id, error=str(e)
            )
            return False

        logger.info("stripe_payment_confirmed", payment_intent_id=payment_intent_id)

        if appointment is not None:
            amount = record.amount if record is not None else appointment.consultation_fee
            currency = record.currency if record is not None else settings.stripe_currency
            await self.email.send_payment_receipt(
                appointment,
                amount=amount,
                currency=currency,
                payment_method="Card",
                transaction_id=payment_intent_id,
            )

        return True

    async def handle_webhook(self, payload: dict[str, Any]) -> None:
        """
        Process a Stripe webhook event.

        Malformed payloads and unknown event types are logged and ignored.
        """
        try:
            event = StripeEvent.model_validate(payload)
        except ValidationError as e:
            logger.warning("stripe_webhook_malformed", error=str(e))
            return

        intent = event.data.object
        logger.info("stripe_webhook_received", event_type=event.type, payment_intent_id=intent.id)

        if event.type == "payment_intent.succeeded":
            await self.confirm_payment(intent.id)
        elif event.type == "payment_intent.payment_failed":
            await self._handle_failure(intent, PaymentRecordStatus.FAILED)
        elif event.type == "payment_intent.canceled":
            await self._handle_failure(intent, PaymentRecordStatus.CANCELED)
        else:
            logger.info("stripe_webhook_ignored", event_type=event.type)

    async def _handle_failure(
        self,
        intent: StripeEventObject,
        record_status: PaymentRecordStatus,
    ) -> None:
        """Mark the payment and its appointment failed, then tell the patient."""
        reason = (intent.last_payment_error or {}).get("message") or "Payment declined"

        try:
            record = await self._get_record(intent.id)
            if record is not None and record.status in TERMINAL_PAYMENT_STATUSES:
                logger.info("stripe_payment_already_settled", payment_intent_id=intent.id)
                return

            if record is not None:
                await self.db.execute(
                    update(stripe_payments)
                    .where(stripe_payments.c.id == record.id)
                    .values(
                        status=record_status.value,
                        failure_reason=reason,
                        updated_at=datetime.now(UTC),
                    )
                )

            appointment = None
            appointment_id = self._appointment_id(record, intent.metadata)
            if appointment_id is not None:
                current = await fetch_appointment(self.db, appointment_id)
                if current is not None:
                    appointment = await mark_payment_failed(self.db, current)

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("stripe_failure_persist_failed", payment_intent_id=intent.id, error=str(e))
            return

        logger.info("stripe_payment_failed", payment_intent_id=intent.id, reason=reason)

        if appointment is not None:
            await self.email.send_payment_failed(
                appointment,
                amount=record.amount if record is not None else appointment.consultation_fee,
                currency=record.currency if record is not None else settings.stripe_currency,
                reason=reason,
            )

    @staticmethod
    def _appointment_id(record: Row | None, metadata: dict[str, str]) -> int | None:
        """Resolve the linked appointment from the stored record or intent metadata."""
        if record is not None:
            return record.appointment_id
        raw = metadata.get("appointment_id")
        if raw and raw.isdigit():
            return int(raw)
        return None
