"""Mobile money service: STK push records, status polling and Daraja callbacks."""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import ForbiddenException, NotFoundException
from app.core.mpesa_client import SUCCESS_RESULT_CODE, MpesaClient, normalize_phone_number
from app.models.payments import mpesa_payments
from app.schemas.appointments import AppointmentResponse, PaymentMethod
from app.schemas.payments import (
    TERMINAL_PAYMENT_STATUSES,
    MpesaCallbackPayload,
    MpesaStkCallback,
    PaymentRecordStatus,
    StkPushResult,
    StkQueryResult,
)
from app.services.appointment_records import fetch_appointment, mark_paid, mark_payment_failed
from app.services.email_service import EmailService

logger = structlog.get_logger(__name__)

# Daraja result codes with a dedicated record status
RESULT_CODE_STATUSES = {
    "1032": PaymentRecordStatus.CANCELED,  # Request cancelled by user
    "1037": PaymentRecordStatus.TIMEOUT,  # DS timeout, user cannot be reached
}


def failure_status(result_code: str | None) -> PaymentRecordStatus:
    """Map a non-zero Daraja result code onto a terminal record status."""
    return RESULT_CODE_STATUSES.get(result_code or "", PaymentRecordStatus.FAILED)


class MpesaService:
    """Service for M-Pesa STK push payments."""

    def __init__(self, db: AsyncSession, client: MpesaClient, email_service: EmailService):
        """Initialize service with database session, M-Pesa client and email service."""
        self.db = db
        self.client = client
        self.email = email_service

    async def _get_record(self, checkout_request_id: str) -> Row | None:
        result = await self.db.execute(
            select(mpesa_payments).where(
                mpesa_payments.c.checkout_request_id == checkout_request_id
            )
        )
        return result.fetchone()

    async def initiate_payment(
        self,
        appointment: AppointmentResponse,
        phone_number: str,
        amount: Decimal,
    ) -> StkPushResult:
        """
        Send an STK push for an appointment and store a pending payment record.

        Args:
            appointment: Appointment being paid for
            phone_number: Customer number, already validated
            amount: Amount in KES

        Returns:
            Push result; failures are returned, not raised
        """
        result = await self.client.initiate_stk_push(
            phone_number,
            amount,
            account_reference=f"APT-{appointment.id}",
            transaction_desc=(
                f"Appointment with {appointment.doctor_name} - {appointment.department}"
            ),
        )
        if not result.success:
            return result

        try:
            await self.db.execute(
                insert(mpesa_payments).values(
                    appointment_id=appointment.id,
                    user_id=appointment.user_id,
                    amount=amount,
                    currency=settings.mpesa_currency,
                    phone_number=normalize_phone_number(phone_number),
                    checkout_request_id=result.checkout_request_id,
                    merchant_request_id=result.merchant_request_id,
                    status=PaymentRecordStatus.PENDING.value,
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "mpesa_payment_record_failed",
                appointment_id=appointment.id,
                checkout_request_id=result.checkout_request_id,
                error=str(e),
            )
            return StkPushResult(success=False, error="Failed to record payment")

        return result

    async def query_status(self, checkout_request_id: str, user: dict) -> StkQueryResult:
        """
        Poll Daraja for the outcome of a push and apply a definitive answer.

        Args:
            checkout_request_id: Id returned by the STK push
            user: Acting user; must own the appointment or be an admin

        Returns:
            Query result as reported by the provider

        Raises:
            NotFoundException: If no payment exists for the id
            ForbiddenException: If the user does not own the appointment
        """
        record = await self._get_record(checkout_request_id)
        if record is None:
            raise NotFoundException("Payment not found")
        if record.user_id != user["id"] and user.get("role") != "admin":
            raise ForbiddenException("Access denied to this payment")

        result = await self.client.query_status(checkout_request_id)
        if not result.success or record.status in TERMINAL_PAYMENT_STATUSES:
            return result

        if result.succeeded:
            await self._apply_success(record, result.result_code, result.result_desc)
        elif result.result_code is not None:
            await self._apply_failure(record, result.result_code, result.result_desc)

        return result

    async def handle_callback(self, payload: dict[str, Any]) -> None:
        """
        Process an asynchronous STK callback.

        Malformed payloads, unknown checkout ids and already settled payments
        are logged and ignored.
        """
        try:
            callback = MpesaCallbackPayload.model_validate(payload).body.stk_callback
        except ValidationError as e:
            logger.warning("mpesa_callback_malformed", error=str(e))
            return

        logger.info(
            "mpesa_callback_received",
            checkout_request_id=callback.checkout_request_id,
            result_code=callback.result_code,
        )

        record = await self._get_record(callback.checkout_request_id)
        if record is None:
            logger.error(
                "mpesa_payment_not_found", checkout_request_id=callback.checkout_request_id
            )
            return

        if record.status in TERMINAL_PAYMENT_STATUSES:
            logger.info(
                "mpesa_payment_already_settled",
                checkout_request_id=callback.checkout_request_id,
                status=record.status,
            )
            return

        result_code = str(callback.result_code)
        if result_code == SUCCESS_RESULT_CODE:
            await self._apply_success(record, result_code, callback.result_desc, callback)
        else:
            await self._apply_failure(record, result_code, callback.result_desc)

    async def _apply_success(
        self,
        record: Row,
        result_code: str | None,
        result_desc: str | None,
        callback: MpesaStkCallback | None = None,
    ) -> None:
        receipt_number = None
        transaction_date = None
        if callback is not None and callback.callback_metadata is not None:
            receipt_number = callback.callback_metadata.get("MpesaReceiptNumber")
            transaction_date = callback.callback_metadata.get("TransactionDate")

        try:
            await self.db.execute(
                update(mpesa_payments)
                .where(mpesa_payments.c.id == record.id)
                .values(
                    status=PaymentRecordStatus.SUCCEEDED.value,
                    result_code=result_code,
                    result_desc=result_desc,
                    mpesa_receipt_number=str(receipt_number) if receipt_number else None,
                    transaction_date=str(transaction_date) if transaction_date else None,
                    updated_at=datetime.now(UTC),
                )
            )

            appointment = None
            current = await fetch_appointment(self.db, record.appointment_id)
            if current is not None:
                appointment = await mark_paid(
                    self.db, current, PaymentMethod.MPESA, record.checkout_request_id
                )

            # Payment record and appointment change commit together
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "mpesa_success_persist_failed",
                checkout_request_id=record.checkout_request_id,
                error=str(e),
            )
            return

        logger.info("mpesa_payment_succeeded", checkout_request_id=record.checkout_request_id)

        if appointment is not None:
            await self.email.send_payment_receipt(
                appointment,
                amount=record.amount,
                currency=record.currency,
                payment_method="M-Pesa",
                transaction_id=str(receipt_number or record.checkout_request_id),
            )

    async def _apply_failure(
        self,
        record: Row,
        result_code: str,
        result_desc: str | None,
    ) -> None:
        status = failure_status(result_code)
        reason = result_desc or "Payment failed"

        try:
            await self.db.execute(
                update(mpesa_payments)
                .where(mpesa_payments.c.id == record.id)
                .values(
                    status=status.value,
                    result_code=result_code,
                    result_desc=result_desc,
                    failure_reason=reason,
                    updated_at=datetime.now(UTC),
                )
            )

            appointment = None
            current = await fetch_appointment(self.db, record.appointment_id)
            if current is not None:
                appointment = await mark_payment_failed(self.db, current)

            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "mpesa_failure_persist_failed",
                checkout_request_id=record.checkout_request_id,
                error=str(e),
            )
            return

        logger.info(
            "mpesa_payment_failed",
            checkout_request_id=record.checkout_request_id,
            result_code=result_code,
            status=status.value,
        )

        if appointment is not None:
            await self.email.send_payment_failed(
                appointment,
                amount=record.amount,
                currency=record.currency,
                reason=reason,
            )
