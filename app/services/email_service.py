"""Email notification service: renders templates, sends via Resend and logs every attempt."""

from datetime import UTC, datetime
from decimal import Decimal
from html import escape

import structlog
from sqlalchemy import insert, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.resend_client import ResendClient
from app.models.appointments import appointments
from app.models.notification_logs import notification_logs
from app.schemas.appointments import AppointmentResponse, PaymentMethod
from app.schemas.notifications import EmailSendResult, NotificationCategory, NotificationStatus

logger = structlog.get_logger(__name__)


def _layout(title: str, greeting_name: str, intro: str, details: str, footer_note: str) -> str:
    """Wrap a message body in the clinic's email layout."""
    clinic = escape(settings.clinic_name)
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: #0D9488; padding: 30px; text-align: center; color: white;">
        <h1 style="margin: 0; font-size: 28px;">{title}</h1>
        <p style="margin: 10px 0 0 0; font-size: 16px;">{clinic}</p>
      </div>
      <div style="background: #f9fafb; padding: 30px;">
        <p style="font-size: 16px;">Hi <strong>{escape(greeting_name)}</strong>,</p>
        <p style="font-size: 14px; color: #666;">{intro}</p>
        <div style="background: white; border-left: 4px solid #0D9488; padding: 15px;">
          {details}
        </div>
        <p style="font-size: 14px; color: #666;">{footer_note}</p>
        <p style="font-size: 12px; color: #999; border-top: 1px solid #e5e7eb; padding-top: 20px;">
          {clinic} | <a href="{escape(settings.portal_url)}">Patient portal</a><br>
          This is an automated message. Please do not reply to this email.
        </p>
      </div>
    </div>
    """


def _rows(**fields: str) -> str:
    return "".join(
        f'<p style="margin: 8px 0;"><strong>{label.replace("_", " ").title()}:</strong> '
        f"{escape(value)}</p>"
        for label, value in fields.items()
    )


def _slot(appointment: AppointmentResponse) -> str:
    return f"{appointment.appointment_date} at {appointment.appointment_time}"


def _money(amount: Decimal | float, currency: str) -> str:
    return f"{currency.upper()} {Decimal(str(amount)):.2f}"


def currency_for(payment_method: PaymentMethod) -> str:
    """Currency a fee is charged in for the given payment method."""
    if payment_method == PaymentMethod.STRIPE:
        return settings.stripe_currency.upper()
    return settings.mpesa_currency.upper()


class EmailService:
    """Best-effort transactional email.

    ``send`` never raises and writes exactly one notification log row per call.
    Callers must commit their own changes before sending.
    """

    def __init__(self, db: AsyncSession, client: ResendClient):
        """Initialize service with database session and email provider client."""
        self.db = db
        self.client = client

    async def send(
        self,
        category: NotificationCategory,
        recipient: str,
        subject: str,
        html: str,
        appointment_id: int | None = None,
        user_id: int | None = None,
    ) -> EmailSendResult:
        """
        Send one email and record the attempt.

        Args:
            category: Notification category
            recipient: Recipient address
            subject: Subject line
            html: Rendered body
            appointment_id: Related appointment, if any
            user_id: Related user, if any

        Returns:
            Send result; failures are reported, not raised
        """
        try:
            result = await self.client.send_email(to=recipient, subject=subject, html=html)
        except Exception as e:
            logger.error("email_send_crashed", category=category.value, error=str(e))
            result = EmailSendResult(success=False, error="Unexpected email provider error")

        await self._log(category, recipient, subject, result, appointment_id, user_id)
        return result

    async def _log(
        self,
        category: NotificationCategory,
        recipient: str,
        subject: str,
        result: EmailSendResult,
        appointment_id: int | None,
        user_id: int | None,
    ) -> None:
        status = NotificationStatus.SENT if result.success else NotificationStatus.FAILED
        try:
            await self.db.execute(
                insert(notification_logs).values(
                    appointment_id=appointment_id,
                    user_id=user_id,
                    recipient_email=recipient,
                    category=category.value,
                    subject=subject[:255],
                    status=status.value,
                    provider_message_id=result.message_id,
                    error_message=result.error,
                    sent_at=datetime.now(UTC),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("notification_log_write_failed", category=category.value, error=str(e))

    async def _mark_appointment(self, appointment_id: int, **flags: bool) -> None:
        try:
            await self.db.execute(
                update(appointments).where(appointments.c.id == appointment_id).values(**flags)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "notification_flag_update_failed", appointment_id=appointment_id, error=str(e)
            )

    async def send_appointment_confirmation(
        self, appointment: AppointmentResponse
    ) -> EmailSendResult:
        """Send the booking confirmation for an appointment."""
        details = _rows(
            doctor=appointment.doctor_name,
            department=appointment.department,
            date=appointment.appointment_date,
            time=appointment.appointment_time,
        )
        if appointment.consultation_fee:
            details += _rows(
                consultation_fee=_money(
                    appointment.consultation_fee, currency_for(appointment.payment_method)
                )
            )

        html = _layout(
            "Appointment Confirmed",
            appointment.patient_name,
            "Your appointment has been successfully confirmed. Here are the details:",
            details,
            "Please arrive 10 minutes early. If you need to reschedule or cancel, "
            "contact us at least 24 hours in advance.",
        )
        result = await self.send(
            NotificationCategory.CONFIRMATION,
            appointment.patient_email,
            f"Appointment Confirmed - {_slot(appointment)}",
            html,
            appointment_id=appointment.id,
            user_id=appointment.user_id,
        )
        if result.success:
            await self._mark_appointment(appointment.id, confirmation_email_sent=True)
        return result

    async def send_payment_receipt(
        self,
        appointment: AppointmentResponse,
        amount: Decimal | float,
        currency: str,
        payment_method: str,
        transaction_id: str,
    ) -> EmailSendResult:
        """Send a payment receipt for an appointment."""
        html = _layout(
            "Payment Receipt",
            appointment.patient_name,
            "Thank you for your payment. Here is your receipt:",
            _rows(
                amount_paid=_money(amount, currency),
                payment_method=payment_method,
                transaction_id=transaction_id,
                doctor=appointment.doctor_name,
                appointment_date=appointment.appointment_date,
            ),
            "Your payment has been successfully processed.",
        )
        result = await self.send(
            NotificationCategory.RECEIPT,
            appointment.patient_email,
            f"Payment Receipt - Transaction {transaction_id}",
            html,
            appointment_id=appointment.id,
            user_id=appointment.user_id,
        )
        if result.success:
            await self._mark_appointment(appointment.id, email_sent=True)
        return result

    async def send_payment_failed(
        self,
        appointment: AppointmentResponse,
        amount: Decimal | float,
        currency: str,
        reason: str,
    ) -> EmailSendResult:
        """Tell the patient their payment did not go through."""
        html = _layout(
            "Payment Failed",
            appointment.patient_name,
            "We could not process your payment for the appointment below.",
            _rows(
                amount=_money(amount, currency),
                reason=reason,
                doctor=appointment.doctor_name,
                appointment_date=appointment.appointment_date,
            ),
            "Your appointment is still on record. "
            "You can retry the payment from the patient portal.",
        )
        return await self.send(
            NotificationCategory.PAYMENT_FAILED,
            appointment.patient_email,
            f"Payment Failed - Appointment on {appointment.appointment_date}",
            html,
            appointment_id=appointment.id,
            user_id=appointment.user_id,
        )

    async def send_appointment_reminder(self, appointment: AppointmentResponse) -> EmailSendResult:
        """Remind the patient of an upcoming appointment."""
        html = _layout(
            "Appointment Reminder",
            appointment.patient_name,
            "This is a friendly reminder about your upcoming appointment:",
            _rows(
                doctor=appointment.doctor_name,
                date=appointment.appointment_date,
                time=appointment.appointment_time,
            ),
            "Please arrive 10 minutes early and bring your ID and any relevant medical documents.",
        )
        return await self.send(
            NotificationCategory.REMINDER,
            appointment.patient_email,
            f"Reminder: Your appointment with {appointment.doctor_name} "
            f"on {appointment.appointment_date}",
            html,
            appointment_id=appointment.id,
            user_id=appointment.user_id,
        )

    async def send_cancellation(self, appointment: AppointmentResponse) -> EmailSendResult:
        """Confirm to the patient that an appointment was cancelled."""
        html = _layout(
            "Appointment Cancelled",
            appointment.patient_name,
            "The following appointment has been cancelled:",
            _rows(
                doctor=appointment.doctor_name,
                department=appointment.department,
                date=appointment.appointment_date,
                time=appointment.appointment_time,
            ),
            "If this was a mistake, please book a new appointment from the patient portal.",
        )
        return await self.send(
            NotificationCategory.CANCELLATION,
            appointment.patient_email,
            f"Appointment Cancelled - {_slot(appointment)}",
            html,
            appointment_id=appointment.id,
            user_id=appointment.user_id,
        )
