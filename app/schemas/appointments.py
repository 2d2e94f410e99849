"""Appointment schemas for request/response validation."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    """Appointment payment status enumeration."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class PaymentMethod(str, Enum):
    """How the consultation is paid for."""

    STRIPE = "stripe"
    MPESA = "mpesa"
    NONE = "none"


class AppointmentBase(BaseModel):
    """Booking details shared by every booking flow."""

    model_config = ConfigDict(str_strip_whitespace=True)

    doctor_name: str = Field(..., min_length=1, max_length=255)
    department: str = Field(..., min_length=1, max_length=255)
    appointment_date: str = Field(..., min_length=1, max_length=50)
    appointment_time: str = Field(..., min_length=1, max_length=20)
    patient_first_name: str = Field(..., min_length=1, max_length=255)
    patient_last_name: str = Field(..., min_length=1, max_length=255)
    patient_email: EmailStr
    patient_phone: str = Field(..., min_length=1, max_length=20)
    reason_for_visit: str | None = Field(None, max_length=2000)
    insurance_provider: str | None = Field(None, max_length=255)


class AppointmentBookRequest(AppointmentBase):
    """Schema for booking an appointment without payment."""

    consultation_fee: Decimal | None = Field(None, ge=0, max_digits=10, decimal_places=2)


class AppointmentBookWithPaymentRequest(AppointmentBase):
    """Schema for booking an appointment that must be paid for."""

    payment_method: PaymentMethod
    consultation_fee: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2)


class ConfirmPaymentRequest(BaseModel):
    """Schema for confirming a payment against an appointment."""

    tracking_token: str = Field(..., min_length=1, max_length=255)


class RescheduleRequest(BaseModel):
    """Schema for moving an appointment to a new slot."""

    model_config = ConfigDict(str_strip_whitespace=True)

    new_date: str = Field(..., min_length=1, max_length=50)
    new_time: str = Field(..., min_length=1, max_length=20)


class AppointmentResponse(BaseModel):
    """Appointment entity as stored."""

    id: int
    user_id: int
    doctor_name: str
    department: str
    appointment_date: str
    appointment_time: str
    patient_first_name: str
    patient_last_name: str
    patient_email: str
    patient_phone: str
    reason_for_visit: str | None = None
    insurance_provider: str | None = None
    status: AppointmentStatus
    consultation_fee: Decimal = Decimal("0")
    payment_status: PaymentStatus
    payment_method: PaymentMethod
    stripe_payment_intent_id: str | None = None
    mpesa_checkout_request_id: str | None = None
    email_sent: bool = False
    confirmation_email_sent: bool = False
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @property
    def patient_name(self) -> str:
        """Full patient name for notifications."""
        return f"{self.patient_first_name} {self.patient_last_name}"


class BookingResponse(BaseModel):
    """Result of a booking without payment."""

    appointment_id: int
    appointment: AppointmentResponse


class BookingWithPaymentResponse(BaseModel):
    """Result of a booking whose payment has been initiated."""

    appointment_id: int
    payment_method: PaymentMethod
    tracking_token: str
    client_secret: str | None = None
    message: str


class ConfirmPaymentResponse(BaseModel):
    """Result of a payment confirmation."""

    message: str
    appointment: AppointmentResponse


class SuccessResponse(BaseModel):
    """Plain success acknowledgement."""

    success: bool = True
