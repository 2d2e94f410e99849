"""Admin-specific schemas."""

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.appointments import AppointmentResponse, AppointmentStatus
from app.schemas.notifications import NotificationLogResponse
from app.schemas.payments import MpesaPaymentResponse, PaymentProvider, StripePaymentResponse


class AdminAppointmentListResponse(BaseModel):
    """Response schema for admin appointment listing."""

    appointments: list[AppointmentResponse]
    total: int
    page: int
    limit: int
    total_pages: int

    model_config = ConfigDict(from_attributes=True)


class AppointmentStatsResponse(BaseModel):
    """Appointment counts by status."""

    total: int = 0
    pending: int = 0
    confirmed: int = 0
    completed: int = 0
    cancelled: int = 0


class AdminPaymentListResponse(BaseModel):
    """Response schema for admin payment listing."""

    provider: PaymentProvider
    payments: list[StripePaymentResponse] | list[MpesaPaymentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class PaymentStatsResponse(BaseModel):
    """Payment totals across providers."""

    total_revenue: float = Field(
        ...,
        description="Sum of succeeded payments across providers, currencies not converted",
    )
    revenue_by_currency: dict[str, float] = Field(default_factory=dict)
    per_provider_counts: dict[str, int] = Field(default_factory=dict)
    pending_count: int = 0


class NotificationLogListResponse(BaseModel):
    """Response schema for notification logs."""

    logs: list[NotificationLogResponse]
    total: int
    page: int
    limit: int
    total_pages: int

    model_config = ConfigDict(from_attributes=True)


class NotificationStatsResponse(BaseModel):
    """Notification log counts by status."""

    total: int = 0
    sent: int = 0
    failed: int = 0
    bounced: int = 0


class DashboardOverviewResponse(BaseModel):
    """Everything the admin dashboard shows on its landing page."""

    appointments: AppointmentStatsResponse
    payments: PaymentStatsResponse
    notifications: NotificationStatsResponse


class AppointmentStatusUpdate(BaseModel):
    """Admin status override."""

    status: AppointmentStatus
