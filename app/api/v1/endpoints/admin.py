"""Admin-only endpoints for the operations dashboard."""

from fastapi import APIRouter, Query

from app.dependencies import AdminServiceDep, AdminUser
from app.schemas.admin import (
    AdminAppointmentListResponse,
    AdminPaymentListResponse,
    AppointmentStatsResponse,
    AppointmentStatusUpdate,
    DashboardOverviewResponse,
    NotificationLogListResponse,
    NotificationStatsResponse,
    PaymentStatsResponse,
)
from app.schemas.appointments import AppointmentResponse, AppointmentStatus, PaymentStatus
from app.schemas.notifications import EmailSendResult, NotificationCategory, NotificationStatus
from app.schemas.payments import PaymentProvider, PaymentRecordStatus

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get(
    "/overview",
    response_model=DashboardOverviewResponse,
    summary="Dashboard overview (admin only)",
)
async def get_overview(
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> DashboardOverviewResponse:
    """Appointment, payment and notification statistics for the dashboard landing page."""
    return await service.overview()


@router.get(
    "/appointments",
    response_model=AdminAppointmentListResponse,
    summary="List all appointments (admin only)",
)
async def list_all_appointments(
    admin_user: AdminUser,
    service: AdminServiceDep,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    payment_status: PaymentStatus | None = Query(None),
    department: str | None = Query(None, description="Filter by department"),
) -> AdminAppointmentListResponse:
    """
    Get paginated list of all appointments, newest first.

    Requires admin role.

    Args:
        admin_user: Authenticated admin user
        service: Admin service
        page: Page number
        limit: Items per page
        status_filter: Filter by appointment status
        payment_status: Filter by payment status
        department: Filter by department

    Returns:
        Paginated appointment list with metadata
    """
    return await service.list_appointments(
        page=page,
        limit=limit,
        status=status_filter,
        payment_status=payment_status,
        department=department,
    )


@router.get(
    "/appointments/stats",
    response_model=AppointmentStatsResponse,
    summary="Appointment counts by status (admin only)",
)
async def get_appointment_stats(
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> AppointmentStatsResponse:
    """Count appointments by status."""
    return await service.appointment_stats()


@router.get(
    "/appointments/search",
    response_model=list[AppointmentResponse],
    summary="Search appointments (admin only)",
)
async def search_appointments(
    admin_user: AdminUser,
    service: AdminServiceDep,
    q: str = Query(..., min_length=1, description="Patient name, email or phone"),
) -> list[AppointmentResponse]:
    """Find up to 20 appointments by patient name, email or phone."""
    return await service.search_appointments(q)


@router.patch(
    "/appointments/{appointment_id}/status",
    response_model=AppointmentResponse,
    summary="Override appointment status (admin only)",
)
async def update_appointment_status(
    appointment_id: int,
    data: AppointmentStatusUpdate,
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> AppointmentResponse:
    """Set any status on any appointment. No transition rules are enforced."""
    return await service.update_appointment_status(appointment_id, data.status)


@router.post(
    "/appointments/{appointment_id}/cancel",
    response_model=AppointmentResponse,
    summary="Cancel any appointment (admin only)",
)
async def cancel_appointment(
    appointment_id: int,
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> AppointmentResponse:
    """Cancel an appointment and email the patient."""
    return await service.cancel_appointment(appointment_id)


@router.post(
    "/appointments/{appointment_id}/reminder",
    response_model=EmailSendResult,
    summary="Send appointment reminder (admin only)",
)
async def send_reminder(
    appointment_id: int,
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> EmailSendResult:
    """Email the patient a reminder; the delivery result is returned as is."""
    return await service.send_reminder(appointment_id)


@router.get(
    "/payments",
    response_model=AdminPaymentListResponse,
    summary="List payment records (admin only)",
)
async def list_payments(
    admin_user: AdminUser,
    service: AdminServiceDep,
    provider: PaymentProvider = Query(PaymentProvider.STRIPE),
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    status_filter: PaymentRecordStatus | None = Query(None, alias="status"),
) -> AdminPaymentListResponse:
    """
    Get paginated payment records for one provider, newest first.

    Args:
        admin_user: Authenticated admin user
        service: Admin service
        provider: stripe or mpesa
        page: Page number
        limit: Items per page
        status_filter: Filter by record status

    Returns:
        Paginated payment list with metadata
    """
    return await service.list_payments(provider, page=page, limit=limit, status=status_filter)


@router.get(
    "/payments/stats",
    response_model=PaymentStatsResponse,
    summary="Payment statistics (admin only)",
)
async def get_payment_stats(
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> PaymentStatsResponse:
    """Revenue and counts across both providers."""
    return await service.payment_stats()


@router.get(
    "/notifications",
    response_model=NotificationLogListResponse,
    summary="List notification logs (admin only)",
)
async def list_notification_logs(
    admin_user: AdminUser,
    service: AdminServiceDep,
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    category: NotificationCategory | None = Query(None),
    status_filter: NotificationStatus | None = Query(None, alias="status"),
    appointment_id: int | None = Query(None),
) -> NotificationLogListResponse:
    """Get paginated notification log entries, newest first."""
    return await service.list_notification_logs(
        page=page,
        limit=limit,
        category=category,
        status=status_filter,
        appointment_id=appointment_id,
    )


@router.get(
    "/notifications/stats",
    response_model=NotificationStatsResponse,
    summary="Notification statistics (admin only)",
)
async def get_notification_stats(
    admin_user: AdminUser,
    service: AdminServiceDep,
) -> NotificationStatsResponse:
    """Count notification log entries by delivery status."""
    return await service.notification_stats()
