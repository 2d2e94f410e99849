"""Appointment booking endpoints."""

from fastapi import APIRouter, status

from app.dependencies import AppointmentServiceDep, CurrentUser
from app.schemas.appointments import (
    AppointmentBookRequest,
    AppointmentBookWithPaymentRequest,
    AppointmentResponse,
    BookingResponse,
    BookingWithPaymentResponse,
    ConfirmPaymentRequest,
    ConfirmPaymentResponse,
    RescheduleRequest,
    SuccessResponse,
)

router = APIRouter()


@router.post(
    "/book",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment without payment",
)
async def book_appointment(
    data: AppointmentBookRequest,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> BookingResponse:
    """
    Book an appointment for the authenticated user.

    The appointment is confirmed immediately and a confirmation email is sent.

    Args:
        data: Booking details
        current_user: Authenticated user
        service: Booking service

    Returns:
        Created appointment
    """
    return await service.book(data, current_user)


@router.post(
    "/book-with-payment",
    response_model=BookingWithPaymentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment and start its payment",
)
async def book_appointment_with_payment(
    data: AppointmentBookWithPaymentRequest,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> BookingWithPaymentResponse:
    """
    Book an appointment and initiate a card or M-Pesa payment.

    The appointment stays pending until the provider reports the outcome.
    If the payment cannot be started the appointment is cancelled.

    Args:
        data: Booking details with payment method and fee
        current_user: Authenticated user
        service: Booking service

    Returns:
        Appointment id and provider tracking token
    """
    return await service.book_with_payment(data, current_user)


@router.get(
    "/",
    response_model=list[AppointmentResponse],
    summary="List my appointments",
)
async def list_my_appointments(
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> list[AppointmentResponse]:
    """List the authenticated user's appointments, newest first."""
    return await service.get_user_appointments(current_user["id"])


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: int,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Get appointment details.

    Args:
        appointment_id: Appointment ID
        current_user: Authenticated user, must own the appointment or be an admin
        service: Booking service

    Returns:
        Appointment details
    """
    return await service.get_for_user(appointment_id, current_user)


@router.post(
    "/{appointment_id}/confirm-payment",
    response_model=ConfirmPaymentResponse,
    summary="Confirm payment for an appointment",
)
async def confirm_payment(
    appointment_id: int,
    data: ConfirmPaymentRequest,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> ConfirmPaymentResponse:
    """Mark an appointment paid and email the receipt."""
    return await service.confirm_payment(appointment_id, data.tracking_token, current_user)


@router.post(
    "/{appointment_id}/cancel",
    response_model=SuccessResponse,
    summary="Cancel appointment",
)
async def cancel_appointment(
    appointment_id: int,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> SuccessResponse:
    """Cancel one of the user's appointments."""
    await service.cancel(appointment_id, current_user)
    return SuccessResponse()


@router.post(
    "/{appointment_id}/reschedule",
    response_model=SuccessResponse,
    summary="Reschedule appointment",
)
async def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> SuccessResponse:
    """Move one of the user's appointments to a new date and time."""
    await service.reschedule(appointment_id, data.new_date, data.new_time, current_user)
    return SuccessResponse()
