"""Payment endpoints: card intents, M-Pesa status polling and provider callbacks."""

import structlog
from fastapi import APIRouter, Request, status

from app.dependencies import (
    AppointmentServiceDep,
    CurrentUser,
    MpesaServiceDep,
    StripeServiceDep,
)
from app.schemas.payments import (
    CardConfirmResponse,
    MpesaCallbackAck,
    MpesaStatusResponse,
    PaymentIntentCreate,
    PaymentIntentResponse,
    WebhookAck,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/stripe/intents",
    response_model=PaymentIntentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a card payment intent",
)
async def create_payment_intent(
    data: PaymentIntentCreate,
    current_user: CurrentUser,
    service: AppointmentServiceDep,
) -> PaymentIntentResponse:
    """
    Start a card payment for one of the user's appointments.

    Args:
        data: Appointment to pay for
        current_user: Authenticated user
        service: Booking service

    Returns:
        Intent id and client secret for the payment form
    """
    return await service.create_card_payment(data.appointment_id, current_user)


@router.post(
    "/stripe/intents/{payment_intent_id}/confirm",
    response_model=CardConfirmResponse,
    summary="Confirm a card payment",
)
async def confirm_card_payment(
    payment_intent_id: str,
    current_user: CurrentUser,
    service: StripeServiceDep,
) -> CardConfirmResponse:
    """
    Re-check a card payment with Stripe.

    Only the owner of the payment or an admin may confirm it. ``confirmed``
    is False while the payment has not succeeded yet; poll again.
    """
    await service.ensure_can_confirm(payment_intent_id, current_user)
    confirmed = await service.confirm_payment(payment_intent_id)
    return CardConfirmResponse(payment_intent_id=payment_intent_id, confirmed=confirmed)


@router.post(
    "/stripe/webhook",
    response_model=WebhookAck,
    summary="Stripe webhook",
)
async def stripe_webhook(request: Request, service: StripeServiceDep) -> WebhookAck:
    """Receive Stripe events. Always acknowledged so Stripe does not retry."""
    try:
        payload = await request.json()
        await service.handle_webhook(payload)
    except Exception as e:
        logger.error("stripe_webhook_processing_failed", error=str(e))
    return WebhookAck()


@router.get(
    "/mpesa/{checkout_request_id}/status",
    response_model=MpesaStatusResponse,
    summary="Query an M-Pesa payment",
)
async def query_mpesa_status(
    checkout_request_id: str,
    current_user: CurrentUser,
    service: MpesaServiceDep,
) -> MpesaStatusResponse:
    """
    Ask M-Pesa for the outcome of an STK push.

    A definitive answer is applied to the payment and appointment the same
    way a callback would be.
    """
    result = await service.query_status(checkout_request_id, current_user)
    return MpesaStatusResponse(
        checkout_request_id=checkout_request_id,
        succeeded=result.succeeded,
        result_code=result.result_code,
        result_desc=result.result_desc or result.error,
    )


@router.post(
    "/mpesa/callback",
    response_model=MpesaCallbackAck,
    summary="M-Pesa STK callback",
)
async def mpesa_callback(request: Request, service: MpesaServiceDep) -> MpesaCallbackAck:
    """Receive Daraja STK results. Always acknowledged so Daraja does not retry."""
    try:
        payload = await request.json()
        await service.handle_callback(payload)
    except Exception as e:
        logger.error("mpesa_callback_processing_failed", error=str(e))
    return MpesaCallbackAck()
