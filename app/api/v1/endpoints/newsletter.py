"""Newsletter subscription endpoints."""

from fastapi import APIRouter, Query
from pydantic import EmailStr

from app.dependencies import NewsletterServiceDep
from app.schemas.newsletter import NewsletterRequest, NewsletterResponse, NewsletterStatusResponse

router = APIRouter(prefix="/newsletter", tags=["Newsletter"])


@router.post("/subscribe", response_model=NewsletterResponse, summary="Subscribe to newsletter")
async def subscribe(data: NewsletterRequest, service: NewsletterServiceDep) -> NewsletterResponse:
    """Subscribe an address, or re-activate one that unsubscribed earlier."""
    email = await service.subscribe(data.email)
    return NewsletterResponse(message="Successfully subscribed to newsletter", email=email)


@router.post(
    "/unsubscribe", response_model=NewsletterResponse, summary="Unsubscribe from newsletter"
)
async def unsubscribe(
    data: NewsletterRequest,
    service: NewsletterServiceDep,
) -> NewsletterResponse:
    """Stop sending the newsletter to an address."""
    email = await service.unsubscribe(data.email)
    return NewsletterResponse(message="Successfully unsubscribed from newsletter", email=email)


@router.get("/status", response_model=NewsletterStatusResponse, summary="Subscription status")
async def subscription_status(
    service: NewsletterServiceDep,
    email: EmailStr = Query(...),
) -> NewsletterStatusResponse:
    """Whether an address currently receives the newsletter."""
    return NewsletterStatusResponse(
        email=email.lower(), is_subscribed=await service.is_subscribed(email)
    )
