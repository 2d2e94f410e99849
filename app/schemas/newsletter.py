"""Newsletter schemas."""

from enum import Enum

from pydantic import BaseModel, EmailStr


class SubscriptionStatus(str, Enum):
    """Newsletter subscription status."""

    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"
    BOUNCED = "bounced"


class NewsletterRequest(BaseModel):
    """Subscribe or unsubscribe request."""

    email: EmailStr


class NewsletterResponse(BaseModel):
    """Subscription change acknowledgement."""

    success: bool = True
    message: str
    email: str


class NewsletterStatusResponse(BaseModel):
    """Whether an address currently receives the newsletter."""

    email: str
    is_subscribed: bool
