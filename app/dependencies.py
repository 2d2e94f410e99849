"""FastAPI dependencies."""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ForbiddenException, UnauthorizedException
from app.core.mpesa_client import MpesaClient, get_mpesa_client
from app.core.resend_client import ResendClient, get_resend_client
from app.core.security import user_id_from_token
from app.core.stripe_client import StripeClient, get_stripe_client
from app.database import get_db
from app.services.admin_service import AdminService, ensure_admin
from app.services.appointment_service import AppointmentService
from app.services.email_service import EmailService
from app.services.mpesa_service import MpesaService
from app.services.newsletter_service import NewsletterService
from app.services.stripe_service import StripeService
from app.services.user_service import UserService

# Security
security = HTTPBearer()


async def get_current_user_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> int:
    """
    Extract and validate user ID from JWT token.

    Raises:
        UnauthorizedException: If token is invalid, expired or has no usable subject
    """
    user_id = user_id_from_token(credentials.credentials)
    if user_id is None:
        raise UnauthorizedException()
    return user_id


async def get_current_user(
    user_id: Annotated[int, Depends(get_current_user_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> dict:
    """
    Get current user from database.

    Args:
        user_id: User ID from JWT token
        db: Database session

    Returns:
        User data from database

    Raises:
        UnauthorizedException: If user not found
        ForbiddenException: If the account is deactivated
    """
    user = await UserService.get_user_by_id(db, user_id)

    if not user:
        raise UnauthorizedException("User not found")

    if not user["is_active"]:
        raise ForbiddenException("User account is deactivated")

    return user


async def require_admin(current_user: Annotated[dict, Depends(get_current_user)]) -> dict:
    """
    Dependency to ensure current user has admin role.

    Raises:
        ForbiddenException: If user is not admin
    """
    return ensure_admin(current_user)


# Services


def get_email_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[ResendClient, Depends(get_resend_client)],
) -> EmailService:
    """Build the email service for a request."""
    return EmailService(db, client)


def get_stripe_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[StripeClient, Depends(get_stripe_client)],
    email_service: Annotated[EmailService, Depends(get_email_service)],
) -> StripeService:
    """Build the card payment service for a request."""
    return StripeService(db, client, email_service)


def get_mpesa_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    client: Annotated[MpesaClient, Depends(get_mpesa_client)],
    email_service: Annotated[EmailService, Depends(get_email_service)],
) -> MpesaService:
    """Build the mobile money service for a request."""
    return MpesaService(db, client, email_service)


def get_appointment_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    email_service: Annotated[EmailService, Depends(get_email_service)],
    stripe_service: Annotated[StripeService, Depends(get_stripe_service)],
    mpesa_service: Annotated[MpesaService, Depends(get_mpesa_service)],
) -> AppointmentService:
    """Build the booking service for a request."""
    return AppointmentService(db, email_service, stripe_service, mpesa_service)


def get_admin_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    email_service: Annotated[EmailService, Depends(get_email_service)],
) -> AdminService:
    """Build the admin service for a request."""
    return AdminService(db, email_service)


def get_newsletter_service(db: Annotated[AsyncSession, Depends(get_db)]) -> NewsletterService:
    """Build the newsletter service for a request."""
    return NewsletterService(db)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[int, Depends(get_current_user_id)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
AdminUser = Annotated[dict, Depends(require_admin)]
AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
StripeServiceDep = Annotated[StripeService, Depends(get_stripe_service)]
MpesaServiceDep = Annotated[MpesaService, Depends(get_mpesa_service)]
AdminServiceDep = Annotated[AdminService, Depends(get_admin_service)]
NewsletterServiceDep = Annotated[NewsletterService, Depends(get_newsletter_service)]
