"""Newsletter subscription service."""

from datetime import UTC, datetime

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictException, NotFoundException, PersistenceException
from app.models.newsletter import newsletter_subscribers
from app.schemas.newsletter import SubscriptionStatus

logger = structlog.get_logger(__name__)


class NewsletterService:
    """Service for newsletter subscribers. Addresses are stored lower-cased."""

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def _get(self, email: str) -> Row | None:
        result = await self.db.execute(
            select(newsletter_subscribers).where(newsletter_subscribers.c.email == email)
        )
        return result.fetchone()

    async def subscribe(self, email: str) -> str:
        """
        Subscribe an address, re-activating it if it was unsubscribed.

        Args:
            email: Address to subscribe

        Returns:
            Normalized address

        Raises:
            ConflictException: If the address is already subscribed
            PersistenceException: If the store is unavailable
        """
        email = email.strip().lower()
        try:
            existing = await self._get(email)
            if existing is not None and existing.subscription_status == SubscriptionStatus.ACTIVE:
                raise ConflictException("Email is already subscribed")

            if existing is None:
                await self.db.execute(
                    insert(newsletter_subscribers).values(
                        email=email, subscription_status=SubscriptionStatus.ACTIVE.value
                    )
                )
            else:
                await self.db.execute(
                    update(newsletter_subscribers)
                    .where(newsletter_subscribers.c.id == existing.id)
                    .values(
                        subscription_status=SubscriptionStatus.ACTIVE.value,
                        subscribed_at=datetime.now(UTC),
                        unsubscribed_at=None,
                    )
                )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("newsletter_subscribe_failed", error=str(e))
            raise PersistenceException("Failed to subscribe") from e

        logger.info("newsletter_subscribed", resubscribed=existing is not None)
        return email

    async def unsubscribe(self, email: str) -> str:
        """
        Unsubscribe an active address.

        Raises:
            NotFoundException: If the address is not currently subscribed
            PersistenceException: If the store is unavailable
        """
        email = email.strip().lower()
        try:
            existing = await self._get(email)
            if existing is None or existing.subscription_status != SubscriptionStatus.ACTIVE:
                raise NotFoundException("Email is not subscribed")

            await self.db.execute(
                update(newsletter_subscribers)
                .where(newsletter_subscribers.c.id == existing.id)
                .values(
                    subscription_status=SubscriptionStatus.UNSUBSCRIBED.value,
                    unsubscribed_at=datetime.now(UTC),
                )
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("newsletter_unsubscribe_failed", error=str(e))
            raise PersistenceException("Failed to unsubscribe") from e

        logger.info("newsletter_unsubscribed")
        return email

    async def is_subscribed(self, email: str) -> bool:
        """Whether the address is active; False if the store is unavailable."""
        try:
            existing = await self._get(email.strip().lower())
        except SQLAlchemyError as e:
            logger.error("newsletter_status_failed", error=str(e))
            return False
        return existing is not None and existing.subscription_status == SubscriptionStatus.ACTIVE
