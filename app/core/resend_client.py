"""Resend transactional email client."""

from functools import lru_cache

import httpx
import structlog

from app.config import Settings, get_settings
from app.core.http_client import ProviderHttpClient
from app.schemas.notifications import EmailSendResult

logger = structlog.get_logger(__name__)


class ResendClient(ProviderHttpClient):
    """Sends a single HTML email through ``POST /emails``."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        """Initialize client from settings."""
        super().__init__(settings.resend_api_url, settings.provider_timeout_seconds, http_client)
        self.settings = settings

    async def send_email(
        self,
        to: str,
        subject: str,
        html: str,
        from_address: str | None = None,
    ) -> EmailSendResult:
        """
        Send an email.

        Args:
            to: Recipient address
            subject: Subject line
            html: Rendered HTML body
            from_address: Sender, defaults to the configured address

        Returns:
            Result with the provider message id on success
        """
        if not self.settings.resend_api_key:
            logger.warning("resend_not_configured")
            return EmailSendResult(success=False, error="Resend API key not configured")

        try:
            response = await self._request(
                "POST",
                "/emails",
                headers={"Authorization": f"Bearer {self.settings.resend_api_key}"},
                json={
                    "from": from_address or self.settings.email_from,
                    "to": to,
                    "subject": subject,
                    "html": html,
                },
            )
        except httpx.HTTPError as e:
            logger.error("resend_request_failed", error=str(e))
            return EmailSendResult(success=False, error=str(e) or "Failed to reach Resend")

        if not response.is_success:
            logger.error("resend_rejected", status_code=response.status_code, body=response.text)
            return EmailSendResult(
                success=False, error=f"Resend API error: {response.status_code}"
            )

        try:
            message_id = self._json_object(response).get("id")
        except ValueError as e:
            logger.warning("resend_response_unreadable", error=str(e))
            message_id = None

        logger.info("email_sent", message_id=message_id)
        return EmailSendResult(success=True, message_id=message_id)


@lru_cache
def get_resend_client() -> ResendClient:
    """Process-wide Resend client."""
    return ResendClient(get_settings())
