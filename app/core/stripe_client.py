"""Stripe REST API client for payment intents."""

from functools import lru_cache
from typing import Any

import httpx
import structlog

from app.config import Settings, get_settings
from app.core.http_client import ProviderHttpClient
from app.schemas.payments import PaymentIntentResult

logger = structlog.get_logger(__name__)


class StripeClient(ProviderHttpClient):
    """Thin client over ``/payment_intents``. Amounts are in minor units (cents)."""

    NOT_CONFIGURED = "Stripe credentials not configured"

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None):
        """Initialize client from settings."""
        super().__init__(settings.stripe_api_url, settings.provider_timeout_seconds, http_client)
        self.settings = settings

    @property
    def configured(self) -> bool:
        """Whether a secret key is present."""
        return self.settings.stripe_configured

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.settings.stripe_secret_key}"}

    @staticmethod
    def _to_result(intent: dict[str, Any]) -> PaymentIntentResult:
        """Map a payment intent object onto a result."""
        method_types = intent.get("payment_method_types") or []

        receipt_url = None
        latest_charge = intent.get("latest_charge")
        if isinstance(latest_charge, dict):
            receipt_url = latest_charge.get("receipt_url")
        else:
            charges = (intent.get("charges") or {}).get("data") or []
            if charges:
                receipt_url = charges[0].get("receipt_url")

        return PaymentIntentResult(
            success=True,
            payment_intent_id=intent.get("id"),
            client_secret=intent.get("client_secret"),
            status=intent.get("status"),
            amount=intent.get("amount"),
            currency=intent.get("currency"),
            payment_method_type=method_types[0] if method_types else None,
            receipt_url=receipt_url,
            metadata=intent.get("metadata") or {},
        )

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        description: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntentResult:
        """
        Create a payment intent.

        Args:
            amount_minor: Amount in minor currency units
            currency: ISO currency code
            description: Description shown on the payment
            metadata: Key/value pairs stored on the intent

        Returns:
            Result with intent id and client secret on success
        """
        if not self.configured:
            logger.error("stripe_not_configured")
            return PaymentIntentResult(
                success=False, error=self.NOT_CONFIGURED, configuration_error=True
            )

        form = {
            "amount": str(amount_minor),
            "currency": currency.lower(),
            "description": description,
        }
        for key, value in (metadata or {}).items():
            form[f"metadata[{key}]"] = value

        try:
            response = await self._request(
                "POST", "/payment_intents", data=form, headers=self._headers()
            )
        except httpx.HTTPError as e:
            logger.error("stripe_create_intent_request_failed", error=str(e))
            return PaymentIntentResult(success=False, error="Failed to reach Stripe")

        if not response.is_success:
            logger.error(
                "stripe_create_intent_rejected",
                status_code=response.status_code,
                body=response.text,
            )
            return PaymentIntentResult(
                success=False, error=f"Stripe rejected the payment: {response.status_code}"
            )

        try:
            result = self._to_result(self._json_object(response))
        except ValueError as e:
            logger.error("stripe_create_intent_unreadable", error=str(e))
            return PaymentIntentResult(success=False, error="Unreadable response from Stripe")

        logger.info("stripe_payment_intent_created", payment_intent_id=result.payment_intent_id)
        return result

    async def retrieve_payment_intent(self, payment_intent_id: str) -> PaymentIntentResult:
        """
        Fetch the current state of a payment intent.

        Args:
            payment_intent_id: Stripe intent id

        Returns:
            Result carrying the intent status
        """
        if not self.configured:
            logger.error("stripe_not_configured")
            return PaymentIntentResult(
                success=False, error=self.NOT_CONFIGURED, configuration_error=True
            )

        try:
            response = await self._request(
                "GET",
                f"/payment_intents/{payment_intent_id}",
                params={"expand[]": "latest_charge"},
                headers=self._headers(),
            )
        except httpx.HTTPError as e:
            logger.error("stripe_retrieve_intent_request_failed", error=str(e))
            return PaymentIntentResult(success=False, error="Failed to reach Stripe")

        if not response.is_success:
            logger.error(
                "stripe_retrieve_intent_rejected",
                payment_intent_id=payment_intent_id,
                status_code=response.status_code,
            )
            return PaymentIntentResult(
                success=False, error=f"Failed to retrieve payment: {response.status_code}"
            )

        try:
            return self._to_result(self._json_object(response))
        except ValueError as e:
            logger.error(
                "stripe_retrieve_intent_unreadable",
                payment_intent_id=payment_intent_id,
                error=str(e),
            )
            return PaymentIntentResult(success=False, error="Unreadable response from Stripe")


@lru_cache
def get_stripe_client() -> StripeClient:
    """Process-wide Stripe client."""
    return StripeClient(get_settings())
