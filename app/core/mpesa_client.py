"""M-Pesa Daraja API client: OAuth token cache, STK push and STK push query."""

import base64
import math
import re
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from functools import lru_cache

import httpx
import structlog

from app.config import Settings, get_settings
from app.core.exceptions import ValidationException
from app.core.http_client import ProviderHttpClient
from app.schemas.payments import StkPushResult, StkQueryResult

logger = structlog.get_logger(__name__)

# Accepts 0XXXXXXXXX, +254XXXXXXXXX and 254XXXXXXXXX
PHONE_PATTERN = re.compile(r"^(?:254|\+254|0)(\d{9})$")
PHONE_SEPARATORS = re.compile(r"[\s\-()]")

# Daraja timestamps are East Africa Time
EAT = timezone(timedelta(hours=3))

SUCCESS_RESULT_CODE = "0"


def is_valid_phone_number(phone_number: str) -> bool:
    """Check whether a phone number can be normalized to 254XXXXXXXXX."""
    cleaned = PHONE_SEPARATORS.sub("", phone_number or "")
    return PHONE_PATTERN.match(cleaned) is not None


def normalize_phone_number(phone_number: str) -> str:
    """
    Normalize a Kenyan mobile number to the canonical 254XXXXXXXXX format.

    Args:
        phone_number: Number in local (07...), +254 or 254 format

    Returns:
        Canonical 12-digit number

    Raises:
        ValidationException: If the number cannot be normalized
    """
    cleaned = PHONE_SEPARATORS.sub("", phone_number or "")
    match = PHONE_PATTERN.match(cleaned)
    if match is None:
        raise ValidationException(
            "Invalid phone number format. Use format: 0712345678, +254712345678, or 254712345678"
        )
    return f"254{match.group(1)}"


def whole_units(amount: Decimal | float | int) -> int:
    """Round an amount up to whole currency units; M-Pesa rejects fractions."""
    return math.ceil(Decimal(str(amount)))


class AccessTokenCache:
    """Holds one OAuth bearer token until shortly before it expires."""

    def __init__(self, margin_seconds: float, clock: Callable[[], float] = time.monotonic):
        """Initialize an empty cache with a refresh safety margin."""
        self.margin_seconds = margin_seconds
        self._clock = clock
        self._token: str | None = None
        self._expires_at: float = 0.0

    def get(self) -> str | None:
        """Return the cached token unless it is missing or inside the refresh margin."""
        if self._token is None:
            return None
        if self._clock() + self.margin_seconds >= self._expires_at:
            return None
        return self._token

    def store(self, token: str, expires_in: float) -> None:
        """Cache a freshly issued token."""
        self._token = token
        self._expires_at = self._clock() + expires_in

    def clear(self) -> None:
        """Forget the cached token."""
        self._token = None
        self._expires_at = 0.0


class MpesaAuthError(Exception):
    """Raised internally when the OAuth token cannot be obtained."""


class MpesaClient(ProviderHttpClient):
    """Client for the Safaricom Daraja STK push API."""

    NOT_CONFIGURED = "M-Pesa credentials not configured"

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize client from settings."""
        super().__init__(settings.mpesa_api_url, settings.provider_timeout_seconds, http_client)
        self.settings = settings
        self.token_cache = AccessTokenCache(settings.mpesa_token_expiry_margin_seconds, clock)

    @property
    def configured(self) -> bool:
        """Whether all credentials needed to talk to Daraja are present."""
        return self.settings.mpesa_configured

    async def get_access_token(self) -> str:
        """
        Get an OAuth bearer token, reusing the cached one while it is valid.

        Raises:
            MpesaAuthError: If the token endpoint fails
        """
        cached = self.token_cache.get()
        if cached:
            return cached

        credentials = f"{self.settings.mpesa_consumer_key}:{self.settings.mpesa_consumer_secret}"
        auth = base64.b64encode(credentials.encode()).decode()

        try:
            response = await self._request(
                "GET",
                "/oauth/v1/generate",
                params={"grant_type": "client_credentials"},
                headers={"Authorization": f"Basic {auth}"},
            )
        except httpx.HTTPError as e:
            raise MpesaAuthError(f"OAuth request failed: {e}") from e

        if response.status_code != 200:
            raise MpesaAuthError(f"OAuth failed: {response.status_code}")

        try:
            data = self._json_object(response)
            token = data.get("access_token")
            expires_in = float(data.get("expires_in") or 3599)
        except ValueError as e:
            raise MpesaAuthError(f"Unreadable OAuth response: {e}") from e
        if not token:
            raise MpesaAuthError("OAuth response missing access_token")

        self.token_cache.store(token, expires_in)
        logger.info("mpesa_access_token_refreshed")
        return token

    def _password(self, timestamp: str) -> str:
        """Build the STK password: base64(shortcode + passkey + timestamp)."""
        raw = f"{self.settings.mpesa_business_shortcode}{self.settings.mpesa_passkey}{timestamp}"
        return base64.b64encode(raw.encode()).decode()

    @staticmethod
    def _timestamp() -> str:
        """Current time in the YYYYMMDDHHmmss format Daraja expects."""
        return datetime.now(EAT).strftime("%Y%m%d%H%M%S")

    async def initiate_stk_push(
        self,
        phone_number: str,
        amount: Decimal | float | int,
        account_reference: str,
        transaction_desc: str,
    ) -> StkPushResult:
        """
        Prompt the customer's phone for their M-Pesa PIN.

        Args:
            phone_number: Customer number in any accepted format
            amount: Amount to charge, rounded up to whole units
            account_reference: Reference shown to the customer
            transaction_desc: Short description of the payment

        Returns:
            Result carrying the checkout request id on success
        """
        if not self.configured:
            logger.error("mpesa_not_configured")
            return StkPushResult(success=False, error=self.NOT_CONFIGURED, configuration_error=True)

        if not is_valid_phone_number(phone_number):
            return StkPushResult(success=False, error="Invalid phone number format")
        formatted_phone = normalize_phone_number(phone_number)

        try:
            access_token = await self.get_access_token()
            timestamp = self._timestamp()
            response = await self._request(
                "POST",
                "/mpesa/stkpush/v1/processrequest",
                headers={"Authorization": f"Bearer {access_token}"},
                json={
                    "BusinessShortCode": self.settings.mpesa_business_shortcode,
                    "Password": self._password(timestamp),
                    "Timestamp": timestamp,
                    "TransactionType": "CustomerPayBillOnline",
                    "Amount": whole_units(amount),
                    "PartyA": formatted_phone,
                    "PartyB": self.settings.mpesa_business_shortcode,
                    "PhoneNumber": formatted_phone,
                    "CallBackURL": self.settings.mpesa_callback_url,
                    "AccountReference": account_reference,
                    "TransactionDesc": transaction_desc,
                },
            )
        except (httpx.HTTPError, MpesaAuthError) as e:
            logger.error("stk_push_request_failed", error=str(e))
            return StkPushResult(success=False, error="Failed to reach M-Pesa")

        if response.status_code == 401:
            self.token_cache.clear()
        if not response.is_success:
            logger.error(
                "stk_push_rejected", status_code=response.status_code, body=response.text
            )
            return StkPushResult(success=False, error=f"STK Push failed: {response.status_code}")

        try:
            data = self._json_object(response)
        except ValueError as e:
            logger.error("stk_push_unreadable", error=str(e))
            return StkPushResult(success=False, error="Unreadable response from M-Pesa")

        if str(data.get("ResponseCode")) != SUCCESS_RESULT_CODE:
            logger.error("stk_push_error", description=data.get("ResponseDescription"))
            return StkPushResult(success=False, error="M-Pesa rejected the payment request")

        logger.info("stk_push_initiated", checkout_request_id=data.get("CheckoutRequestID"))
        return StkPushResult(
            success=True,
            checkout_request_id=data.get("CheckoutRequestID"),
            merchant_request_id=data.get("MerchantRequestID"),
            customer_message=data.get("CustomerMessage"),
        )

    async def query_status(self, checkout_request_id: str) -> StkQueryResult:
        """
        Poll the outcome of an STK push.

        Args:
            checkout_request_id: Id returned by the STK push

        Returns:
            Result whose ``succeeded`` flag is True only for result code 0
        """
        if not self.configured:
            logger.error("mpesa_not_configured")
            return StkQueryResult(
                success=False, error=self.NOT_CONFIGURED, configuration_error=True
            )

        try:
            access_token = await self.get_access_token()
            timestamp = self._timestamp()
            response = await self._request(
                "POST",
                "/mpesa/stkpushquery/v1/query",
                headers={"Authorization": f"Bearer {access_token}"},
                json={
                    "BusinessShortCode": self.settings.mpesa_business_shortcode,
                    "Password": self._password(timestamp),
                    "Timestamp": timestamp,
                    "CheckoutRequestID": checkout_request_id,
                },
            )
        except (httpx.HTTPError, MpesaAuthError) as e:
            logger.error("stk_query_request_failed", error=str(e))
            return StkQueryResult(success=False, error="Failed to reach M-Pesa")

        if response.status_code == 401:
            self.token_cache.clear()
        if not response.is_success:
            logger.warning(
                "stk_query_rejected", status_code=response.status_code, body=response.text
            )
            return StkQueryResult(success=False, error=f"Query failed: {response.status_code}")

        try:
            data = self._json_object(response)
        except ValueError as e:
            logger.error("stk_query_unreadable", error=str(e))
            return StkQueryResult(success=False, error="Unreadable response from M-Pesa")

        result_code = data.get("ResultCode")
        result_code = str(result_code) if result_code is not None else None

        logger.info(
            "stk_query_completed",
            checkout_request_id=checkout_request_id,
            result_code=result_code,
        )
        return StkQueryResult(
            success=True,
            succeeded=result_code == SUCCESS_RESULT_CODE,
            result_code=result_code,
            result_desc=data.get("ResultDesc"),
        )


@lru_cache
def get_mpesa_client() -> MpesaClient:
    """Process-wide M-Pesa client, so the token cache outlives a single request."""
    return MpesaClient(get_settings())
