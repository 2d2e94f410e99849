"""Payment schemas: provider results, stored records and inbound provider payloads."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class PaymentProvider(str, Enum):
    """Supported payment providers."""

    STRIPE = "stripe"
    MPESA = "mpesa"


class PaymentRecordStatus(str, Enum):
    """Payment record status across both providers."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"
    # M-Pesa only
    TIMEOUT = "timeout"


TERMINAL_PAYMENT_STATUSES = frozenset(
    {
        PaymentRecordStatus.SUCCEEDED.value,
        PaymentRecordStatus.FAILED.value,
        PaymentRecordStatus.CANCELED.value,
        PaymentRecordStatus.TIMEOUT.value,
    }
)


# Provider client results. Clients never raise; they report failures here.


class ProviderResult(BaseModel):
    """Outcome of a call to an external provider."""

    success: bool
    error: str | None = None
    configuration_error: bool = False


class PaymentIntentResult(ProviderResult):
    """Stripe payment intent as returned by create/retrieve."""

    payment_intent_id: str | None = None
    client_secret: str | None = None
    status: str | None = None
    amount: int | None = None
    currency: str | None = None
    payment_method_type: str | None = None
    receipt_url: str | None = None
    metadata: dict[str, str] = Field(default_factory=dict)


class StkPushResult(ProviderResult):
    """Outcome of an M-Pesa STK push request."""

    checkout_request_id: str | None = None
    merchant_request_id: str | None = None
    customer_message: str | None = None


class StkQueryResult(ProviderResult):
    """Outcome of an M-Pesa STK push status query.

    ``success`` reports whether the query itself went through; ``succeeded``
    reports whether the customer actually paid.
    """

    succeeded: bool = False
    result_code: str | None = None
    result_desc: str | None = None


# Stored records


class StripePaymentResponse(BaseModel):
    """Card payment record."""

    id: int
    appointment_id: int
    user_id: int
    amount: Decimal
    currency: str
    stripe_payment_intent_id: str
    status: PaymentRecordStatus
    payment_method: str | None = None
    receipt_url: str | None = None
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MpesaPaymentResponse(BaseModel):
    """Mobile money payment record."""

    id: int
    appointment_id: int
    user_id: int
    amount: Decimal
    currency: str
    phone_number: str
    checkout_request_id: str
    merchant_request_id: str | None = None
    result_code: str | None = None
    result_desc: str | None = None
    mpesa_receipt_number: str | None = None
    transaction_date: str | None = None
    status: PaymentRecordStatus
    failure_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# API requests/responses


class PaymentIntentCreate(BaseModel):
    """Request a card payment intent for an existing appointment."""

    appointment_id: int


class PaymentIntentResponse(BaseModel):
    """Client-side handle for a card payment."""

    appointment_id: int
    payment_intent_id: str
    client_secret: str


class CardConfirmResponse(BaseModel):
    """Whether the card payment has settled; ``False`` means poll again."""

    payment_intent_id: str
    confirmed: bool


class MpesaStatusResponse(BaseModel):
    """Mobile money payment outcome as last reported by the provider."""

    checkout_request_id: str
    succeeded: bool
    result_code: str | None = None
    result_desc: str | None = None


class WebhookAck(BaseModel):
    """Acknowledgement returned to providers regardless of processing outcome."""

    received: bool = True


class MpesaCallbackAck(BaseModel):
    """Acknowledgement in the shape M-Pesa expects."""

    ResultCode: int = 0
    ResultDesc: str = "Accepted"


# Inbound provider payloads


class MpesaCallbackItem(BaseModel):
    """One name/value entry of the callback metadata."""

    name: str = Field(..., alias="Name")
    value: Any = Field(None, alias="Value")


class MpesaCallbackMetadata(BaseModel):
    """Receipt details attached to successful callbacks."""

    items: list[MpesaCallbackItem] = Field(default_factory=list, alias="Item")

    def get(self, name: str) -> Any:
        """Return the value of the named item, if present."""
        for item in self.items:
            if item.name == name:
                return item.value
        return None


class MpesaStkCallback(BaseModel):
    """The ``stkCallback`` body of an M-Pesa notification."""

    merchant_request_id: str | None = Field(None, alias="MerchantRequestID")
    checkout_request_id: str = Field(..., alias="CheckoutRequestID")
    result_code: int = Field(..., alias="ResultCode")
    result_desc: str | None = Field(None, alias="ResultDesc")
    callback_metadata: MpesaCallbackMetadata | None = Field(None, alias="CallbackMetadata")


class MpesaCallbackBody(BaseModel):
    """Wrapper for the ``Body`` key."""

    stk_callback: MpesaStkCallback = Field(..., alias="stkCallback")


class MpesaCallbackPayload(BaseModel):
    """Full M-Pesa STK callback payload."""

    body: MpesaCallbackBody = Field(..., alias="Body")


class StripeEventObject(BaseModel):
    """The payment intent carried by a Stripe event."""

    model_config = ConfigDict(extra="allow")

    id: str
    metadata: dict[str, str] = Field(default_factory=dict)
    last_payment_error: dict[str, Any] | None = None


class StripeEventData(BaseModel):
    """The ``data`` key of a Stripe event."""

    object: StripeEventObject


class StripeEvent(BaseModel):
    """Stripe webhook event."""

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    type: str
    data: StripeEventData
