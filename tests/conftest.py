import json
import os
from collections.abc import AsyncGenerator, Callable
from datetime import timedelta
from typing import Any
from urllib.parse import parse_qs

# Tests run against an in-memory database and stubbed providers only
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["JWT_SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_apexcare"
os.environ["MPESA_CONSUMER_KEY"] = "consumer-key"
os.environ["MPESA_CONSUMER_SECRET"] = "consumer-secret"
os.environ["MPESA_BUSINESS_SHORTCODE"] = "174379"
os.environ["MPESA_PASSKEY"] = "test-passkey"
os.environ["RESEND_API_KEY"] = "re_test_apexcare"
os.environ["LOG_FORMAT"] = "console"

import httpx
import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Load any remaining settings from .env without overriding the values above
load_dotenv()

from app.config import settings
from app.core.mpesa_client import MpesaClient, get_mpesa_client
from app.core.resend_client import ResendClient, get_resend_client
from app.core.security import create_access_token
from app.core.stripe_client import StripeClient, get_stripe_client
from app.database import get_db
from app.main import app
from app.models import combined_metadata
from app.models.appointments import appointments
from app.models.notification_logs import notification_logs
from app.models.users import users
from app.services.email_service import EmailService
from app.services.mpesa_service import MpesaService
from app.services.stripe_service import StripeService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
RECEIPT_BASE_URL = "https://pay.stripe.com/receipts"

metadata = combined_metadata()


class ProviderStub:
    """Stand-in for Stripe, Daraja and Resend behind ``httpx.MockTransport``.

    Tests flip the public attributes to change what the providers answer.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.intents: dict[str, dict[str, Any]] = {}
        self.intent_status = "requires_payment_method"
        self.stripe_status_code = 200
        self.stk_status_code = 200
        self.stk_response_code = "0"
        self.query_result_code: str | None = "0"
        self.query_result_desc = "The service request is processed successfully."
        self.email_status_code = 200
        # Paths answered with a 200 HTML page and hosts whose connections fail
        self.html_paths: set[str] = set()
        self.unreachable_hosts: set[str] = set()
        self._seq = 0

    def _next(self) -> int:
        self._seq += 1
        return self._seq

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        host = request.url.host
        if host in self.unreachable_hosts:
            raise httpx.ConnectError("Connection refused", request=request)
        if request.url.path in self.html_paths:
            return httpx.Response(200, text="<html><body>Gateway maintenance</body></html>")
        if host == "api.stripe.com":
            return self._stripe(request)
        if host == "sandbox.safaricom.co.ke":
            return self._daraja(request)
        if host == "api.resend.com":
            return self._resend(request)
        return httpx.Response(404)

    def _stripe(self, request: httpx.Request) -> httpx.Response:
        if self.stripe_status_code != 200:
            return httpx.Response(self.stripe_status_code, json={"error": {"message": "boom"}})

        path = request.url.path
        if request.method == "POST" and path == "/v1/payment_intents":
            form = {key: values[0] for key, values in parse_qs(request.content.decode()).items()}
            intent_id = f"pi_test_{self._next()}"
            self.intents[intent_id] = {
                "id": intent_id,
                "client_secret": f"{intent_id}_secret_abc",
                "amount": int(form["amount"]),
                "currency": form["currency"],
                "description": form.get("description"),
                "metadata": {
                    key[len("metadata[") : -1]: value
                    for key, value in form.items()
                    if key.startswith("metadata[")
                },
            }
            created = {**self.intents[intent_id], "status": "requires_payment_method"}
            return httpx.Response(200, json=created)

        if request.method == "GET" and path.startswith("/v1/payment_intents/"):
            intent_id = path.rsplit("/", 1)[1]
            intent = self.intents.get(intent_id)
            if intent is None:
                return httpx.Response(404, json={"error": {"message": "No such payment_intent"}})
            return httpx.Response(
                200,
                json={
                    **intent,
                    "status": self.intent_status,
                    "payment_method_types": ["card"],
                    "latest_charge": {"receipt_url": f"{RECEIPT_BASE_URL}/{intent_id}"},
                },
            )

        return httpx.Response(404)

    def _daraja(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/oauth/v1/generate":
            return httpx.Response(
                200, json={"access_token": f"token-{self._next()}", "expires_in": "3599"}
            )

        if self.stk_status_code != 200:
            return httpx.Response(self.stk_status_code, json={"errorMessage": "Bad Request"})

        if path == "/mpesa/stkpush/v1/processrequest":
            n = self._next()
            return httpx.Response(
                200,
                json={
                    "MerchantRequestID": f"29115-{n}",
                    "CheckoutRequestID": f"ws_CO_{n}",
                    "ResponseCode": self.stk_response_code,
                    "ResponseDescription": "Success. Request accepted for processing",
                    "CustomerMessage": "Success. Request accepted for processing",
                },
            )

        if path == "/mpesa/stkpushquery/v1/query":
            body: dict[str, Any] = {"ResponseCode": "0", "ResultDesc": self.query_result_desc}
            if self.query_result_code is not None:
                body["ResultCode"] = self.query_result_code
            return httpx.Response(200, json=body)

        return httpx.Response(404)

    def _resend(self, request: httpx.Request) -> httpx.Response:
        if self.email_status_code != 200:
            return httpx.Response(self.email_status_code, json={"message": "provider exploded"})
        return httpx.Response(200, json={"id": f"email-{self._next()}"})

    def calls_to(self, host: str, path: str | None = None) -> list[httpx.Request]:
        """Requests sent to a provider host, optionally narrowed to one path."""
        return [
            r
            for r in self.requests
            if r.url.host == host and (path is None or r.url.path == path)
        ]

    @property
    def emails(self) -> list[dict[str, Any]]:
        """JSON bodies of every email sent to Resend."""
        return [json.loads(r.content) for r in self.calls_to("api.resend.com", "/emails")]


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh in-memory database and session for one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def provider_stub() -> ProviderStub:
    """Provider responses controlled by the test."""
    return ProviderStub()


@pytest_asyncio.fixture
async def provider_http(provider_stub: ProviderStub) -> AsyncGenerator[httpx.AsyncClient, None]:
    """HTTP client that routes every provider call to the stub."""
    async with httpx.AsyncClient(transport=httpx.MockTransport(provider_stub)) as http:
        yield http


@pytest.fixture
def stripe_client(provider_http: httpx.AsyncClient) -> StripeClient:
    return StripeClient(settings, provider_http)


@pytest.fixture
def mpesa_client(provider_http: httpx.AsyncClient) -> MpesaClient:
    return MpesaClient(settings, provider_http)


@pytest.fixture
def resend_client(provider_http: httpx.AsyncClient) -> ResendClient:
    return ResendClient(settings, provider_http)


@pytest.fixture
def email_service(db_session: AsyncSession, resend_client: ResendClient) -> EmailService:
    return EmailService(db_session, resend_client)


@pytest.fixture
def stripe_service(
    db_session: AsyncSession, stripe_client: StripeClient, email_service: EmailService
) -> StripeService:
    return StripeService(db_session, stripe_client, email_service)


@pytest.fixture
def mpesa_service(
    db_session: AsyncSession, mpesa_client: MpesaClient, email_service: EmailService
) -> MpesaService:
    return MpesaService(db_session, mpesa_client, email_service)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    stripe_client: StripeClient,
    mpesa_client: MpesaClient,
    resend_client: ResendClient,
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client
    app.dependency_overrides[get_mpesa_client] = lambda: mpesa_client
    app.dependency_overrides[get_resend_client] = lambda: resend_client

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_user(
    db_session: AsyncSession, open_id: str, name: str, email: str, role: str
) -> dict:
    result = await db_session.execute(
        insert(users)
        .values(open_id=open_id, name=name, email=email, login_method="oauth", role=role)
        .returning(users)
    )
    await db_session.commit()
    return dict(result.mappings().one())


def _auth_headers(user: dict) -> dict:
    token = create_access_token(user["id"], expires_delta=timedelta(minutes=30))
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> dict:
    """Create a test patient in the database."""
    return await _create_user(db_session, "patient-1", "Jane Smith", "jane@example.com", "user")


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> dict:
    """A second patient who owns nothing the test user books."""
    return await _create_user(db_session, "patient-2", "John Otieno", "john@example.com", "user")


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> dict:
    """Create an admin in the database."""
    return await _create_user(db_session, "admin-1", "Clinic Admin", "admin@apexcare.com", "admin")


@pytest.fixture
def auth_headers(test_user: dict) -> dict:
    """Create authentication headers for testing protected endpoints."""
    return _auth_headers(test_user)


@pytest.fixture
def other_auth_headers(other_user: dict) -> dict:
    return _auth_headers(other_user)


@pytest.fixture
def admin_headers(admin_user: dict) -> dict:
    return _auth_headers(admin_user)


@pytest.fixture
def booking_data() -> dict:
    """Booking details for a cardiology consultation."""
    return {
        "doctor_name": "Dr. X",
        "department": "Cardiology",
        "appointment_date": "2026-03-15",
        "appointment_time": "10:00",
        "patient_first_name": "Jane",
        "patient_last_name": "Smith",
        "patient_email": "jane@example.com",
        "patient_phone": "0712345678",
        "reason_for_visit": "Chest pain follow-up",
    }


@pytest.fixture
def fetch_appointment(db_session: AsyncSession) -> Callable:
    """Read an appointment row straight from the store."""

    async def _fetch(appointment_id: int) -> Any:
        result = await db_session.execute(
            select(appointments).where(appointments.c.id == appointment_id)
        )
        return result.fetchone()

    return _fetch


@pytest.fixture
def fetch_logs(db_session: AsyncSession) -> Callable:
    """Read notification log rows, optionally for one category."""

    async def _fetch(category: str | None = None) -> list[Any]:
        query = select(notification_logs).order_by(notification_logs.c.id)
        if category is not None:
            query = query.where(notification_logs.c.category == category)
        result = await db_session.execute(query)
        return list(result.fetchall())

    return _fetch
