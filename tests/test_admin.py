"""Tests for admin endpoints."""

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointments import appointments
from app.models.notification_logs import notification_logs
from app.models.payments import mpesa_payments, stripe_payments

BASE_TIME = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


async def seed_appointments(
    db_session: AsyncSession,
    user_id: int,
    count: int,
    status: str = "pending",
    **overrides,
) -> list[int]:
    """Insert appointments one minute apart; later ids are newer."""
    ids = []
    for i in range(count):
        values = {
            "user_id": user_id,
            "doctor_name": f"Dr. {i}",
            "department": "Cardiology",
            "appointment_date": "2026-03-15",
            "appointment_time": "10:00",
            "patient_first_name": "Jane",
            "patient_last_name": "Smith",
            "patient_email": "jane@example.com",
            "patient_phone": "0712345678",
            "status": status,
            "created_at": BASE_TIME + timedelta(minutes=i),
            "updated_at": BASE_TIME + timedelta(minutes=i),
            **overrides,
        }
        result = await db_session.execute(
            insert(appointments).values(**values).returning(appointments.c.id)
        )
        ids.append(result.scalar_one())
    await db_session.commit()
    return ids


ADMIN_ENDPOINTS = [
    ("GET", "/api/v1/admin/overview"),
    ("GET", "/api/v1/admin/appointments"),
    ("GET", "/api/v1/admin/appointments/stats"),
    ("GET", "/api/v1/admin/appointments/search?q=jane"),
    ("PATCH", "/api/v1/admin/appointments/1/status"),
    ("POST", "/api/v1/admin/appointments/1/cancel"),
    ("POST", "/api/v1/admin/appointments/1/reminder"),
    ("GET", "/api/v1/admin/payments"),
    ("GET", "/api/v1/admin/payments/stats"),
    ("GET", "/api/v1/admin/notifications"),
    ("GET", "/api/v1/admin/notifications/stats"),
]


@pytest.mark.asyncio
class TestAdminAccess:
    """Tests for the admin role check."""

    @pytest.mark.parametrize("method,url", ADMIN_ENDPOINTS)
    async def test_non_admin_forbidden(
        self,
        client: AsyncClient,
        auth_headers: dict,
        method: str,
        url: str,
    ):
        """Test every admin endpoint refuses a regular user."""
        response = await client.request(
            method, url, headers=auth_headers, json={"status": "confirmed"}
        )

        assert response.status_code == 403
        assert response.json()["message"] == "Admin access required"

    @pytest.mark.parametrize("method,url", ADMIN_ENDPOINTS)
    async def test_anonymous_rejected(self, client: AsyncClient, method: str, url: str):
        """Test every admin endpoint refuses a request without a token."""
        response = await client.request(method, url, json={"status": "confirmed"})
        assert response.status_code in (401, 403)

    async def test_invalid_token(self, client: AsyncClient):
        """Test a forged token is rejected."""
        response = await client.get(
            "/api/v1/admin/overview", headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401


@pytest.mark.asyncio
class TestAdminAppointments:
    """Tests for admin appointment management."""

    async def test_list_paginated_newest_first(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test filtering by status and paging newest first."""
        pending = await seed_appointments(db_session, test_user["id"], 12)
        await seed_appointments(db_session, test_user["id"], 3, status="confirmed")

        response = await client.get(
            "/api/v1/admin/appointments",
            params={"status": "pending", "page": 1, "limit": 10},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 12
        assert data["page"] == 1
        assert data["limit"] == 10
        assert data["total_pages"] == 2
        ids = [a["id"] for a in data["appointments"]]
        assert ids == list(reversed(pending))[:10]
        assert all(a["status"] == "pending" for a in data["appointments"])

        response = await client.get(
            "/api/v1/admin/appointments",
            params={"status": "pending", "page": 2, "limit": 10},
            headers=admin_headers,
        )
        assert [a["id"] for a in response.json()["appointments"]] == pending[1::-1]

    async def test_list_other_filters(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test filtering by payment status and department."""
        await seed_appointments(db_session, test_user["id"], 2)
        await seed_appointments(
            db_session, test_user["id"], 1, department="Dermatology", payment_status="paid"
        )

        response = await client.get(
            "/api/v1/admin/appointments",
            params={"payment_status": "paid"},
            headers=admin_headers,
        )
        assert response.json()["total"] == 1

        response = await client.get(
            "/api/v1/admin/appointments",
            params={"department": "Cardiology"},
            headers=admin_headers,
        )
        assert response.json()["total"] == 2

    async def test_list_empty(self, client: AsyncClient, admin_headers: dict):
        """Test listing with no appointments."""
        response = await client.get("/api/v1/admin/appointments", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["appointments"] == []
        assert data["total"] == 0
        assert data["total_pages"] == 0

    async def test_invalid_pagination(self, client: AsyncClient, admin_headers: dict):
        """Test page and limit bounds are validated."""
        for params in ({"page": 0}, {"limit": 0}, {"limit": 101}):
            response = await client.get(
                "/api/v1/admin/appointments", params=params, headers=admin_headers
            )
            assert response.status_code == 422

    async def test_stats(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test appointment counts by status."""
        await seed_appointments(db_session, test_user["id"], 2)
        await seed_appointments(db_session, test_user["id"], 3, status="confirmed")
        await seed_appointments(db_session, test_user["id"], 1, status="cancelled")

        response = await client.get("/api/v1/admin/appointments/stats", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {
            "total": 6,
            "pending": 2,
            "confirmed": 3,
            "completed": 0,
            "cancelled": 1,
        }

    async def test_search(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test search matches patient fields case-insensitively, capped at 20."""
        await seed_appointments(db_session, test_user["id"], 25)
        (other,) = await seed_appointments(
            db_session,
            test_user["id"],
            1,
            patient_first_name="Amina",
            patient_last_name="Wanjiru",
            patient_email="amina@example.com",
            patient_phone="0722000111",
        )

        response = await client.get(
            "/api/v1/admin/appointments/search", params={"q": "JANE"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert len(response.json()) == 20

        for query in ("wanjiru", "amina@", "0722000"):
            response = await client.get(
                "/api/v1/admin/appointments/search", params={"q": query}, headers=admin_headers
            )
            assert [a["id"] for a in response.json()] == [other]

    async def test_search_wildcards_are_literal(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test LIKE wildcards in the query only match themselves."""
        await seed_appointments(db_session, test_user["id"], 3)
        (underscored,) = await seed_appointments(
            db_session, test_user["id"], 1, patient_email="jane_doe@example.com"
        )

        response = await client.get(
            "/api/v1/admin/appointments/search", params={"q": "%"}, headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json() == []

        response = await client.get(
            "/api/v1/admin/appointments/search", params={"q": "_"}, headers=admin_headers
        )
        assert [a["id"] for a in response.json()] == [underscored]

    async def test_status_override(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
        fetch_appointment,
    ):
        """Test any status can be set, with no transition rules."""
        (appointment_id,) = await seed_appointments(
            db_session, test_user["id"], 1, status="cancelled"
        )

        response = await client.patch(
            f"/api/v1/admin/appointments/{appointment_id}/status",
            json={"status": "completed"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "completed"
        assert (await fetch_appointment(appointment_id)).status == "completed"

    async def test_status_override_invalid(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test unknown statuses and appointments are rejected."""
        (appointment_id,) = await seed_appointments(db_session, test_user["id"], 1)

        response = await client.patch(
            f"/api/v1/admin/appointments/{appointment_id}/status",
            json={"status": "no_show"},
            headers=admin_headers,
        )
        assert response.status_code == 422

        response = await client.patch(
            "/api/v1/admin/appointments/999/status",
            json={"status": "confirmed"},
            headers=admin_headers,
        )
        assert response.status_code == 404

    async def test_cancel_sends_email(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
        fetch_logs,
    ):
        """Test an admin cancellation notifies the patient."""
        (appointment_id,) = await seed_appointments(
            db_session, test_user["id"], 1, status="confirmed"
        )

        response = await client.post(
            f"/api/v1/admin/appointments/{appointment_id}/cancel", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        logs = await fetch_logs("cancellation")
        assert len(logs) == 1
        assert logs[0].appointment_id == appointment_id

    async def test_reminder(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
        provider_stub,
        fetch_logs,
    ):
        """Test sending a reminder returns the delivery result."""
        (appointment_id,) = await seed_appointments(
            db_session, test_user["id"], 1, status="confirmed"
        )

        response = await client.post(
            f"/api/v1/admin/appointments/{appointment_id}/reminder", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert provider_stub.emails[-1]["subject"].startswith("Reminder:")

        provider_stub.email_status_code = 503
        response = await client.post(
            f"/api/v1/admin/appointments/{appointment_id}/reminder", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["success"] is False

        logs = await fetch_logs("reminder")
        assert [log.status for log in logs] == ["sent", "failed"]

    async def test_reminder_missing_appointment(self, client: AsyncClient, admin_headers: dict):
        """Test a reminder for a missing appointment."""
        response = await client.post(
            "/api/v1/admin/appointments/999/reminder", headers=admin_headers
        )
        assert response.status_code == 404


@pytest.mark.asyncio
class TestAdminPayments:
    """Tests for admin payment views."""

    async def seed_payments(self, db_session: AsyncSession, user_id: int) -> None:
        await db_session.execute(
            insert(stripe_payments),
            [
                {
                    "appointment_id": 1,
                    "user_id": user_id,
                    "amount": 50,
                    "currency": "USD",
                    "stripe_payment_intent_id": "pi_a",
                    "status": "succeeded",
                },
                {
                    "appointment_id": 2,
                    "user_id": user_id,
                    "amount": 25.5,
                    "currency": "USD",
                    "stripe_payment_intent_id": "pi_b",
                    "status": "pending",
                },
            ],
        )
        await db_session.execute(
            insert(mpesa_payments),
            [
                {
                    "appointment_id": 3,
                    "user_id": user_id,
                    "amount": 1500,
                    "currency": "KES",
                    "phone_number": "254712345678",
                    "checkout_request_id": "ws_CO_a",
                    "status": "succeeded",
                },
                {
                    "appointment_id": 4,
                    "user_id": user_id,
                    "amount": 800,
                    "currency": "KES",
                    "phone_number": "254712345678",
                    "checkout_request_id": "ws_CO_b",
                    "status": "canceled",
                },
            ],
        )
        await db_session.commit()

    async def test_list_payments_by_provider(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test listing each provider's records with a status filter."""
        await self.seed_payments(db_session, test_user["id"])

        response = await client.get("/api/v1/admin/payments", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["provider"] == "stripe"
        assert data["total"] == 2

        response = await client.get(
            "/api/v1/admin/payments",
            params={"provider": "mpesa", "status": "canceled"},
            headers=admin_headers,
        )
        data = response.json()
        assert data["provider"] == "mpesa"
        assert data["total"] == 1
        assert data["payments"][0]["checkout_request_id"] == "ws_CO_b"

    async def test_payment_stats(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test revenue is summed without conversion and split by currency."""
        await self.seed_payments(db_session, test_user["id"])

        response = await client.get("/api/v1/admin/payments/stats", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["total_revenue"] == pytest.approx(1550.0)
        assert data["revenue_by_currency"] == {"USD": 50.0, "KES": 1500.0}
        assert data["per_provider_counts"] == {"stripe": 2, "mpesa": 2}
        assert data["pending_count"] == 1

    async def test_payment_stats_empty(self, client: AsyncClient, admin_headers: dict):
        """Test statistics with no payments."""
        response = await client.get("/api/v1/admin/payments/stats", headers=admin_headers)

        assert response.json() == {
            "total_revenue": 0.0,
            "revenue_by_currency": {},
            "per_provider_counts": {"stripe": 0, "mpesa": 0},
            "pending_count": 0,
        }


@pytest.mark.asyncio
class TestAdminNotifications:
    """Tests for admin notification views."""

    async def seed_logs(self, db_session: AsyncSession) -> None:
        rows = [
            ("confirmation", "sent", 1),
            ("receipt", "sent", 1),
            ("reminder", "failed", 2),
            ("cancellation", "sent", 2),
        ]
        await db_session.execute(
            insert(notification_logs),
            [
                {
                    "appointment_id": appointment_id,
                    "recipient_email": "jane@example.com",
                    "category": category,
                    "subject": f"{category} email",
                    "status": status,
                    "sent_at": BASE_TIME + timedelta(minutes=i),
                }
                for i, (category, status, appointment_id) in enumerate(rows)
            ],
        )
        await db_session.commit()

    async def test_list_logs(
        self,
        client: AsyncClient,
        admin_headers: dict,
        db_session: AsyncSession,
    ):
        """Test listing logs newest first with filters."""
        await self.seed_logs(db_session)

        response = await client.get("/api/v1/admin/notifications", headers=admin_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 4
        assert [log["category"] for log in data["logs"]] == [
            "cancellation",
            "reminder",
            "receipt",
            "confirmation",
        ]

        response = await client.get(
            "/api/v1/admin/notifications",
            params={"status": "failed"},
            headers=admin_headers,
        )
        assert [log["category"] for log in response.json()["logs"]] == ["reminder"]

        response = await client.get(
            "/api/v1/admin/notifications",
            params={"appointment_id": 1, "category": "receipt"},
            headers=admin_headers,
        )
        assert response.json()["total"] == 1

    async def test_notification_stats(
        self,
        client: AsyncClient,
        admin_headers: dict,
        db_session: AsyncSession,
    ):
        """Test counts by delivery status."""
        await self.seed_logs(db_session)

        response = await client.get("/api/v1/admin/notifications/stats", headers=admin_headers)

        assert response.status_code == 200
        assert response.json() == {"total": 4, "sent": 3, "failed": 1, "bounced": 0}

    async def test_overview(
        self,
        client: AsyncClient,
        admin_headers: dict,
        test_user: dict,
        db_session: AsyncSession,
    ):
        """Test the overview combines all three statistics."""
        await self.seed_logs(db_session)
        await seed_appointments(db_session, test_user["id"], 2)

        response = await client.get("/api/v1/admin/overview", headers=admin_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["appointments"]["total"] == 2
        assert data["appointments"]["pending"] == 2
        assert data["payments"]["total_revenue"] == 0.0
        assert data["notifications"]["sent"] == 3
