"""
Pytest configuration and shared fixtures.
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock

import httpx
import pytest

from api import AppContext, PushHub
from bookings.loyalty import LoyaltyLedger, RewardPolicy
from bookings.service import BookingService
from config import Settings
from payments.cod import CashOnDelivery
from payments.esewa import EsewaGateway
from payments.http import GatewayClient
from payments.khalti import KhaltiGateway
from payments.settlement import Settlement
from tests.fakes import FixedDistanceProvider, InMemoryDatabase, RecordingDispatcher
from utils.locks import KeyedLock

SERVICE_DATE = datetime(2026, 3, 5, 10, 0, tzinfo=timezone.utc)


@pytest.fixture
def test_settings():
    """Settings with test credentials, ignoring any local .env file."""
    return Settings(
        _env_file=None,
        supabase_url="https://test.supabase.co",
        supabase_key="test_key",
        jwt_secret="test-jwt-secret-with-enough-length",
        khalti_secret_key="test_secret_khalti",
        esewa_product_code="EPAYTEST",
        esewa_secret_key="8gBm/:&EnhH.1/q",
        esewa_form_url="https://esewa.test/api/epay/main/v2/form",
        esewa_status_url="https://esewa.test/api/epay/transaction/status/",
        khalti_verify_url="https://khalti.test/api/v2/payment/verify/",
        environment="test",
        smtp_username="",
        smtp_password="",
    )


@pytest.fixture
def mock_supabase_client():
    """Create a mock Supabase client."""
    mock_client = MagicMock()
    mock_table = MagicMock()
    mock_client.table.return_value = mock_table
    return mock_client, mock_table


@pytest.fixture
def db():
    return InMemoryDatabase()


@pytest.fixture
def customer(db):
    return db.add_user(
        "user-1",
        full_name="Sita Sharma",
        email="sita@example.com",
        loyalty_points=150,
    )


@pytest.fixture
def other_customer(db):
    return db.add_user("user-2", full_name="Ram Thapa", email="ram@example.com")


@pytest.fixture
def admin(db):
    return db.add_user(
        "admin-1", full_name="Workshop Admin", email="admin@fixhub.com", role="admin"
    )


@pytest.fixture
def service(db):
    return db.add_service("svc-1", name="Full Servicing", price=1000)


@pytest.fixture
def make_booking(db, customer, service):
    """Insert a Pending, unpaid 1000 NPR booking owned by ``customer``."""

    def _make(**overrides):
        fields = {
            "customer_id": customer.id,
            "customer_name": customer.full_name,
            "service_id": service.id,
            "service_type": service.name,
            "bike_model": "Honda Shine 125",
            "date": SERVICE_DATE,
            "total_cost": 1000,
            "final_amount": 1000,
        }
        fields.update(overrides)
        return db.insert_booking(**fields)

    return _make


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def ledger(db):
    return LoyaltyLedger(db, RewardPolicy())


@pytest.fixture
def locks():
    return KeyedLock()


@pytest.fixture
def distance():
    return FixedDistanceProvider(10)


@pytest.fixture
def booking_service(db, ledger, dispatcher, distance, locks):
    return BookingService(db, ledger, dispatcher, distance, locks=locks)


@pytest.fixture
def settlement(db, ledger, dispatcher, locks):
    return Settlement(db, ledger, dispatcher, locks=locks)


def khalti_endpoint(request: httpx.Request) -> httpx.Response:
    """Fake Khalti verify API: rejects ``tok_bad``, confirms anything else."""
    body = json.loads(request.content)
    if body["token"] == "tok_bad":
        return httpx.Response(400, json={"detail": "Invalid token."})
    return httpx.Response(200, json={"idx": "khalti-idx-1", "amount": body["amount"]})


@pytest.fixture
def context(test_settings, db, booking_service, settlement, dispatcher, locks,
            customer, admin, service):
    """Application services wired to the in-memory database."""
    gateway_client = GatewayClient(
        client=httpx.AsyncClient(transport=httpx.MockTransport(khalti_endpoint)),
        retry_delay=0,
    )
    return AppContext(
        settings=test_settings,
        db=db,
        bookings=booking_service,
        cod=CashOnDelivery(settlement),
        khalti=KhaltiGateway.from_settings(test_settings, settlement, db, gateway_client),
        esewa=EsewaGateway(
            settlement,
            db,
            gateway_client,
            product_code=test_settings.esewa_product_code,
            secret_key=test_settings.esewa_secret_key,
            form_url=test_settings.esewa_form_url,
            status_url=test_settings.esewa_status_url,
            success_url=test_settings.esewa_success_url,
            failure_url=test_settings.esewa_failure_url,
            locks=locks,
        ),
        dispatcher=dispatcher,
        push_hub=PushHub(),
        gateway_client=gateway_client,
    )
