"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Settings are read at import time; point everything at an in-memory database
# and keep the background notifier off before the application is imported.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["NOTIFIER_ENABLED"] = "false"
os.environ["WHATSAPP_VERIFY_TOKEN"] = "test-verify-token"
os.environ["ENVIRONMENT"] = "test"

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from order_agent.main import app
from order_agent.models import Base, MenuItem, Tenant
from order_agent.repositories import CatalogRepository, OrderRepository
from order_agent.services.conversation.engine import ConversationEngine
from order_agent.services.payments.gateway import IntentStatus, PaymentIntent
from order_agent.services.session import SessionRegistry
from shared.infrastructure.db import SessionLocal, engine
from shared.utils.exceptions import DispatchError, GatewayError


SENDER = "919876543210"
OTHER_SENDER = "919812345678"

# (item_id, title, price in paise, category, estimated minutes, available)
TEST_MENU = [
    ("1", "Masala Dosa", 12000, "Breakfast", 10, True),
    ("2", "Paneer Butter Masala", 25000, "Main Course", 20, True),
    ("3", "Masala Chai", 3000, "Beverages", 5, True),
    ("4", "Seasonal Special", 40000, "Main Course", 30, False),
]


# =============================================================================
# Test doubles
# =============================================================================


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeGateway:
    """In-memory payment gateway that records every call."""

    def __init__(self):
        self.created: list[dict] = []
        self.cancelled: list[str] = []
        self.paid: set[str] = set()
        self.fail_create = False
        self.fail_fetch = False
        self.fail_cancel = False

    async def create_intent(self, amount_minor, currency, customer_ref, reference=None):
        if self.fail_create:
            raise GatewayError("create payment link", detail="provider down")
        intent_id = f"plink_{len(self.created) + 1}"
        self.created.append(
            {
                "intent_id": intent_id,
                "amount_minor": amount_minor,
                "currency": currency,
                "customer_ref": customer_ref,
                "reference": reference,
            }
        )
        return PaymentIntent(intent_id=intent_id, short_link=f"https://rzp.io/i/{intent_id}")

    async def fetch_status(self, intent_id):
        if self.fail_fetch:
            raise GatewayError("fetch payment link", detail="provider down")
        if intent_id in self.paid:
            return IntentStatus(paid=True, status="paid")
        return IntentStatus(paid=False, status="created")

    async def cancel(self, intent_id):
        if self.fail_cancel:
            raise GatewayError("cancel payment link", detail="provider down")
        self.cancelled.append(intent_id)


class RecordingDispatcher:
    """Collects outbound replies; can be told to fail."""

    def __init__(self):
        self.sent: list[tuple[str, object]] = []
        self.fail = False

    async def send(self, sender, reply):
        if self.fail:
            raise DispatchError("transport down", sender=sender)
        self.sent.append((sender, reply))


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_hotel(db_session):
    """Hotel H1 with a small menu, a second hotel H2 and an inactive hotel."""
    db_session.add(Tenant(id="H1", name="Test Hotel"))
    db_session.add(Tenant(id="H2", name="Other Hotel"))
    db_session.add(Tenant(id="CLOSED", name="Closed Hotel", is_active=False))
    for item_id, title, price_cents, category, minutes, available in TEST_MENU:
        db_session.add(
            MenuItem(
                tenant_id="H1",
                item_id=item_id,
                title=title,
                price_cents=price_cents,
                category=category,
                estimated_time_minutes=minutes,
                availability=available,
            )
        )
    db_session.add(
        MenuItem(tenant_id="H2", item_id="1", title="Veg Thali", price_cents=18000, category="Meals")
    )
    db_session.commit()
    return "H1"


# =============================================================================
# Conversation components
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def registry(clock):
    registry = SessionRegistry(binding_ttl=3600, hotel_prompt_timeout=300, clock=clock)
    yield registry
    await registry.shutdown()


@pytest.fixture
def catalog_repo(db_session):
    return CatalogRepository(SessionLocal)


@pytest.fixture
def order_repo(db_session):
    return OrderRepository(SessionLocal)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def conversation(registry, catalog_repo, order_repo, gateway, dispatcher, seed_hotel):
    return ConversationEngine(
        registry,
        catalog_repo,
        order_repo,
        gateway,
        dispatcher,
        currency="INR",
    )


# =============================================================================
# HTTP
# =============================================================================


@pytest.fixture(scope="function")
def client(db_session):
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client
