"""
Pytest configuration.

Environment is set before any app import so the module-level settings pick
up test values. Every test gets a fresh in-memory SQLite database, a fake
payment gateway and a notifier that records instead of sending.
"""

import os
import json
import tempfile
from datetime import datetime, timedelta
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["JWT_SECRET"] = "test-secret"
os.environ["LOG_DIR"] = os.path.join(tempfile.gettempdir(), "skymarket-test-logs")
os.environ.pop("RESEND_API_KEY", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.dependencies import get_db, get_gateway, get_notifier
from app.core.exceptions import CaptureWindowExpired, MalformedWebhook, PaymentDeclined, PaymentProviderUnavailable
from app.core.jwt import create_access_token
from app.core.logging_config import logger
from app.core.security import hash_password
from app.db.base import Base
from app.main import app
from app.models.service import Service
from app.models.user import User
from app.services.booking_service import BookingService
from app.services.dispute_resolver import DisputeResolver
from app.services.payment_coordinator import PaymentCoordinator
from app.services.state_machine import Actor
from app.utils.notifications import Notifier
from app.utils.payment_gateway import PaymentEvent, PaymentGateway
from app.utils.pricing import quote_for_service

CENTER = (30.2672, -97.7431)
# due north of the center, 10 miles away
TEN_MILES_NORTH = (30.2672 + 0.14473, -97.7431)
OUTSIDE_REGION = (31.5, -97.7431)

START = datetime(2026, 6, 1, 9, 0, 0)


# ============================================================================
# FAKES
# ============================================================================

class FakeGateway(PaymentGateway):
    """In-memory payment provider with switchable failure modes."""

    def __init__(self):
        self.calls = []
        self.decline = False
        self.unavailable = False
        self.reject_capture = False
        self._seq = 0

    def _next(self, prefix):
        self._seq += 1
        return f"{prefix}_{self._seq}"

    def _check(self, operation):
        self.calls.append(operation)
        if self.unavailable:
            raise PaymentProviderUnavailable("provider down", details={"operation": operation[0]})

    def authorize(self, amount_cents, metadata):
        self._check(("authorize", amount_cents))
        if self.decline:
            raise PaymentDeclined("card declined")
        return self._next("pay")

    def capture(self, authorization_id, amount_cents):
        self._check(("capture", authorization_id, amount_cents))
        if self.reject_capture:
            raise CaptureWindowExpired("authorization lapsed")
        return authorization_id

    def refund(self, capture_id, amount_cents, idempotency_key):
        self._check(("refund", capture_id, amount_cents))
        return self._next("rfnd")

    def void(self, authorization_id):
        self._check(("void", authorization_id))

    def parse_webhook(self, body, headers):
        try:
            data = json.loads(body)
            return PaymentEvent(
                event_id=headers["x-event-id"],
                event_type=data["type"],
                authorization_id=data.get("authorization_id"),
                occurred_at=datetime.fromisoformat(data["occurred_at"]),
                amount_cents=data.get("amount_cents"),
                refund_id=data.get("refund_id"),
            )
        except (ValueError, KeyError):
            raise MalformedWebhook("bad webhook")

    def create_checkout_order(self, amount_cents, receipt):
        return {"order_id": self._next("order"), "key_id": "rzp_test", "amount_cents": amount_cents}

    def count(self, name):
        return sum(1 for c in self.calls if c[0] == name)


class RecordingNotifier(Notifier):

    def __init__(self):
        self.events = []

    def send(self, event, booking, **context):
        self.events.append((event, booking.id))


class Clock:

    def __init__(self, now=START):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ============================================================================
# LOG CAPTURE
# ============================================================================

@pytest.fixture
def audit_messages():
    messages = []
    handler_id = logger.add(
        lambda message: messages.append(message.record["message"]),
        filter=lambda record: record["extra"].get("log_type") == "audit",
        level="INFO",
    )
    yield messages
    logger.remove(handler_id)


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# COLLABORATORS
# ============================================================================

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def booking_service(db, gateway, notifier, clock):
    return BookingService(db, gateway, notifier, clock=clock)


@pytest.fixture
def coordinator(db, gateway, notifier, clock):
    return PaymentCoordinator(db, gateway, notifier, clock=clock)


@pytest.fixture
def resolver(db, gateway, notifier, clock):
    return DisputeResolver(db, gateway, notifier, clock=clock)


# ============================================================================
# ACCOUNTS & SERVICES
# ============================================================================

def _user(db, name, role):
    user = User(
        name=name.title(),
        email=f"{name}@example.com",
        password_hash=hash_password("secret123"),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def requester_user(db):
    return _user(db, "rita", "requester")


@pytest.fixture
def other_requester_user(db):
    return _user(db, "oscar", "requester")


@pytest.fixture
def provider_user(db):
    return _user(db, "pilot", "provider")


@pytest.fixture
def admin_user(db):
    return _user(db, "arbiter", "admin")


@pytest.fixture
def requester(requester_user):
    return Actor(requester_user.id, "requester")


@pytest.fixture
def provider(provider_user):
    return Actor(provider_user.id, "provider")


@pytest.fixture
def admin(admin_user):
    return Actor(admin_user.id, "admin")


@pytest.fixture
def drone_service(db, provider_user):
    service = Service(
        provider_id=provider_user.id,
        name="Parcel drop",
        description="Same-day parcel delivery",
        base_rate_cents=3000,
        per_mile_rate_cents=100,
        hourly_rate_cents=250,
        active=True,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


@pytest.fixture
def make_booking(booking_service, requester, provider_user, drone_service, clock):
    """Create a booking whose quote matches the calculator."""

    def _make(pickup=CENTER, delivery=TEN_MILES_NORTH, duration_minutes=60, quoted_amount=None, actor=None):
        from app.utils.geo import distance_miles

        if quoted_amount is None:
            distance = distance_miles(pickup[0], pickup[1], delivery[0], delivery[1])
            quoted_amount = quote_for_service(drone_service, distance, duration_minutes)

        return booking_service.create(
            actor or requester,
            provider_id=provider_user.id,
            service_id=drone_service.id,
            scheduled_at=clock() + timedelta(days=2),
            duration_minutes=duration_minutes,
            pickup=pickup,
            delivery=delivery,
            quoted_amount=Decimal(quoted_amount),
            payment_token="pay_token",
        )

    return _make


@pytest.fixture
def completed_booking(make_booking, booking_service, provider, clock):
    booking = make_booking()
    for status in ("accepted", "in_progress", "completed"):
        clock.advance(hours=1)
        booking_service.transition(booking.id, status, provider)
    return booking


# ============================================================================
# API
# ============================================================================

@pytest.fixture
def client(session_factory, gateway, notifier):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def auth_headers(user):
    token = create_access_token({"sub": user.email, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers
