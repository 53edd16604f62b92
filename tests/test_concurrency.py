"""
Two sessions racing on the same booking.

Uses a file-backed SQLite database so each session gets its own connection.
"""

import pytest
from sqlalchemy import create_engine

from app.core.exceptions import ConcurrentModification
from app.db.base import Base
from app.models.booking import Booking
from app.models.enums import EventOutcome
from app.models.payment import PaymentRecord
from app.services.booking_service import BookingService
from app.services.payment_coordinator import PaymentCoordinator
from app.utils.payment_gateway import PaymentEvent


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


def test_single_winner_on_concurrent_transitions(
    make_booking, session_factory, gateway, notifier, clock, provider, requester
):
    booking_id = make_booking().id

    first_db = session_factory()
    second_db = session_factory()
    try:
        first = BookingService(first_db, gateway, notifier, clock=clock)
        second = BookingService(second_db, gateway, notifier, clock=clock)

        # both writers read the same version before either commits
        first.get(booking_id)
        second.get(booking_id)

        first.transition(booking_id, "accepted", provider)

        with pytest.raises(ConcurrentModification):
            second.transition(booking_id, "cancelled", requester)
    finally:
        first_db.close()
        second_db.close()

    check_db = session_factory()
    try:
        booking = check_db.query(Booking).filter(Booking.id == booking_id).one()
        assert booking.status == "accepted"
        assert [e.to_status for e in booking.status_events] == ["pending", "accepted"]
    finally:
        check_db.close()


def test_webhook_retries_after_losing_race_to_transition(
    make_booking, session_factory, gateway, notifier, clock, provider
):
    booking = make_booking()
    booking_id = booking.id
    authorization_id = booking.payment.authorization_id

    first_db = session_factory()
    second_db = session_factory()
    try:
        # webhook session holds the pending version in its identity map
        record = second_db.query(PaymentRecord).filter(PaymentRecord.booking_id == booking_id).one()
        assert record.booking.status == "pending"

        BookingService(first_db, gateway, notifier, clock=clock).transition(booking_id, "accepted", provider)

        outcome = PaymentCoordinator(second_db, gateway, notifier, clock=clock).apply_event(
            PaymentEvent(
                event_id="evt_race",
                event_type="authorization.failed",
                authorization_id=authorization_id,
                occurred_at=clock(),
            )
        )
    finally:
        first_db.close()
        second_db.close()

    assert outcome == EventOutcome.APPLIED.value

    check_db = session_factory()
    try:
        booking = check_db.query(Booking).filter(Booking.id == booking_id).one()
        assert booking.status == "cancelled"
        assert booking.cancellation_reason == "payment_failed"
        assert [e.to_status for e in booking.status_events] == ["pending", "accepted", "cancelled"]
    finally:
        check_db.close()
