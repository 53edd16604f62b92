from datetime import timedelta
from decimal import Decimal

import pytest

from app.core.exceptions import (
    IllegalTransition,
    InvalidLocation,
    InvalidQuote,
    NotFound,
    PaymentDeclined,
    PaymentProviderUnavailable,
    Unauthorized,
    ValidationError,
)
from app.models.booking import Booking
from app.models.enums import BookingStatus, PaymentStatus
from app.services.state_machine import ADJACENCY, STATUS_TIMESTAMPS, Actor

from conftest import OUTSIDE_REGION, START


# ---------------------------------------------------------------------------
# CREATE
# ---------------------------------------------------------------------------

def test_create_with_matching_quote(make_booking, gateway, notifier):
    booking = make_booking(quoted_amount=Decimal("42.50"))

    assert booking.status == "pending"
    assert booking.quoted_amount_cents == 4250
    assert booking.distance_miles == pytest.approx(10.0, abs=0.01)
    assert booking.created_at == START

    record = booking.payment
    assert record.status == PaymentStatus.AUTHORIZED.value
    assert record.authorized_amount_cents == 4250
    assert gateway.count("authorize") == 1
    assert ("booking.created", booking.id) in notifier.events


def test_create_rejects_mismatched_quote(make_booking, db):
    with pytest.raises(InvalidQuote) as exc:
        make_booking(quoted_amount=Decimal("40.00"))

    assert exc.value.details["expected"] == "42.50"
    assert db.query(Booking).count() == 0


def test_create_rejects_location_outside_region(make_booking):
    with pytest.raises(InvalidLocation):
        make_booking(delivery=OUTSIDE_REGION, quoted_amount=Decimal("100.00"))


def test_create_requires_requester_role(make_booking, provider):
    with pytest.raises(Unauthorized):
        make_booking(actor=provider)


def test_create_rejects_inactive_service(make_booking, drone_service, db):
    drone_service.active = False
    db.commit()

    with pytest.raises(NotFound):
        make_booking()


def test_create_rejects_past_schedule(booking_service, requester, provider_user, drone_service):
    with pytest.raises(ValidationError):
        booking_service.create(
            requester,
            provider_id=provider_user.id,
            service_id=drone_service.id,
            scheduled_at=START - timedelta(hours=1),
            duration_minutes=60,
            pickup=(30.2672, -97.7431),
            delivery=(30.2672, -97.7431),
            quoted_amount=Decimal("32.50"),
        )


def test_declined_payment_cancels_booking(make_booking, gateway, notifier, db):
    gateway.decline = True

    with pytest.raises(PaymentDeclined):
        make_booking()

    booking = db.query(Booking).one()
    assert booking.status == "cancelled"
    assert booking.cancellation_reason == "payment_failed"
    assert booking.payment is None
    assert booking.payments[0].failure_reason == "declined"
    assert ("booking.cancelled", booking.id) in notifier.events


def test_unavailable_provider_cancels_booking(make_booking, gateway, db):
    gateway.unavailable = True

    with pytest.raises(PaymentProviderUnavailable):
        make_booking()

    booking = db.query(Booking).one()
    assert booking.status == "cancelled"
    assert booking.payments[0].failure_reason == "provider_unavailable"


# ---------------------------------------------------------------------------
# TRANSITIONS
# ---------------------------------------------------------------------------

def test_provider_accepts(make_booking, booking_service, provider, clock):
    booking = make_booking()
    later = clock.advance(minutes=5)

    booking = booking_service.transition(booking.id, "accepted", provider)

    assert booking.status == "accepted"
    assert booking.accepted_at == later


def test_requester_cannot_accept(make_booking, booking_service, requester):
    booking = make_booking()

    with pytest.raises(Unauthorized):
        booking_service.transition(booking.id, "accepted", requester)

    assert booking_service.get(booking.id).status == "pending"


def test_other_provider_cannot_accept(make_booking, booking_service, db):
    booking = make_booking()
    stranger = Actor(booking.provider_id + 100, "provider")

    with pytest.raises(Unauthorized):
        booking_service.transition(booking.id, "accepted", stranger)


def test_outsider_same_status_request_is_unauthorized(make_booking, booking_service, other_requester_user, audit_messages):
    booking = make_booking()
    outsider = Actor(other_requester_user.id, "requester")

    with pytest.raises(Unauthorized):
        booking_service.transition(booking.id, "pending", outsider)

    assert any("non-party" in m and booking.id in m for m in audit_messages)


def test_non_requester_create_is_audited(make_booking, provider, audit_messages):
    with pytest.raises(Unauthorized):
        make_booking(actor=provider)

    assert any("Unauthorized booking attempt" in m for m in audit_messages)


def test_skipping_states_is_illegal(make_booking, booking_service, provider):
    booking = make_booking()

    with pytest.raises(IllegalTransition):
        booking_service.transition(booking.id, "completed", provider)


def test_unknown_status_is_illegal(make_booking, booking_service, provider):
    booking = make_booking()

    with pytest.raises(IllegalTransition):
        booking_service.transition(booking.id, "teleported", provider)


@pytest.mark.parametrize("target", ["disputed", "resolved_captured", "resolved_refunded"])
def test_dispute_states_are_not_publicly_reachable(completed_booking, booking_service, admin, target):
    with pytest.raises(IllegalTransition):
        booking_service.transition(completed_booking.id, target, admin)


def test_requester_cannot_cancel_in_flight(make_booking, booking_service, provider, requester):
    booking = make_booking()
    booking_service.transition(booking.id, "accepted", provider)
    booking_service.transition(booking.id, "in_progress", provider)

    with pytest.raises(Unauthorized):
        booking_service.transition(booking.id, "cancelled", requester)

    booking = booking_service.transition(booking.id, "cancelled", provider)
    assert booking.cancellation_reason == "cancelled_by_provider"


def test_same_status_request_is_noop(make_booking, booking_service, provider, notifier):
    booking = make_booking()
    booking_service.transition(booking.id, "accepted", provider)
    events_before = list(notifier.events)
    history_before = len(booking_service.history(booking.id, provider))

    booking = booking_service.transition(booking.id, "accepted", provider)

    assert booking.status == "accepted"
    assert notifier.events == events_before
    assert len(booking_service.history(booking.id, provider)) == history_before


def test_completion_captures_once(completed_booking, booking_service, provider, gateway, notifier):
    record = completed_booking.payment
    assert record.status == PaymentStatus.CAPTURED.value
    assert record.captured_amount_cents == 4250
    assert gateway.count("capture") == 1

    completed = [e for e in notifier.events if e[0] == "booking.completed"]
    booking_service.transition(completed_booking.id, "completed", provider)

    assert gateway.count("capture") == 1
    assert [e for e in notifier.events if e[0] == "booking.completed"] == completed


def test_completion_stands_when_capture_is_unavailable(make_booking, booking_service, provider, gateway):
    booking = make_booking()
    booking_service.transition(booking.id, "accepted", provider)
    booking_service.transition(booking.id, "in_progress", provider)
    gateway.unavailable = True

    booking = booking_service.transition(booking.id, "completed", provider)

    assert booking.status == "completed"
    assert booking.payment.status == PaymentStatus.AUTHORIZED.value


def test_cancellation_releases_hold(make_booking, booking_service, requester, gateway):
    booking = make_booking()

    booking = booking_service.transition(booking.id, "cancelled", requester)

    assert booking.status == "cancelled"
    assert booking.cancellation_reason == "cancelled_by_requester"
    assert gateway.count("void") == 1
    record = booking.payment
    assert record.status == PaymentStatus.REFUNDED.value
    assert record.captured_amount_cents == 0
    assert record.refunded_amount_cents == 0


def test_refund_completed_booking(completed_booking, booking_service, provider, gateway):
    booking = booking_service.refund_booking(completed_booking.id, provider, request_token="r-1")

    assert booking.status == "refunded"
    assert booking.payment.refunded_amount_cents == 4250
    assert booking.payment.status == PaymentStatus.REFUNDED.value
    assert gateway.count("refund") == 1


def test_requester_cannot_refund(completed_booking, booking_service, requester):
    with pytest.raises(Unauthorized):
        booking_service.refund_booking(completed_booking.id, requester)


def test_list_for_scopes_by_party(make_booking, booking_service, requester, admin, other_requester_user):
    booking = make_booking()

    assert [b.id for b in booking_service.list_for(requester)] == [booking.id]
    assert [b.id for b in booking_service.list_for(admin)] == [booking.id]
    assert booking_service.list_for(Actor(other_requester_user.id, "requester")) == []


def test_history_requires_party(make_booking, booking_service, other_requester_user):
    booking = make_booking()

    with pytest.raises(Unauthorized):
        booking_service.history(booking.id, Actor(other_requester_user.id, "requester"))


# ---------------------------------------------------------------------------
# AUDIT TRAIL
# ---------------------------------------------------------------------------

def test_history_is_a_valid_path_with_monotone_timestamps(completed_booking, booking_service, provider):
    events = booking_service.history(completed_booking.id, provider)

    assert events[0].from_status is None
    assert events[0].to_status == "pending"
    for prev, curr in zip(events, events[1:]):
        assert curr.from_status == prev.to_status
        assert BookingStatus(curr.to_status) in ADJACENCY[BookingStatus(curr.from_status)]
        assert curr.occurred_at >= prev.occurred_at

    assert [e.to_status for e in events] == ["pending", "accepted", "in_progress", "completed"]


def test_status_timestamps_follow_path(completed_booking):
    stamps = [
        getattr(completed_booking, STATUS_TIMESTAMPS[BookingStatus(s)])
        for s in ("pending", "accepted", "in_progress", "completed")
    ]
    assert all(s is not None for s in stamps)
    assert stamps == sorted(stamps)
    assert completed_booking.cancelled_at is None
    assert completed_booking.disputed_at is None


def test_timestamps_never_go_backwards(make_booking, booking_service, provider, clock):
    booking = make_booking()
    clock.advance(hours=2)
    booking_service.transition(booking.id, "accepted", provider)

    # clock skew: the next write sees an earlier time
    clock.now = START
    booking = booking_service.transition(booking.id, "in_progress", provider)

    assert booking.started_at >= booking.accepted_at
