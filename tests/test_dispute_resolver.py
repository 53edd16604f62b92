from decimal import Decimal

import pytest

from app.core.exceptions import (
    DisputeClosed,
    DisputeWindowExpired,
    IllegalTransition,
    PaymentProviderUnavailable,
    RefundExceedsCaptured,
    Unauthorized,
    ValidationError,
)
from app.models.enums import DisputeStatus, PaymentStatus
from app.services.state_machine import Actor


@pytest.fixture
def dispute(completed_booking, resolver, requester, clock):
    clock.advance(days=2)
    return resolver.open_dispute(completed_booking.id, requester, "damaged_goods", "Box arrived crushed")


def test_open_dispute_moves_booking_to_disputed(dispute, completed_booking, notifier):
    assert dispute.status == DisputeStatus.OPEN.value
    assert completed_booking.status == "disputed"
    assert completed_booking.disputed_at is not None
    assert ("dispute.opened", completed_booking.id) in notifier.events


def test_dispute_window_expired(completed_booking, resolver, requester, clock):
    clock.advance(days=20)

    with pytest.raises(DisputeWindowExpired):
        resolver.open_dispute(completed_booking.id, requester, "service_not_rendered", "Never showed up")

    assert completed_booking.status == "completed"


def test_only_booking_requester_may_open(completed_booking, resolver, provider, other_requester_user):
    with pytest.raises(Unauthorized):
        resolver.open_dispute(completed_booking.id, provider, "other", "Provider complaint")

    stranger = Actor(other_requester_user.id, "requester")
    with pytest.raises(Unauthorized):
        resolver.open_dispute(completed_booking.id, stranger, "other", "Not my booking")


def test_dispute_requires_completed_booking(make_booking, resolver, requester):
    booking = make_booking()

    with pytest.raises(IllegalTransition):
        resolver.open_dispute(booking.id, requester, "service_not_rendered", "Still waiting")


def test_dispute_requires_known_reason_and_description(completed_booking, resolver, requester):
    with pytest.raises(ValidationError):
        resolver.open_dispute(completed_booking.id, requester, "bad_vibes", "Meh")

    with pytest.raises(ValidationError):
        resolver.open_dispute(completed_booking.id, requester, "other", "   ")


def test_second_dispute_on_same_booking_is_rejected(dispute, completed_booking, resolver, requester):
    with pytest.raises(IllegalTransition):
        resolver.open_dispute(completed_booking.id, requester, "other", "Again")


def test_provider_response_marks_dispute_responded(dispute, resolver, provider, requester):
    resolver.respond(dispute.id, requester, "Photos attached")
    assert dispute.status == DisputeStatus.OPEN.value

    resolver.respond(dispute.id, provider, "Packed per guidelines")

    assert dispute.status == DisputeStatus.RESPONDED.value
    assert [m.author_role for m in dispute.messages] == ["requester", "provider"]
    assert dispute.booking.status == "disputed"


def test_outsider_cannot_respond(dispute, resolver, other_requester_user):
    with pytest.raises(Unauthorized):
        resolver.respond(dispute.id, Actor(other_requester_user.id, "requester"), "Hello")


def test_only_admin_resolves(dispute, resolver, provider):
    with pytest.raises(Unauthorized):
        resolver.resolve(dispute.id, provider, "capture_confirmed")


def test_capture_confirmed(dispute, resolver, admin, gateway):
    resolved = resolver.resolve(dispute.id, admin, "capture_confirmed")

    assert resolved.status == DisputeStatus.RESOLVED.value
    assert resolved.resolution == "capture_confirmed"
    assert resolved.booking.status == "resolved_captured"
    assert resolved.booking.resolved_at is not None
    assert gateway.count("refund") == 0


def test_capture_confirmed_rejects_refund_amount(dispute, resolver, admin):
    with pytest.raises(ValidationError):
        resolver.resolve(dispute.id, admin, "capture_confirmed", refund_amount=Decimal("5.00"))


def test_partial_refund_requires_amount(dispute, resolver, admin):
    with pytest.raises(ValidationError):
        resolver.resolve(dispute.id, admin, "partial_refund")


def test_partial_refund_resolution(dispute, resolver, coordinator, admin, completed_booking):
    resolved = resolver.resolve(dispute.id, admin, "partial_refund", refund_amount=Decimal("15.00"))

    record = completed_booking.payment
    assert record.refunded_amount_cents == 1500
    assert record.status == PaymentStatus.CAPTURED.value
    assert resolved.refund_amount_cents == 1500
    assert completed_booking.status == "resolved_refunded"

    with pytest.raises(RefundExceedsCaptured) as exc:
        coordinator.refund(completed_booking.id, 3000)

    assert exc.value.details["refundable_cents"] == 2750


def test_full_refund_resolution(dispute, resolver, admin, completed_booking):
    resolved = resolver.resolve(dispute.id, admin, "refunded")

    assert resolved.refund_amount_cents == 4250
    assert completed_booking.payment.status == PaymentStatus.REFUNDED.value
    assert completed_booking.status == "resolved_refunded"


def test_failed_refund_leaves_dispute_open(dispute, resolver, admin, completed_booking):
    with pytest.raises(RefundExceedsCaptured):
        resolver.resolve(dispute.id, admin, "partial_refund", refund_amount=Decimal("50.00"))

    assert resolver.get(dispute.id).status == DisputeStatus.OPEN.value
    assert completed_booking.status == "disputed"


def test_resolved_dispute_is_closed(dispute, resolver, admin, requester):
    resolver.resolve(dispute.id, admin, "capture_confirmed")

    with pytest.raises(DisputeClosed):
        resolver.respond(dispute.id, requester, "One more thing")

    with pytest.raises(DisputeClosed):
        resolver.resolve(dispute.id, admin, "refunded")


def test_list_open(dispute, resolver, admin):
    assert [d.id for d in resolver.list_open()] == [dispute.id]

    resolver.resolve(dispute.id, admin, "capture_confirmed")

    assert resolver.list_open() == []


@pytest.fixture
def uncaptured_dispute(make_booking, booking_service, resolver, provider, requester, gateway, clock):
    booking = make_booking()
    booking_service.transition(booking.id, "accepted", provider)
    booking_service.transition(booking.id, "in_progress", provider)
    gateway.unavailable = True
    booking_service.transition(booking.id, "completed", provider)
    gateway.unavailable = False

    clock.advance(days=1)
    return resolver.open_dispute(booking.id, requester, "damaged_goods", "Box arrived crushed")


def test_capture_confirmed_settles_outstanding_authorization(uncaptured_dispute, resolver, admin, gateway):
    assert uncaptured_dispute.booking.payment.status == PaymentStatus.AUTHORIZED.value

    resolved = resolver.resolve(uncaptured_dispute.id, admin, "capture_confirmed")

    record = resolved.booking.payment
    assert record.status == PaymentStatus.CAPTURED.value
    assert record.captured_amount_cents == 4250
    assert resolved.booking.status == "resolved_captured"
    assert gateway.count("capture") == 2


def test_capture_confirmed_keeps_dispute_open_when_provider_is_down(uncaptured_dispute, resolver, admin, gateway):
    gateway.unavailable = True

    with pytest.raises(PaymentProviderUnavailable):
        resolver.resolve(uncaptured_dispute.id, admin, "capture_confirmed")

    dispute = resolver.get(uncaptured_dispute.id)
    assert dispute.status == DisputeStatus.OPEN.value
    assert dispute.booking.status == "disputed"
    assert dispute.booking.payment.status == PaymentStatus.AUTHORIZED.value
