"""
Booking lifecycle operations: create, transition, refund.

All status changes go through ``state_machine.apply_transition``; this
module adds permission checks, idempotent retries, optimistic-concurrency
handling and the payment side effects tied to each edge.
"""

from datetime import datetime

from sqlalchemy.orm import Session

from app.core import config
from app.core.exceptions import (
    CaptureWindowExpired,
    IllegalTransition,
    InvalidQuote,
    NotFound,
    PaymentProviderUnavailable,
    StateChangedConcurrently,
    Unauthorized,
    ValidationError,
)
from app.core.logging_config import get_logger
from app.models.booking import Booking, BookingStatusEvent
from app.models.enums import BookingStatus, Role
from app.models.service import Service
from app.services.payment_coordinator import PaymentCoordinator
from app.services.state_machine import (
    ADJACENCY,
    DISPUTE_MANAGED,
    Actor,
    apply_transition,
    check_permission,
    flush_or_conflict,
    is_party,
    parse_status,
)
from app.utils.clock import as_naive_utc, utcnow
from app.utils.geo import distance_miles, validate_location
from app.utils.notifications import LogNotifier
from app.utils.payment_gateway import PaymentGateway
from app.utils.pricing import quote_for_service, quote_matches, to_cents, from_cents

logger = get_logger()
booking_log = logger.bind(log_type="booking")


class BookingService:

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        notifier=None,
        clock=utcnow,
        region=None,
        quote_tolerance_cents: int | None = None,
    ):
        self.db = db
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.region = region
        self.quote_tolerance_cents = (
            quote_tolerance_cents if quote_tolerance_cents is not None else config.QUOTE_TOLERANCE_CENTS
        )
        self.payments = PaymentCoordinator(db, gateway, notifier=self.notifier, clock=clock)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, booking_id) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFound("Booking not found", details={"booking_id": booking_id})
        return booking

    def get_for(self, booking_id, actor: Actor) -> Booking:
        booking = self.get(booking_id)
        if not is_party(booking, actor):
            raise Unauthorized("You are not a party to this booking")
        return booking

    def list_for(self, actor: Actor):
        query = self.db.query(Booking)
        if actor.role == Role.REQUESTER.value:
            query = query.filter(Booking.requester_id == actor.id)
        elif actor.role == Role.PROVIDER.value:
            query = query.filter(Booking.provider_id == actor.id)
        return query.order_by(Booking.created_at.desc()).all()

    def history(self, booking_id, actor: Actor):
        booking = self.get_for(booking_id, actor)
        return (
            self.db.query(BookingStatusEvent)
            .filter(BookingStatusEvent.booking_id == booking.id)
            .order_by(BookingStatusEvent.id)
            .all()
        )

    # ---------------------------------------------------------------------
    # CREATE
    # ---------------------------------------------------------------------
    def create(
        self,
        requester: Actor,
        provider_id: int,
        service_id: int,
        scheduled_at: datetime,
        duration_minutes: int,
        pickup: tuple,
        delivery: tuple,
        quoted_amount,
        payment_token: str | None = None,
    ) -> Booking:
        if requester.role != Role.REQUESTER.value:
            logger.bind(log_type="audit").warning(
                f"Unauthorized booking attempt | Service={service_id} | Actor={requester.label}"
            )
            raise Unauthorized("Only requesters can book drone services")

        service = self.db.query(Service).filter(
            Service.id == service_id,
            Service.active == True,
        ).first()
        if not service or service.provider_id != provider_id:
            raise NotFound("Service not found", details={"service_id": service_id})

        now = self.clock()
        scheduled_at = as_naive_utc(scheduled_at)

        # ---- SCHEDULE VALIDATIONS ----
        if scheduled_at <= now:
            raise ValidationError("Scheduled time must be in the future")
        if duration_minutes <= 0:
            raise ValidationError("Duration must be positive")

        # ---- LOCATION VALIDATIONS ----
        validate_location(pickup[0], pickup[1], "pickup", self.region)
        validate_location(delivery[0], delivery[1], "delivery", self.region)

        distance = distance_miles(pickup[0], pickup[1], delivery[0], delivery[1])

        # ---- QUOTE ----
        computed = quote_for_service(service, distance, duration_minutes)
        if not quote_matches(quoted_amount, computed, self.quote_tolerance_cents):
            raise InvalidQuote(
                "Quoted amount does not match the current price",
                details={"quoted": str(quoted_amount), "expected": str(computed)},
            )

        booking = Booking(
            requester_id=requester.id,
            provider_id=provider_id,
            service_id=service.id,
            status=BookingStatus.PENDING.value,
            scheduled_at=scheduled_at,
            duration_minutes=duration_minutes,
            pickup_lat=pickup[0],
            pickup_lng=pickup[1],
            delivery_lat=delivery[0],
            delivery_lng=delivery[1],
            distance_miles=round(distance, 3),
            quoted_amount_cents=to_cents(quoted_amount),
            created_at=now,
        )
        self.db.add(booking)
        self.db.flush()

        self.db.add(BookingStatusEvent(
            booking_id=booking.id,
            from_status=None,
            to_status=BookingStatus.PENDING.value,
            actor_id=requester.id,
            actor_role=requester.role,
            occurred_at=now,
        ))
        self.db.commit()
        self.db.refresh(booking)

        booking_log.info(
            f"Booking Created | Requester={requester.id} | Service={service.id} | "
            f"Booking={booking.id} | Amount={from_cents(booking.quoted_amount_cents)}"
        )
        self.notifier.notify("booking.created", booking)

        # Declines cancel the booking inside the coordinator and propagate
        self.payments.authorize(booking.id, booking.quoted_amount_cents, payment_token)

        self.db.refresh(booking)
        return booking

    # ---------------------------------------------------------------------
    # TRANSITION
    # ---------------------------------------------------------------------
    def transition(self, booking_id, requested_status, actor: Actor) -> Booking:
        target = parse_status(requested_status)
        return self._transition(booking_id, target, actor)

    def refund_booking(self, booking_id, actor: Actor, amount=None, request_token=None) -> Booking:
        """Explicit refund request: completed/cancelled → refunded."""
        amount_cents = to_cents(amount) if amount is not None else None
        return self._transition(
            booking_id,
            BookingStatus.REFUNDED,
            actor,
            refund_amount_cents=amount_cents,
            request_token=request_token,
        )

    def _transition(self, booking_id, target, actor, refund_amount_cents=None, request_token=None):
        booking = self.get(booking_id)
        current = BookingStatus(booking.status)

        if not is_party(booking, actor):
            logger.bind(log_type="audit").warning(
                f"Transition by non-party | Booking={booking.id} | Actor={actor.label}"
            )
            raise Unauthorized("You are not a party to this booking")

        # Retried request for the state we are already in
        if current == target:
            return booking

        if target in DISPUTE_MANAGED:
            raise IllegalTransition(
                "Disputes are opened and resolved through the dispute flow",
                details={"from": current.value, "to": target.value},
            )

        if target not in ADJACENCY[current]:
            raise IllegalTransition(
                f"Cannot move booking from {current.value} to {target.value}",
                details={"from": current.value, "to": target.value},
            )

        check_permission(booking, target, actor)

        apply_transition(self.db, booking, target, actor, reason=_reason_for(target, actor), now=self.clock())
        flush_or_conflict(self.db, booking)

        if target == BookingStatus.REFUNDED:
            try:
                # commits together with the status change
                self.payments.refund(booking.id, refund_amount_cents, request_token)
            except Exception:
                self.db.rollback()
                raise

        self.db.commit()
        self.notifier.notify(f"booking.{target.value}", booking)

        if target == BookingStatus.COMPLETED:
            try:
                self.payments.capture(booking.id)
            except (PaymentProviderUnavailable, CaptureWindowExpired, StateChangedConcurrently) as e:
                # completion stands; the sweep or a manual reauthorize settles payment
                booking_log.error(f"Capture after completion failed | Booking={booking.id} | {e.code}")
        elif target == BookingStatus.CANCELLED:
            self.payments.release_for_cancellation(booking)

        self.db.refresh(booking)
        return booking


def _reason_for(target, actor):
    if target == BookingStatus.CANCELLED:
        return f"cancelled_by_{actor.role}"
    if target == BookingStatus.REFUNDED:
        return "refund_requested"
    return None
