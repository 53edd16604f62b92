"""
Payment Coordinator.

Bridges booking transitions to the payment provider and reconciles
asynchronous webhook deliveries with local ``PaymentRecord`` state.
Provider errors are never retried here: they propagate to the caller or
are left for ``sweep_authorizations``.
"""

import uuid
from datetime import timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core import config
from app.core.exceptions import (
    CaptureWindowExpired,
    IllegalTransition,
    NotFound,
    PaymentDeclined,
    PaymentProviderUnavailable,
    RefundExceedsCaptured,
    StateChangedConcurrently,
    ValidationError,
    ConcurrentModification,
)
from app.core.logging_config import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus, EventOutcome, PaymentEventType, PaymentStatus
from app.models.payment import PaymentRecord, ProcessedPaymentEvent, RefundRequest
from app.services.state_machine import CAPTURABLE, PRE_SERVICE, SYSTEM, apply_transition, flush_or_conflict
from app.utils.clock import utcnow
from app.utils.notifications import LogNotifier
from app.utils.payment_gateway import PaymentEvent, PaymentGateway

logger = get_logger()
payment_log = logger.bind(log_type="payment")

RECONCILE_ATTEMPTS = 3


class PaymentCoordinator:

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        notifier=None,
        clock=utcnow,
        capture_window_days: int | None = None,
    ):
        self.db = db
        self.gateway = gateway
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.capture_window = timedelta(
            days=capture_window_days if capture_window_days is not None else config.CAPTURE_WINDOW_DAYS
        )

    # ------------------------------------------------------------------
    # LOOKUPS
    # ------------------------------------------------------------------
    def _booking(self, booking_id) -> Booking:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFound("Booking not found", details={"booking_id": booking_id})
        return booking

    def get_record(self, booking_id) -> PaymentRecord:
        booking = self._booking(booking_id)
        record = booking.payment or (booking.payments[-1] if booking.payments else None)
        if not record:
            raise NotFound("No payment record for this booking", details={"booking_id": booking_id})
        return record

    def _authorization_expired(self, record: PaymentRecord) -> bool:
        return (
            record.authorized_at is not None
            and self.clock() - record.authorized_at > self.capture_window
        )

    def _fail(self, record: PaymentRecord, reason: str):
        record.status = PaymentStatus.FAILED.value
        record.failure_reason = reason
        payment_log.warning(
            f"Payment failed | Booking={record.booking_id} | Reason={reason}"
        )

    def _cancel_for_payment(self, booking: Booking, reason: str):
        apply_transition(self.db, booking, BookingStatus.CANCELLED, SYSTEM, reason=reason, now=self.clock())

    # ------------------------------------------------------------------
    # AUTHORIZE
    # ------------------------------------------------------------------
    def authorize(self, booking_id, amount_cents: int, payment_token=None) -> PaymentRecord:
        booking = self._booking(booking_id)

        existing = booking.payment
        if existing is not None:
            return existing

        record = PaymentRecord(
            booking=booking,
            authorized_amount_cents=0,
            captured_amount_cents=0,
            refunded_amount_cents=0,
        )
        self.db.add(record)

        try:
            authorization_id = self.gateway.authorize(
                amount_cents,
                {"booking_id": booking.id, "payment_token": payment_token},
            )
        except (PaymentDeclined, PaymentProviderUnavailable) as e:
            self._fail(record, "declined" if isinstance(e, PaymentDeclined) else "provider_unavailable")
            if BookingStatus(booking.status) in PRE_SERVICE:
                self._cancel_for_payment(booking, "payment_failed")
            flush_or_conflict(self.db, booking)
            self.db.commit()
            self.notifier.notify("booking.cancelled", booking, reason="payment_failed")
            raise

        now = self.clock()
        record.authorization_id = authorization_id
        record.authorized_amount_cents = amount_cents
        record.status = PaymentStatus.AUTHORIZED.value
        record.authorized_at = now
        self.db.commit()

        payment_log.info(
            f"Payment authorized | Booking={booking.id} | Amount={amount_cents} | Auth={authorization_id}"
        )
        return record

    def reauthorize(self, booking_id, payment_token) -> PaymentRecord:
        """Manual re-authorization after an expired or failed authorization."""
        booking = self._booking(booking_id)

        if booking.payment is not None:
            raise IllegalTransition("Booking already has an active payment authorization")

        if BookingStatus(booking.status) not in {
            BookingStatus.PENDING,
            BookingStatus.ACCEPTED,
            BookingStatus.IN_PROGRESS,
        } | CAPTURABLE:
            raise IllegalTransition(
                f"Cannot re-authorize a {booking.status} booking",
                details={"status": booking.status},
            )

        record = PaymentRecord(
            booking=booking,
            authorized_amount_cents=0,
            captured_amount_cents=0,
            refunded_amount_cents=0,
        )
        self.db.add(record)
        try:
            authorization_id = self.gateway.authorize(
                booking.quoted_amount_cents,
                {"booking_id": booking.id, "payment_token": payment_token},
            )
        except (PaymentDeclined, PaymentProviderUnavailable) as e:
            self._fail(record, "declined" if isinstance(e, PaymentDeclined) else "provider_unavailable")
            self.db.commit()
            raise

        record.authorization_id = authorization_id
        record.authorized_amount_cents = booking.quoted_amount_cents
        record.status = PaymentStatus.AUTHORIZED.value
        record.authorized_at = self.clock()
        self.db.commit()

        payment_log.info(f"Payment re-authorized | Booking={booking.id} | Auth={authorization_id}")

        if BookingStatus(booking.status) in CAPTURABLE:
            return self.capture(booking.id)
        return record

    # ------------------------------------------------------------------
    # CAPTURE
    # ------------------------------------------------------------------
    def capture(self, booking_id) -> PaymentRecord:
        booking = self._booking(booking_id)

        # Re-read right before talking to the provider: a racing refund or
        # cancellation may have moved the booking on.
        self.db.refresh(booking)
        if BookingStatus(booking.status) not in CAPTURABLE:
            raise StateChangedConcurrently(
                f"Booking is {booking.status}; capture aborted",
                details={"booking_id": booking.id, "status": booking.status},
            )

        record = booking.payment
        if record is None:
            raise NotFound("No active authorization to capture", details={"booking_id": booking.id})

        if record.status != PaymentStatus.AUTHORIZED.value:
            return record

        if self._authorization_expired(record):
            self._fail(record, "authorization_expired")
            self.db.commit()
            raise CaptureWindowExpired(
                "Authorization has expired; the payment must be re-authorized",
                details={"booking_id": booking.id},
            )

        try:
            capture_id = self.gateway.capture(record.authorization_id, record.authorized_amount_cents)
        except CaptureWindowExpired:
            self._fail(record, "authorization_expired")
            self.db.commit()
            raise

        record.capture_id = capture_id
        record.captured_amount_cents = record.authorized_amount_cents
        record.status = PaymentStatus.CAPTURED.value
        record.captured_at = self.clock()
        self.db.commit()

        payment_log.info(
            f"Payment captured | Booking={booking.id} | Amount={record.captured_amount_cents}"
        )
        return record

    # ------------------------------------------------------------------
    # REFUND
    # ------------------------------------------------------------------
    def refund(self, booking_id, amount_cents: int | None = None, request_token: str | None = None) -> PaymentRecord:
        """
        Refund captured funds, or release the hold when nothing was captured.

        Repeating a call with the same ``request_token`` returns the record
        without a second provider refund.
        """
        booking = self._booking(booking_id)

        if request_token:
            previous = (
                self.db.query(RefundRequest)
                .filter(RefundRequest.request_token == request_token)
                .first()
            )
            if previous:
                payment_log.info(f"Duplicate refund request ignored | Token={request_token}")
                return previous.payment

        record = booking.payment
        if record is None:
            raise RefundExceedsCaptured(
                "Nothing to refund for this booking",
                details={"refundable": "0.00"},
            )

        token = request_token or uuid.uuid4().hex

        # Uncaptured authorization: release the hold
        if record.status == PaymentStatus.AUTHORIZED.value:
            if amount_cents is not None and amount_cents != record.authorized_amount_cents:
                raise RefundExceedsCaptured(
                    "Only a full release is possible before capture",
                    details={"refundable": "0.00"},
                )

            self.gateway.void(record.authorization_id)
            record.status = PaymentStatus.REFUNDED.value
            self.db.add(RefundRequest(payment_id=record.id, request_token=token, amount_cents=0))
            self.db.commit()

            payment_log.info(f"Authorization released | Booking={booking.id}")
            return record

        refundable = record.refundable_cents
        amount = refundable if amount_cents is None else amount_cents

        if amount <= 0 and amount_cents is not None:
            raise ValidationError("Refund amount must be positive")

        if amount <= 0 or amount > refundable:
            raise RefundExceedsCaptured(
                "Refund exceeds the captured amount still refundable",
                details={"requested_cents": amount, "refundable_cents": refundable},
            )

        refund_id = self.gateway.refund(record.capture_id or record.authorization_id, amount, token)

        record.refunded_amount_cents += amount
        if record.refundable_cents == 0:
            record.status = PaymentStatus.REFUNDED.value

        self.db.add(RefundRequest(
            payment_id=record.id,
            request_token=token,
            amount_cents=amount,
            refund_id=refund_id,
        ))
        self.db.commit()

        payment_log.info(
            f"Payment refunded | Booking={booking.id} | Amount={amount} | "
            f"TotalRefunded={record.refunded_amount_cents}"
        )
        return record

    def release_for_cancellation(self, booking: Booking):
        """Void or refund whatever the cancelled booking still holds."""
        record = booking.payment
        if record is None:
            return None
        if record.status == PaymentStatus.AUTHORIZED.value:
            return self.refund(booking.id)
        if record.status == PaymentStatus.CAPTURED.value and record.refundable_cents > 0:
            return self.refund(booking.id)
        return record

    # ------------------------------------------------------------------
    # WEBHOOK RECONCILIATION
    # ------------------------------------------------------------------
    def apply_event(self, event: PaymentEvent) -> str:
        """
        Reconcile one provider event. A booking update racing the event is
        retried against fresh state; if it keeps losing, the event is
        acknowledged as stale and left unrecorded so a redelivery can apply it.
        """
        for attempt in range(1, RECONCILE_ATTEMPTS + 1):
            try:
                return self._reconcile(event)
            except ConcurrentModification:
                payment_log.warning(
                    f"Webhook raced a booking update | Event={event.event_id} | Attempt={attempt}"
                )

        payment_log.error(f"Webhook not applied after retries | Event={event.event_id}")
        return EventOutcome.STALE.value

    def _reconcile(self, event: PaymentEvent) -> str:
        seen = (
            self.db.query(ProcessedPaymentEvent.id)
            .filter(ProcessedPaymentEvent.event_id == event.event_id)
            .first()
        )
        if seen:
            payment_log.info(f"Duplicate webhook ignored | Event={event.event_id}")
            return EventOutcome.DUPLICATE.value

        record = None
        if event.authorization_id:
            record = (
                self.db.query(PaymentRecord)
                .filter(PaymentRecord.authorization_id == event.authorization_id)
                .order_by(PaymentRecord.id.desc())
                .first()
            )

        if record is None:
            outcome = EventOutcome.UNKNOWN_PAYMENT
            payment_log.warning(
                f"Webhook for unknown payment acknowledged | Event={event.event_id} | "
                f"Auth={event.authorization_id}"
            )
        elif record.last_event_at is not None and event.occurred_at < record.last_event_at:
            outcome = EventOutcome.STALE
            payment_log.info(
                f"Stale webhook ignored | Event={event.event_id} | Booking={record.booking_id}"
            )
        else:
            outcome = self._apply(record, event)
            record.last_event_at = event.occurred_at
            flush_or_conflict(self.db, record.booking)

        self.db.add(ProcessedPaymentEvent(
            event_id=event.event_id,
            event_type=event.event_type,
            authorization_id=event.authorization_id,
            occurred_at=event.occurred_at,
            outcome=outcome.value,
        ))

        try:
            self.db.commit()
        except IntegrityError:
            # Same event delivered concurrently; the other delivery applied it
            self.db.rollback()
            return EventOutcome.DUPLICATE.value

        if (
            outcome == EventOutcome.APPLIED
            and event.event_type == PaymentEventType.AUTHORIZATION_FAILED.value
            and record.booking.status == BookingStatus.CANCELLED.value
        ):
            self.notifier.notify("booking.cancelled", record.booking, reason="payment_failed")

        return outcome.value

    def _apply(self, record: PaymentRecord, event: PaymentEvent) -> EventOutcome:
        status = PaymentStatus(record.status)
        event_type = event.event_type

        if event_type == PaymentEventType.AUTHORIZATION_SUCCEEDED.value:
            return EventOutcome.APPLIED if status == PaymentStatus.AUTHORIZED else EventOutcome.IGNORED

        if event_type == PaymentEventType.CAPTURE_SUCCEEDED.value:
            if status != PaymentStatus.AUTHORIZED:
                return EventOutcome.IGNORED
            amount = event.amount_cents or record.authorized_amount_cents
            record.captured_amount_cents = min(amount, record.authorized_amount_cents)
            record.capture_id = record.capture_id or record.authorization_id
            record.captured_at = event.occurred_at
            record.status = PaymentStatus.CAPTURED.value
            payment_log.info(f"Capture confirmed by webhook | Booking={record.booking_id}")
            return EventOutcome.APPLIED

        if event_type == PaymentEventType.REFUND_SUCCEEDED.value:
            if event.refund_id and any(r.refund_id == event.refund_id for r in record.refunds):
                return EventOutcome.IGNORED

            if status == PaymentStatus.AUTHORIZED:
                record.status = PaymentStatus.REFUNDED.value
                return EventOutcome.APPLIED

            if status != PaymentStatus.CAPTURED:
                return EventOutcome.IGNORED

            amount = min(event.amount_cents or record.refundable_cents, record.refundable_cents)
            record.refunded_amount_cents += amount
            if record.refundable_cents == 0:
                record.status = PaymentStatus.REFUNDED.value
            self.db.add(RefundRequest(
                payment_id=record.id,
                request_token=f"webhook:{event.event_id}",
                amount_cents=amount,
                refund_id=event.refund_id,
            ))
            payment_log.info(
                f"External refund recorded | Booking={record.booking_id} | Amount={amount}"
            )
            return EventOutcome.APPLIED

        if event_type == PaymentEventType.AUTHORIZATION_FAILED.value:
            if status != PaymentStatus.AUTHORIZED or record.captured_amount_cents:
                return EventOutcome.IGNORED
            self._fail(record, "provider_reported_failure")
            booking = record.booking
            if BookingStatus(booking.status) in PRE_SERVICE:
                self._cancel_for_payment(booking, "payment_failed")
            return EventOutcome.APPLIED

        return EventOutcome.IGNORED

    # ------------------------------------------------------------------
    # SCHEDULED SWEEP
    # ------------------------------------------------------------------
    def sweep_authorizations(self) -> dict:
        """
        Expire lapsed authorizations and retry captures that failed
        transiently for completed bookings.
        """
        now = self.clock()
        cutoff = now - self.capture_window
        summary = {"expired": 0, "cancelled": 0, "captured": 0, "capture_errors": 0}

        lapsed = (
            self.db.query(PaymentRecord)
            .filter(
                PaymentRecord.status == PaymentStatus.AUTHORIZED.value,
                PaymentRecord.authorized_at < cutoff,
            )
            .all()
        )

        for record in lapsed:
            booking = record.booking
            self._fail(record, "authorization_expired")
            summary["expired"] += 1

            if BookingStatus(booking.status) in PRE_SERVICE:
                self._cancel_for_payment(booking, "authorization_expired")
                summary["cancelled"] += 1
            else:
                payment_log.warning(
                    f"Authorization lapsed, manual re-authorization needed | Booking={booking.id} | "
                    f"Status={booking.status}"
                )

            try:
                flush_or_conflict(self.db, booking)
            except ConcurrentModification:
                continue
            self.db.commit()

            if booking.status == BookingStatus.CANCELLED.value:
                self.notifier.notify("booking.cancelled", booking, reason="authorization_expired")

        pending_capture = (
            self.db.query(Booking.id)
            .join(PaymentRecord, PaymentRecord.booking_id == Booking.id)
            .filter(
                Booking.status.in_([s.value for s in CAPTURABLE]),
                PaymentRecord.status == PaymentStatus.AUTHORIZED.value,
            )
            .all()
        )

        for (booking_id,) in pending_capture:
            try:
                self.capture(booking_id)
                summary["captured"] += 1
            except (PaymentProviderUnavailable, CaptureWindowExpired, StateChangedConcurrently) as e:
                summary["capture_errors"] += 1
                payment_log.error(f"Capture retry failed | Booking={booking_id} | {e.code}")

        payment_log.info(f"Authorization sweep finished | {summary}")
        return summary
