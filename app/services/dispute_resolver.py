from datetime import timedelta

from sqlalchemy.orm import Session

from app.core import config
from app.core.exceptions import (
    DisputeClosed,
    DisputeWindowExpired,
    IllegalTransition,
    NotFound,
    Unauthorized,
    ValidationError,
)
from app.core.logging_config import get_logger
from app.models.booking import Booking
from app.models.dispute import Dispute, DisputeMessage
from app.models.enums import (
    BookingStatus,
    DisputeReason,
    DisputeResolution,
    DisputeStatus,
    PaymentStatus,
    Role,
)
from app.services.payment_coordinator import PaymentCoordinator
from app.services.state_machine import SYSTEM, Actor, apply_transition, flush_or_conflict, is_party
from app.utils.clock import utcnow
from app.utils.notifications import LogNotifier
from app.utils.payment_gateway import PaymentGateway
from app.utils.pricing import to_cents

logger = get_logger()
dispute_log = logger.bind(log_type="dispute")


class DisputeResolver:
    """
    Contested sub-flow of a completed booking.

    While a dispute is open the booking sits in ``disputed`` and the public
    transition API cannot move it; ``resolve`` is the only way out.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway,
        notifier=None,
        clock=utcnow,
        window_days: int | None = None,
    ):
        self.db = db
        self.notifier = notifier or LogNotifier()
        self.clock = clock
        self.window = timedelta(days=window_days if window_days is not None else config.DISPUTE_WINDOW_DAYS)
        self.payments = PaymentCoordinator(db, gateway, notifier=self.notifier, clock=clock)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def get(self, dispute_id) -> Dispute:
        dispute = self.db.query(Dispute).filter(Dispute.id == dispute_id).first()
        if not dispute:
            raise NotFound("Dispute not found", details={"dispute_id": dispute_id})
        return dispute

    def get_for(self, dispute_id, actor: Actor) -> Dispute:
        dispute = self.get(dispute_id)
        if not is_party(dispute.booking, actor):
            raise Unauthorized("You are not a party to this dispute")
        return dispute

    def list_open(self):
        return (
            self.db.query(Dispute)
            .filter(Dispute.status != DisputeStatus.RESOLVED.value)
            .order_by(Dispute.opened_at)
            .all()
        )

    # ---------------------------------------------------------------------
    # OPEN
    # ---------------------------------------------------------------------
    def open_dispute(self, booking_id, initiator: Actor, reason, description: str) -> Dispute:
        booking = self.db.query(Booking).filter(Booking.id == booking_id).first()
        if not booking:
            raise NotFound("Booking not found", details={"booking_id": booking_id})

        if initiator.role != Role.REQUESTER.value or booking.requester_id != initiator.id:
            logger.bind(log_type="audit").warning(
                f"Unauthorized dispute attempt | Booking={booking.id} | Actor={initiator.label}"
            )
            raise Unauthorized("Only the requester of this booking can open a dispute")

        if booking.status != BookingStatus.COMPLETED.value:
            raise IllegalTransition(
                f"Disputes can only be opened on completed bookings (booking is {booking.status})",
                details={"status": booking.status},
            )

        now = self.clock()
        if now - booking.completed_at > self.window:
            raise DisputeWindowExpired(
                f"Disputes must be opened within {self.window.days} days of completion",
                details={"completed_at": booking.completed_at.isoformat()},
            )

        try:
            reason = DisputeReason(reason).value
        except ValueError:
            raise ValidationError(f"Unknown dispute reason '{reason}'")

        if not description or not description.strip():
            raise ValidationError("A description of the problem is required")

        dispute = Dispute(
            booking=booking,
            initiator_id=initiator.id,
            reason=reason,
            description=description.strip(),
            status=DisputeStatus.OPEN.value,
            opened_at=now,
        )
        self.db.add(dispute)

        apply_transition(self.db, booking, BookingStatus.DISPUTED, initiator, reason=reason, now=now)
        flush_or_conflict(self.db, booking)
        self.db.commit()

        dispute_log.info(
            f"Dispute opened | Dispute={dispute.id} | Booking={booking.id} | Reason={reason}"
        )
        self.notifier.notify("dispute.opened", booking, reason=reason)
        return dispute

    # ---------------------------------------------------------------------
    # RESPOND
    # ---------------------------------------------------------------------
    def respond(self, dispute_id, responder: Actor, message: str) -> Dispute:
        dispute = self.get(dispute_id)

        if dispute.status == DisputeStatus.RESOLVED.value:
            raise DisputeClosed("Dispute is already resolved", details={"dispute_id": dispute.id})

        if not is_party(dispute.booking, responder):
            raise Unauthorized("You are not a party to this dispute")

        if not message or not message.strip():
            raise ValidationError("Message cannot be empty")

        self.db.add(DisputeMessage(
            dispute=dispute,
            author_id=responder.id,
            author_role=responder.role,
            body=message.strip(),
            created_at=self.clock(),
        ))

        if responder.id != dispute.initiator_id and dispute.status == DisputeStatus.OPEN.value:
            dispute.status = DisputeStatus.RESPONDED.value

        self.db.commit()

        dispute_log.info(f"Dispute response | Dispute={dispute.id} | Actor={responder.label}")
        self.notifier.notify("dispute.responded", dispute.booking)
        return dispute

    # ---------------------------------------------------------------------
    # RESOLVE
    # ---------------------------------------------------------------------
    def resolve(self, dispute_id, resolver: Actor, resolution, refund_amount=None) -> Dispute:
        if resolver.role != Role.ADMIN.value:
            logger.bind(log_type="audit").warning(
                f"Unauthorized dispute resolution | Dispute={dispute_id} | Actor={resolver.label}"
            )
            raise Unauthorized("Only an arbitrator can resolve disputes")

        dispute = self.get(dispute_id)
        if dispute.status == DisputeStatus.RESOLVED.value:
            raise DisputeClosed("Dispute is already resolved", details={"dispute_id": dispute.id})

        try:
            resolution = DisputeResolution(resolution)
        except ValueError:
            raise ValidationError(f"Unknown resolution '{resolution}'")

        booking = dispute.booking
        refund_cents = None

        if resolution == DisputeResolution.PARTIAL_REFUND:
            if refund_amount is None or to_cents(refund_amount) <= 0:
                raise ValidationError("A positive refund amount is required for a partial refund")
            refund_cents = to_cents(refund_amount)
        elif refund_amount is not None and resolution == DisputeResolution.CAPTURE_CONFIRMED:
            raise ValidationError("Refund amount is not allowed when confirming the capture")

        # Completion capture may have failed; settle it before confirming.
        # Provider errors propagate and the dispute stays open.
        record = booking.payment
        if (
            resolution == DisputeResolution.CAPTURE_CONFIRMED
            and record is not None
            and record.status == PaymentStatus.AUTHORIZED.value
        ):
            self.payments.capture(booking.id)

        now = self.clock()
        target = (
            BookingStatus.RESOLVED_CAPTURED
            if resolution == DisputeResolution.CAPTURE_CONFIRMED
            else BookingStatus.RESOLVED_REFUNDED
        )

        apply_transition(self.db, booking, target, SYSTEM, reason=resolution.value, now=now)
        flush_or_conflict(self.db, booking)

        dispute.status = DisputeStatus.RESOLVED.value
        dispute.resolution = resolution.value
        dispute.resolved_by = resolver.id
        dispute.resolved_at = now

        if resolution == DisputeResolution.CAPTURE_CONFIRMED:
            self.db.commit()
        else:
            try:
                # commits the resolution together with the refund
                record = self.payments.refund(
                    booking.id,
                    refund_cents,
                    request_token=f"dispute:{dispute.id}",
                )
            except Exception:
                self.db.rollback()
                raise
            dispute.refund_amount_cents = refund_cents if refund_cents is not None else record.refunded_amount_cents
            self.db.commit()

        dispute_log.info(
            f"Dispute resolved | Dispute={dispute.id} | Booking={booking.id} | "
            f"Resolution={resolution.value} | By={resolver.label}"
        )
        self.notifier.notify("dispute.resolved", booking, reason=resolution.value)
        return dispute
