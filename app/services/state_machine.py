"""
Canonical booking state machine.

``ADJACENCY`` is the single source of truth for legal moves and
``EDGE_ROLES`` says who may drive each edge through the public
``transition`` operation. Edges into and out of ``disputed`` carry no
public roles: the dispute flow moves them with the system actor.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import ConcurrentModification, IllegalTransition, Unauthorized
from app.core.logging_config import get_logger
from app.models.booking import Booking, BookingStatusEvent
from app.models.enums import BookingStatus, Role
from app.utils.clock import utcnow

logger = get_logger()

S = BookingStatus

ADJACENCY = {
    S.PENDING: {S.ACCEPTED, S.CANCELLED},
    S.ACCEPTED: {S.IN_PROGRESS, S.CANCELLED},
    S.IN_PROGRESS: {S.COMPLETED, S.CANCELLED},
    S.COMPLETED: {S.DISPUTED, S.REFUNDED},
    S.CANCELLED: {S.REFUNDED},
    S.DISPUTED: {S.RESOLVED_CAPTURED, S.RESOLVED_REFUNDED},
    S.REFUNDED: set(),
    S.RESOLVED_CAPTURED: set(),
    S.RESOLVED_REFUNDED: set(),
}

R = Role

EDGE_ROLES = {
    (S.PENDING, S.ACCEPTED): {R.PROVIDER},
    (S.ACCEPTED, S.IN_PROGRESS): {R.PROVIDER},
    (S.IN_PROGRESS, S.COMPLETED): {R.PROVIDER},
    (S.PENDING, S.CANCELLED): {R.REQUESTER, R.PROVIDER, R.ADMIN},
    (S.ACCEPTED, S.CANCELLED): {R.REQUESTER, R.PROVIDER, R.ADMIN},
    # requesters cannot cancel once the flight is under way
    (S.IN_PROGRESS, S.CANCELLED): {R.PROVIDER, R.ADMIN},
    (S.COMPLETED, S.REFUNDED): {R.PROVIDER, R.ADMIN},
    (S.CANCELLED, S.REFUNDED): {R.PROVIDER, R.ADMIN},
}

# Only reachable through the dispute resolver
DISPUTE_MANAGED = {S.DISPUTED, S.RESOLVED_CAPTURED, S.RESOLVED_REFUNDED}

PRE_SERVICE = {S.PENDING, S.ACCEPTED}

# Service rendered; an outstanding authorization may still be captured
CAPTURABLE = {S.COMPLETED, S.DISPUTED, S.RESOLVED_CAPTURED}

STATUS_TIMESTAMPS = {
    S.PENDING: "created_at",
    S.ACCEPTED: "accepted_at",
    S.IN_PROGRESS: "started_at",
    S.COMPLETED: "completed_at",
    S.CANCELLED: "cancelled_at",
    S.REFUNDED: "refunded_at",
    S.DISPUTED: "disputed_at",
    S.RESOLVED_CAPTURED: "resolved_at",
    S.RESOLVED_REFUNDED: "resolved_at",
}


@dataclass(frozen=True)
class Actor:
    id: Optional[int]
    role: str

    @property
    def label(self):
        return f"{self.role}:{self.id}" if self.id is not None else self.role


SYSTEM = Actor(None, Role.SYSTEM.value)


def parse_status(value) -> BookingStatus:
    try:
        return BookingStatus(value)
    except ValueError:
        raise IllegalTransition(f"Unknown booking status '{value}'")


def is_party(booking: Booking, actor: Actor) -> bool:
    if actor.role == Role.ADMIN.value:
        return True
    if actor.role == Role.REQUESTER.value:
        return booking.requester_id == actor.id
    if actor.role == Role.PROVIDER.value:
        return booking.provider_id == actor.id
    return False


def check_permission(booking: Booking, target: BookingStatus, actor: Actor):
    current = BookingStatus(booking.status)
    roles = EDGE_ROLES.get((current, target), set())

    if actor.role not in {r.value for r in roles} or not is_party(booking, actor):
        logger.bind(log_type="audit").warning(
            f"Unauthorized transition | Booking={booking.id} | "
            f"{current.value}→{target.value} | Actor={actor.label}"
        )
        raise Unauthorized(
            f"{actor.role.capitalize()} may not move this booking from "
            f"{current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )


def latest_timestamp(booking: Booking):
    stamps = [
        getattr(booking, field)
        for field in set(STATUS_TIMESTAMPS.values())
        if getattr(booking, field) is not None
    ]
    return max(stamps) if stamps else None


def apply_transition(db: Session, booking: Booking, target, actor: Actor, reason=None, now=None):
    """
    Move ``booking`` to ``target`` after checking the adjacency table.

    Stamps the status timestamp (never earlier than any existing stamp) and
    appends an audit event. Does not flush or commit.
    """
    target = BookingStatus(target)
    current = BookingStatus(booking.status)

    if target not in ADJACENCY[current]:
        raise IllegalTransition(
            f"Cannot move booking from {current.value} to {target.value}",
            details={"from": current.value, "to": target.value},
        )

    at = now or utcnow()
    latest = latest_timestamp(booking)
    if latest is not None and at < latest:
        at = latest

    booking.status = target.value
    setattr(booking, STATUS_TIMESTAMPS[target], at)
    if target == S.CANCELLED:
        booking.cancellation_reason = reason

    db.add(BookingStatusEvent(
        booking_id=booking.id,
        from_status=current.value,
        to_status=target.value,
        actor_id=actor.id,
        actor_role=actor.role,
        reason=reason,
        occurred_at=at,
    ))

    logger.bind(log_type="booking").info(
        f"Booking {current.value} → {target.value} | Booking={booking.id} | "
        f"Actor={actor.label}" + (f" | Reason={reason}" if reason else "")
    )
    return booking


def flush_or_conflict(db: Session, booking: Booking):
    """Flush pending changes; a stale version means another writer won."""
    booking_id = booking.id
    try:
        db.flush()
    except StaleDataError:
        db.rollback()
        logger.bind(log_type="booking").warning(
            f"Concurrent modification | Booking={booking_id}"
        )
        raise ConcurrentModification(
            "Booking was modified by another request; re-read and retry",
            details={"booking_id": booking_id},
        )
